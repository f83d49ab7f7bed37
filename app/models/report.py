"""
Report Model
============
Pydantic models for the commercial audit report.

This is the contract between the report validator and every downstream
consumer (HTTP API, derived views, export). A Report only ever comes out of
app.services.report_validator.validate_report, which guarantees:

    - every sequence field is an actual list (never None / scalar / dict)
    - executiveSummary and protocolStatus are always present
    - every status is one of PASS / WARNING / FAIL / NOT AUDITED
    - every numeric field is a finite number inside its documented range
    - otaAudit contains an entry for each canonical platform

Attributes are snake_case; the wire names (camelCase, as requested from the
audit engine) are the aliases. Models are frozen: UI-side filtering and
sorting build new lists, never mutate a Report.
"""
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EvaluationType(str, Enum):
    NEW_ONBOARDING = "New Onboarding"
    HEALTH_REPORT = "Existing Hotel Health Report"

    @classmethod
    def from_text(cls, value, default: "EvaluationType | None" = None) -> "EvaluationType | None":
        """Match by value, case-insensitively. Returns default when unknown."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return default


class EvaluationDecision(str, Enum):
    APPROVE = "Approve / Continue"
    CONDITIONAL = "Conditional / Improve"
    REJECT = "Reject / Exit"
    AUTO_REJECT = "AUTO REJECT / EXIT"

    @classmethod
    def from_text(cls, value) -> "EvaluationDecision":
        """
        Map free-form decision text to a decision by keyword.

        "auto reject" is checked before "reject"; anything unrecognised is
        treated as Conditional.
        """
        if isinstance(value, cls):
            return value
        text = str(value or "").lower().replace("_", " ").replace("-", " ")
        if "auto" in text and ("reject" in text or "exit" in text):
            return cls.AUTO_REJECT
        if "approve" in text or "continue" in text:
            return cls.APPROVE
        if "conditional" in text or "improve" in text:
            return cls.CONDITIONAL
        if "reject" in text or "exit" in text:
            return cls.REJECT
        return cls.CONDITIONAL


class AuditStatus(str, Enum):
    PASS = "PASS"
    WARNING = "WARNING"
    FAIL = "FAIL"
    NOT_AUDITED = "NOT AUDITED"


class _ReportModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ExecutiveSummary(_ReportModel):
    hotel_name: str
    city: str
    evaluation_type: EvaluationType
    final_decision: EvaluationDecision
    average_score: float


class TargetHotelMetrics(_ReportModel):
    average_ota_rating: float = Field(0.0, alias="averageOTARating")
    estimated_adr: float = Field(0.0, alias="estimatedADR")
    adr_currency: str = ""


class ProtocolStatus(_ReportModel):
    duplication_audit: AuditStatus
    geo_verification: AuditStatus
    compliance_audit: AuditStatus
    notes: Optional[str] = None
    # field name → raw engine text, for statuses that were not recognised
    unrecognized: Dict[str, str] = {}


class RoomTypeAudit(_ReportModel):
    room_name: str
    size_sq_ft: Optional[str] = None
    occupancy: str = ""
    amenities: List[str] = []
    description_audit: str = ""
    config_risk: str = ""


class TreeboPresence(_ReportModel):
    city_hotel_count: int = 0
    nearest_hotel_name: str = ""
    nearest_hotel_distance: str = ""
    market_share_context: str = ""


class OTAAuditItem(_ReportModel):
    platform: str
    status: AuditStatus
    raw_status: Optional[str] = None
    current_rating: Optional[str] = None
    channel_blockers: List[str] = []
    recovery_plan: List[str] = []
    synthetic: bool = False


class Competitor(_ReportModel):
    name: str
    ota_rating: float = 0.0
    estimated_adr: str = Field("", alias="estimatedADR")
    distance: str = ""
    category: str = ""
    top_positives: List[str] = []
    top_negatives: List[str] = []


class RecurringTheme(_ReportModel):
    theme: str
    impact: Literal["positive", "negative", "neutral"] = "neutral"


class GuestReviewPlatform(_ReportModel):
    platform: str
    positive: List[str] = []
    negative: List[str] = []
    sentiment_score: float = 0.0
    recurring_themes: List[RecurringTheme] = []


class ScorecardEntry(_ReportModel):
    parameter: str
    score: float = 0.0
    reason: str = ""


class GroundingSource(_ReportModel):
    title: str
    uri: str


class Report(_ReportModel):
    executive_summary: ExecutiveSummary
    target_hotel_metrics: Optional[TargetHotelMetrics] = None
    protocol_status: ProtocolStatus
    room_type_audit: List[RoomTypeAudit] = []
    treebo_presence: Optional[TreeboPresence] = None
    ota_audit: List[OTAAuditItem] = []
    competitors: List[Competitor] = []
    guest_reviews: List[GuestReviewPlatform] = []
    scorecard: List[ScorecardEntry] = []
    key_risks: List[str] = []
    commercial_upside: List[str] = []
    top_corporates: List[str] = []
    top_travel_agents: List[str] = []
    conditional_action_plan: List[str] = []
    final_recommendation: str = ""
    hard_stop_flagged: bool = False
    hard_stop_reason: Optional[str] = None
    grounding_sources: List[GroundingSource] = []

    def to_wire(self) -> dict:
        """JSON-safe dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)
