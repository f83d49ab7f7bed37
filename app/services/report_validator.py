"""
Report Validator
================
Turns an untrusted, possibly malformed JSON object from the audit engine
into a Report that satisfies every model invariant.

Repair passes (applied in order; each works on a private deep copy):
    1. Executive summary shape   — rebuild from the request when missing,
                                   averageScore defaults to 5.0
    2. Protocol status shape     — all WARNING + explanatory note when missing
    3. Status normalisation      — trim/uppercase → PASS / WARNING / FAIL,
                                   anything else → NOT AUDITED with raw text kept
    4. Array coercion            — every sequence field becomes a list, top level
                                   and nested; scalar strings coerced
    5. Mandatory channels        — one otaAudit entry per canonical platform,
                                   synthetic WARNING entries for the missing ones
    6. Numeric coercion          — non-numeric → 0 (averageScore → 5.0), clamped
                                   to the documented range
    7. Grounding sources         — web / maps citation chunks → {title, uri}

The validator never raises for field-level problems and never mutates its
input. The only fatal failure (text that is not JSON at all) happens earlier,
in the payload parser.

Score and decision are independent: the engine decides both and no rule here
derives one from the other.
"""
import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.core.constants import (
    DEFAULT_AVERAGE_SCORE,
    DEFAULT_NUMERIC,
    DEFAULT_SOURCE_TITLE,
    PROTOCOL_NOT_RETURNED_NOTE,
    SYNTHETIC_BLOCKER,
    SYNTHETIC_RATING,
    SYNTHETIC_RECOVERY,
)
from app.core.profile import AuditProfile, load_profile
from app.models.audit_request import AuditRequest
from app.models.report import (
    AuditStatus,
    EvaluationDecision,
    EvaluationType,
    Report,
)

logger = logging.getLogger(__name__)


PROTOCOL_FIELDS = ("duplicationAudit", "geoVerification", "complianceAudit")

TOP_LEVEL_STRING_LISTS = (
    "keyRisks",
    "commercialUpside",
    "topCorporates",
    "topTravelAgents",
    "conditionalActionPlan",
)

_KNOWN_STATUSES = {s.value: s for s in (AuditStatus.PASS, AuditStatus.WARNING, AuditStatus.FAIL)}
_IMPACTS = ("positive", "negative", "neutral")


# ---------------------------------------------------------------------------
# Status Normalisation
# ---------------------------------------------------------------------------
def normalize_status(value: Any) -> Tuple[AuditStatus, Optional[str]]:
    """
    Normalise a raw status value.

    Returns
    -------
    (AuditStatus, raw)
        raw is None for recognised statuses and the original text for
        unrecognised ones (kept for display).
    """
    if isinstance(value, AuditStatus):
        return value, None
    raw = "" if value is None else str(value)
    text = raw.strip().upper()
    if text in _KNOWN_STATUSES:
        return _KNOWN_STATUSES[text], None
    if text == AuditStatus.NOT_AUDITED.value:
        return AuditStatus.NOT_AUDITED, None
    return AuditStatus.NOT_AUDITED, raw


# ---------------------------------------------------------------------------
# Coercion Helpers
# ---------------------------------------------------------------------------
def as_list(value: Any) -> list:
    """Return value as a list; anything that is not a list/tuple becomes []."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def to_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return default if isinstance(value, float) and not math.isfinite(value) else str(value)
    return default


def to_optional_str(value: Any) -> Optional[str]:
    text = to_str(value)
    return text if text else None


def to_str_list(value: Any) -> List[str]:
    """Coerce to a list of non-empty strings."""
    out: List[str] = []
    for item in as_list(value):
        text = to_str(item).strip()
        if text:
            out.append(text)
    return out


def to_number(
    value: Any,
    default: float = DEFAULT_NUMERIC,
    lower: Optional[float] = None,
    upper: Optional[float] = None,
) -> float:
    """
    Parse a number, falling back to default.

    Accepts ints, floats and numeric strings (thousand separators allowed).
    Booleans, NaN and infinities are treated as non-numeric.
    """
    number: Optional[float] = None
    if isinstance(value, bool):
        number = None
    elif isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            number = None

    if number is None or not math.isfinite(number):
        return default
    if lower is not None:
        number = max(lower, number)
    if upper is not None:
        number = min(upper, number)
    return number


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y")
    return False


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    return [item for item in as_list(value) if isinstance(item, dict)]


# ---------------------------------------------------------------------------
# Repair Context
# ---------------------------------------------------------------------------
@dataclass
class _RepairContext:
    request: AuditRequest
    profile: AuditProfile
    repairs: List[str] = field(default_factory=list)

    def note(self, message: str, *args: Any) -> None:
        text = message % args if args else message
        self.repairs.append(text)
        logger.debug("Repair: %s", text)


# ---------------------------------------------------------------------------
# Pass 1: Executive Summary
# ---------------------------------------------------------------------------
def _repair_executive_summary(data: Dict[str, Any], ctx: _RepairContext) -> None:
    request = ctx.request
    summary = data.get("executiveSummary")

    if not isinstance(summary, dict):
        ctx.note("executiveSummary missing, rebuilt from request")
        data["executiveSummary"] = {
            "hotelName": request.hotel_name,
            "city": request.city,
            "evaluationType": request.evaluation_type,
            "finalDecision": EvaluationDecision.CONDITIONAL,
            "averageScore": DEFAULT_AVERAGE_SCORE,
        }
        return

    summary["hotelName"] = to_str(summary.get("hotelName")).strip() or request.hotel_name
    summary["city"] = to_str(summary.get("city")).strip() or request.city
    summary["evaluationType"] = EvaluationType.from_text(
        summary.get("evaluationType"), request.evaluation_type
    )
    summary["finalDecision"] = EvaluationDecision.from_text(summary.get("finalDecision"))

    raw_score = summary.get("averageScore")
    score = to_number(raw_score, DEFAULT_AVERAGE_SCORE, 0.0, 10.0)
    if score != raw_score:
        ctx.note("averageScore %r coerced to %.1f", raw_score, score)
    summary["averageScore"] = score


# ---------------------------------------------------------------------------
# Pass 2: Protocol Status Shape
# ---------------------------------------------------------------------------
def _repair_protocol_shape(data: Dict[str, Any], ctx: _RepairContext) -> None:
    if isinstance(data.get("protocolStatus"), dict):
        return
    ctx.note("protocolStatus missing, defaulted to WARNING")
    data["protocolStatus"] = {
        "duplicationAudit": AuditStatus.WARNING,
        "geoVerification": AuditStatus.WARNING,
        "complianceAudit": AuditStatus.WARNING,
        "notes": PROTOCOL_NOT_RETURNED_NOTE,
    }


# ---------------------------------------------------------------------------
# Pass 3: Status Normalisation
# ---------------------------------------------------------------------------
def _normalize_statuses(data: Dict[str, Any], ctx: _RepairContext) -> None:
    protocol = data["protocolStatus"]
    unrecognized: Dict[str, str] = {}
    for name in PROTOCOL_FIELDS:
        status, raw = normalize_status(protocol.get(name))
        protocol[name] = status
        if raw is not None:
            unrecognized[name] = raw
            logger.warning("Unrecognised protocol status %s=%r", name, raw)
    protocol["unrecognized"] = unrecognized
    protocol["notes"] = to_optional_str(protocol.get("notes"))

    for item in _dict_items(data.get("otaAudit")):
        status, raw = normalize_status(item.get("status"))
        item["status"] = status
        item["rawStatus"] = raw
        if raw is not None:
            logger.warning(
                "Unrecognised channel status for %r: %r", item.get("platform"), raw
            )


# ---------------------------------------------------------------------------
# Pass 4: Array Coercion
# ---------------------------------------------------------------------------
def _coerce_room(item: Dict[str, Any]) -> Dict[str, Any]:
    item["roomName"] = to_str(item.get("roomName")).strip() or "Unnamed Room"
    item["sizeSqFt"] = to_optional_str(item.get("sizeSqFt"))
    item["occupancy"] = to_str(item.get("occupancy"))
    item["amenities"] = list(dict.fromkeys(to_str_list(item.get("amenities"))))
    item["descriptionAudit"] = to_str(item.get("descriptionAudit"))
    item["configRisk"] = to_str(item.get("configRisk"))
    return item


def _coerce_channel(item: Dict[str, Any]) -> Dict[str, Any]:
    item["platform"] = to_str(item.get("platform")).strip() or "Unknown Platform"
    item["currentRating"] = to_optional_str(item.get("currentRating"))
    item["channelBlockers"] = to_str_list(item.get("channelBlockers"))
    item["recoveryPlan"] = to_str_list(item.get("recoveryPlan"))
    item["synthetic"] = to_bool(item.get("synthetic"))
    return item


def _coerce_competitor(item: Dict[str, Any]) -> Dict[str, Any]:
    item["name"] = to_str(item.get("name")).strip() or "Unnamed Competitor"
    item["estimatedADR"] = to_str(item.get("estimatedADR"))
    item["distance"] = to_str(item.get("distance"))
    item["category"] = to_str(item.get("category")).strip()
    item["topPositives"] = to_str_list(item.get("topPositives"))
    item["topNegatives"] = to_str_list(item.get("topNegatives"))
    return item


def _coerce_theme(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    theme = to_str(item.get("theme")).strip()
    if not theme:
        return None
    impact = to_str(item.get("impact")).strip().lower()
    return {"theme": theme, "impact": impact if impact in _IMPACTS else "neutral"}


def _coerce_review(item: Dict[str, Any]) -> Dict[str, Any]:
    item["platform"] = to_str(item.get("platform")).strip() or "Unknown Platform"
    item["positive"] = to_str_list(item.get("positive"))
    item["negative"] = to_str_list(item.get("negative"))
    themes = (_coerce_theme(t) for t in _dict_items(item.get("recurringThemes")))
    item["recurringThemes"] = [t for t in themes if t is not None]
    return item


def _coerce_score_entry(item: Dict[str, Any]) -> Dict[str, Any]:
    item["parameter"] = to_str(item.get("parameter")).strip() or "Unnamed Parameter"
    item["reason"] = to_str(item.get("reason"))
    return item


_OBJECT_LISTS = (
    ("roomTypeAudit", _coerce_room),
    ("otaAudit", _coerce_channel),
    ("competitors", _coerce_competitor),
    ("guestReviews", _coerce_review),
    ("scorecard", _coerce_score_entry),
)


def _coerce_arrays(data: Dict[str, Any], ctx: _RepairContext) -> None:
    for key, coerce in _OBJECT_LISTS:
        raw = data.get(key)
        if not isinstance(raw, (list, tuple)):
            if raw is not None:
                ctx.note("%s was %s, replaced with []", key, type(raw).__name__)
            data[key] = []
            continue
        items = _dict_items(raw)
        if len(items) != len(raw):
            ctx.note("%s: dropped %d non-object entries", key, len(raw) - len(items))
        data[key] = [coerce(item) for item in items]

    for key in TOP_LEVEL_STRING_LISTS:
        raw = data.get(key)
        if raw is not None and not isinstance(raw, (list, tuple)):
            ctx.note("%s was %s, replaced with []", key, type(raw).__name__)
        data[key] = to_str_list(raw)

    # optional objects: keep only well-formed ones
    presence = data.get("treeboPresence")
    if isinstance(presence, dict):
        presence["nearestHotelName"] = to_str(presence.get("nearestHotelName"))
        presence["nearestHotelDistance"] = to_str(presence.get("nearestHotelDistance"))
        presence["marketShareContext"] = to_str(presence.get("marketShareContext"))
    else:
        data["treeboPresence"] = None

    metrics = data.get("targetHotelMetrics")
    if isinstance(metrics, dict):
        metrics["adrCurrency"] = to_str(metrics.get("adrCurrency")).strip()
    else:
        data["targetHotelMetrics"] = None

    data["finalRecommendation"] = to_str(data.get("finalRecommendation"))
    data["hardStopFlagged"] = to_bool(data.get("hardStopFlagged"))
    data["hardStopReason"] = to_optional_str(data.get("hardStopReason"))


# ---------------------------------------------------------------------------
# Pass 5: Mandatory Channels
# ---------------------------------------------------------------------------
def _complete_channels(data: Dict[str, Any], ctx: _RepairContext) -> None:
    channels: List[Dict[str, Any]] = data["otaAudit"]
    for platform in ctx.profile.platforms:
        if any(platform.matches(item["platform"]) for item in channels):
            continue
        logger.warning("Channel %s missing from engine output, inserting placeholder", platform.key)
        ctx.note("otaAudit: synthetic entry for %s", platform.display_name)
        channels.append({
            "platform": platform.display_name,
            "status": AuditStatus.WARNING,
            "rawStatus": None,
            "currentRating": SYNTHETIC_RATING,
            "channelBlockers": [SYNTHETIC_BLOCKER],
            "recoveryPlan": [SYNTHETIC_RECOVERY.format(platform=platform.display_name)],
            "synthetic": True,
        })


# ---------------------------------------------------------------------------
# Pass 6: Numeric Coercion
# ---------------------------------------------------------------------------
def _coerce_numbers(data: Dict[str, Any], ctx: _RepairContext) -> None:
    metrics = data.get("targetHotelMetrics")
    if metrics is not None:
        metrics["averageOTARating"] = to_number(metrics.get("averageOTARating"), lower=0.0, upper=5.0)
        metrics["estimatedADR"] = to_number(metrics.get("estimatedADR"), lower=0.0)

    presence = data.get("treeboPresence")
    if presence is not None:
        presence["cityHotelCount"] = int(to_number(presence.get("cityHotelCount"), lower=0.0))

    for competitor in data["competitors"]:
        competitor["otaRating"] = to_number(competitor.get("otaRating"), lower=0.0, upper=5.0)

    for review in data["guestReviews"]:
        review["sentimentScore"] = to_number(review.get("sentimentScore"), lower=0.0, upper=100.0)

    for entry in data["scorecard"]:
        entry["score"] = to_number(entry.get("score"), lower=0.0, upper=10.0)


# ---------------------------------------------------------------------------
# Pass 7: Grounding Sources
# ---------------------------------------------------------------------------
def extract_grounding_sources(chunks: Optional[Iterable[Any]]) -> List[Dict[str, str]]:
    """
    Build grounding sources from citation chunks.

    Only chunks carrying a "web" or "maps" citation are kept.
    """
    sources: List[Dict[str, str]] = []
    for chunk in chunks or []:
        if not isinstance(chunk, dict):
            continue
        citation = chunk.get("web") or chunk.get("maps")
        if not isinstance(citation, dict):
            continue
        sources.append({
            "title": to_str(citation.get("title")).strip() or DEFAULT_SOURCE_TITLE,
            "uri": to_str(citation.get("uri")).strip(),
        })
    return sources


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def validate_report(
    raw: Any,
    request: AuditRequest,
    grounding_chunks: Optional[Iterable[Any]] = None,
    profile: Optional[AuditProfile] = None,
) -> Report:
    """
    Repair an engine payload into a Report.

    Parameters
    ----------
    raw : Any
        Parsed JSON from the engine. Non-dict values are treated as an
        empty object.
    request : AuditRequest
        The originating request; supplies executive summary defaults.
    grounding_chunks : iterable or None
        Citation chunks from the engine's grounding metadata.
    profile : AuditProfile or None
        Canonical platforms. Defaults to the configured profile.

    Returns
    -------
    Report
        A report satisfying every model invariant.
    """
    ctx = _RepairContext(request=request, profile=profile or load_profile())
    data: Dict[str, Any] = copy.deepcopy(raw) if isinstance(raw, dict) else {}
    if not isinstance(raw, dict):
        ctx.note("payload was %s, treated as empty object", type(raw).__name__)

    _repair_executive_summary(data, ctx)
    _repair_protocol_shape(data, ctx)
    _normalize_statuses(data, ctx)
    _coerce_arrays(data, ctx)
    _complete_channels(data, ctx)
    _coerce_numbers(data, ctx)
    data["groundingSources"] = extract_grounding_sources(grounding_chunks)

    report = Report.model_validate(data)
    if ctx.repairs:
        logger.info(
            "Report for %s repaired (%d fixes)",
            report.executive_summary.hotel_name, len(ctx.repairs),
        )
    return report
