"""
Audit Prompts
=============
Request Builder for the audit engine: system prompt, user prompt and the
response schema.

Prompt Design Rules:
    - Every audit encodes the four mandatory research directives from the
      audit profile (network synergy, inventory parity, channel audit,
      competitive index)
    - Channel audit covers exactly the profile's canonical platforms
    - Statuses are restricted to "PASS", "FAIL" or "WARNING"
    - The engine returns ONLY a JSON object matching the response schema

The schema is requested but never trusted; the report validator repairs
whatever comes back.

This module does no I/O and raises nothing.
"""
import logging
from typing import Any, Dict

from app.core.profile import AuditProfile
from app.models.audit_request import AuditRequest
from app.models.report import AuditStatus, EvaluationDecision, EvaluationType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------
def _format_step(step: str, profile: AuditProfile, hotel: str, city: str) -> str:
    platforms = ", ".join(p.display_name for p in profile.platforms)
    competitor_count = f"{profile.competitor_min}-{profile.competitor_max}"
    return step.format(
        hotel=hotel,
        city=city,
        platforms=platforms,
        competitor_count=competitor_count,
    )


def build_system_prompt(
    profile: AuditProfile,
    hotel: str = "[HOTEL NAME]",
    city: str = "[CITY]",
) -> str:
    """
    Return the system instruction for an audit.

    Parameters
    ----------
    profile : AuditProfile
        Supplies persona, directives and canonical platforms.
    hotel, city : str
        Substituted into directive steps. Defaults keep the placeholders.

    Returns
    -------
    str
        Complete system prompt string.
    """
    parts: list[str] = [profile.persona]

    for index, directive in enumerate(profile.directives, start=1):
        lines = [f"DIRECTIVE {index} - {directive.title}:"]
        for step_no, step in enumerate(directive.steps, start=1):
            lines.append(f"{step_no}. {_format_step(step, profile, hotel, city)}")
        parts.append("\n".join(lines))

    statuses = ", ".join(f'"{s.value}"' for s in (AuditStatus.PASS, AuditStatus.FAIL, AuditStatus.WARNING))
    decisions = ", ".join(f'"{d.value}"' for d in EvaluationDecision)
    parts.append(
        "OUTPUT RULES:\n"
        f"- Every status field MUST be strictly one of {statuses}.\n"
        f"- finalDecision MUST be one of {decisions}.\n"
        "- averageScore and every scorecard score are numbers from 0 to 10.\n"
        "- OTA ratings are numbers from 0 to 5; sentimentScore is 0 to 100.\n"
        "- Output ONLY valid JSON matching the provided schema. "
        "No markdown code fences, no commentary."
    )
    return "\n\n".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# User Prompt Builder
# ---------------------------------------------------------------------------
def build_user_prompt(request: AuditRequest, profile: AuditProfile) -> str:
    """
    Build the per-audit user prompt.

    Parameters
    ----------
    request : AuditRequest
        Hotel, city, evaluation mode and optional location hint.
    profile : AuditProfile
        Supplies platform count and competitor range.

    Returns
    -------
    str
        Formatted user prompt string.
    """
    hotel = request.hotel_name
    city = request.city
    parts: list[str] = [
        "PROPERTY STRATEGY AUDIT:",
        f'Asset: "{hotel}"\nCity: "{city}"\nMode: {request.evaluation_type.value}',
    ]

    if request.location_hint is not None:
        parts.append(
            "REQUESTER LOCATION HINT: "
            f"lat {request.location_hint.latitude:.5f}, "
            f"lng {request.location_hint.longitude:.5f}. "
            "Use it to disambiguate the property and nearby competitors."
        )

    platform_count = len(profile.platforms)
    parts.append(
        "EXECUTION PROTOCOL:\n"
        f'1. INVENTORY SCRAPE: Find actual room types for {hotel} {city}. '
        f'Use search queries like "room types in {hotel} {city}" and check official listings.\n'
        f'2. SYNERGY AUDIT: Count {profile.brand} properties in {city} via '
        f'"site:{profile.brand.lower()}.com".\n'
        f"3. CHANNEL AUDIT: Verify presence on the {platform_count} mandatory OTA platforms.\n"
        f"4. COMPETITIVE INDEX: Fetch ADR/Ratings for {profile.competitor_default} local peers."
    )

    if profile.scorecard_parameters:
        params = "\n".join(f"- {p}" for p in profile.scorecard_parameters)
        parts.append(f"SCORECARD PARAMETERS:\n{params}")

    if request.evaluation_type == EvaluationType.HEALTH_REPORT:
        parts.append(
            "This is an existing property: focus the recommendation on recovery "
            "actions and include a conditionalActionPlan."
        )

    parts.append(
        "Populate roomTypeAudit with specific room names and identified risks.\n"
        "Return as valid JSON."
    )
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Response Schema
# ---------------------------------------------------------------------------
def _string() -> Dict[str, Any]:
    return {"type": "STRING"}


def _number() -> Dict[str, Any]:
    return {"type": "NUMBER"}


def _string_list() -> Dict[str, Any]:
    return {"type": "ARRAY", "items": _string()}


def _obj(properties: Dict[str, Any], required: list[str]) -> Dict[str, Any]:
    return {"type": "OBJECT", "properties": properties, "required": required}


def build_response_schema(profile: AuditProfile) -> Dict[str, Any]:
    """
    Return the Gemini responseSchema for a Report.

    Every field the report model knows about is listed, so the engine is
    constrained to the full shape; grounding sources are excluded because
    they arrive out-of-band as citation metadata.
    """
    status = {"type": "STRING", "enum": [s.value for s in (AuditStatus.PASS, AuditStatus.WARNING, AuditStatus.FAIL)]}
    platform_names = [p.display_name for p in profile.platforms]

    schema = _obj(
        {
            "executiveSummary": _obj(
                {
                    "hotelName": _string(),
                    "city": _string(),
                    "evaluationType": {"type": "STRING", "enum": [t.value for t in EvaluationType]},
                    "finalDecision": {"type": "STRING", "enum": [d.value for d in EvaluationDecision]},
                    "averageScore": _number(),
                },
                ["hotelName", "city", "evaluationType", "finalDecision", "averageScore"],
            ),
            "targetHotelMetrics": _obj(
                {
                    "averageOTARating": _number(),
                    "estimatedADR": _number(),
                    "adrCurrency": _string(),
                },
                ["averageOTARating", "estimatedADR", "adrCurrency"],
            ),
            "protocolStatus": _obj(
                {
                    "duplicationAudit": status,
                    "geoVerification": status,
                    "complianceAudit": status,
                    "notes": _string(),
                },
                ["duplicationAudit", "geoVerification", "complianceAudit"],
            ),
            "roomTypeAudit": {
                "type": "ARRAY",
                "items": _obj(
                    {
                        "roomName": _string(),
                        "sizeSqFt": _string(),
                        "occupancy": _string(),
                        "amenities": _string_list(),
                        "descriptionAudit": _string(),
                        "configRisk": _string(),
                    },
                    ["roomName", "occupancy", "amenities", "descriptionAudit", "configRisk"],
                ),
            },
            "treeboPresence": _obj(
                {
                    "cityHotelCount": {"type": "INTEGER"},
                    "nearestHotelName": _string(),
                    "nearestHotelDistance": _string(),
                    "marketShareContext": _string(),
                },
                ["cityHotelCount", "nearestHotelName", "nearestHotelDistance", "marketShareContext"],
            ),
            "otaAudit": {
                "type": "ARRAY",
                "description": "One entry per platform: " + ", ".join(platform_names),
                "items": _obj(
                    {
                        "platform": _string(),
                        "status": status,
                        "currentRating": _string(),
                        "channelBlockers": _string_list(),
                        "recoveryPlan": _string_list(),
                    },
                    ["platform", "status"],
                ),
            },
            "competitors": {
                "type": "ARRAY",
                "minItems": profile.competitor_min,
                "maxItems": profile.competitor_max,
                "items": _obj(
                    {
                        "name": _string(),
                        "otaRating": _number(),
                        "estimatedADR": _string(),
                        "distance": _string(),
                        "category": _string(),
                        "topPositives": _string_list(),
                        "topNegatives": _string_list(),
                    },
                    ["name", "otaRating", "estimatedADR", "distance", "category"],
                ),
            },
            "guestReviews": {
                "type": "ARRAY",
                "items": _obj(
                    {
                        "platform": _string(),
                        "positive": _string_list(),
                        "negative": _string_list(),
                        "sentimentScore": _number(),
                        "recurringThemes": {
                            "type": "ARRAY",
                            "items": _obj(
                                {
                                    "theme": _string(),
                                    "impact": {"type": "STRING", "enum": ["positive", "negative", "neutral"]},
                                },
                                ["theme", "impact"],
                            ),
                        },
                    },
                    ["platform", "positive", "negative", "sentimentScore", "recurringThemes"],
                ),
            },
            "scorecard": {
                "type": "ARRAY",
                "items": _obj(
                    {"parameter": _string(), "score": _number(), "reason": _string()},
                    ["parameter", "score", "reason"],
                ),
            },
            "keyRisks": _string_list(),
            "commercialUpside": _string_list(),
            "topCorporates": _string_list(),
            "topTravelAgents": _string_list(),
            "conditionalActionPlan": _string_list(),
            "finalRecommendation": _string(),
            "hardStopFlagged": {"type": "BOOLEAN"},
            "hardStopReason": _string(),
        },
        [
            "executiveSummary",
            "scorecard",
            "finalRecommendation",
            "protocolStatus",
            "keyRisks",
            "commercialUpside",
            "otaAudit",
            "competitors",
            "targetHotelMetrics",
            "guestReviews",
            "treeboPresence",
            "roomTypeAudit",
            "hardStopFlagged",
        ],
    )
    logger.debug("Built response schema for profile %s", profile.version)
    return schema
