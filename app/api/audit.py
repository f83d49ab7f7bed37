"""
Audit API
=========
Endpoints used by the browser front-end.

    POST /api/audit          — run an audit from form input
    GET  /api/audit          — run an audit from deep-link params (?hotel=&city=&type=)
    POST /api/audit/views    — ordered channels, category filter, comparison chart
    POST /api/audit/share    — share title / text / url + export filename
    POST /api/audit/export   — download the JSON export document

Error mapping:
    InputValidationError   → 422 {message, fieldErrors}
    AuditServiceError      → 502 {error: "service_unavailable", retryable: true}
    CorruptedPayloadError  → 502 {error: "corrupted_data", retryable: true}
"""
import logging
import os
import shutil
import tempfile
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.background import BackgroundTask

from app.agents.audit_agent import AuditAgent
from app.core import config
from app.core.constants import CATEGORY_ALL
from app.core.errors import (
    AuditError,
    CorruptedPayloadError,
    InputValidationError,
)
from app.core.profile import load_profile
from app.models.audit_request import AuditRequest, LocationHint
from app.models.report import EvaluationType, Report
from app.services.deep_link import (
    MappingParamStore,
    build_share_payload,
    export_filename,
    read_deep_link,
)
from app.services.report_views import (
    METRIC_RATING,
    available_categories,
    build_comparison_chart,
    filter_competitors,
    score_band,
    sort_ota_audit,
)
from app.services.report_writer import ReportWriter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Audit"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuditBody(_CamelModel):
    hotel_name: str = ""
    city: str = ""
    evaluation_type: EvaluationType = EvaluationType.NEW_ONBOARDING
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ViewsBody(_CamelModel):
    report: Report
    categories: List[str] = [CATEGORY_ALL]
    metric: Literal["rating", "adr"] = METRIC_RATING


class ReportBody(_CamelModel):
    report: Report


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
_agent: Optional[AuditAgent] = None


def get_agent() -> AuditAgent:
    """Shared AuditAgent (one HTTP client per process)."""
    global _agent
    if _agent is None:
        _agent = AuditAgent()
    return _agent


async def close_agent() -> None:
    """Close the shared AuditAgent if one was ever created."""
    global _agent
    if _agent is not None:
        await _agent.close()
        _agent = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _http_error(exc: AuditError) -> HTTPException:
    if isinstance(exc, InputValidationError):
        return HTTPException(
            status_code=422,
            detail={"message": exc.message, "fieldErrors": exc.field_errors},
        )
    if isinstance(exc, CorruptedPayloadError):
        return HTTPException(
            status_code=502,
            detail={"error": "corrupted_data", "message": exc.message, "retryable": True},
        )
    return HTTPException(
        status_code=502,
        detail={"error": "service_unavailable", "message": exc.message, "retryable": exc.retryable},
    )


def _audit_response(report: Report) -> dict:
    profile = load_profile()
    share = build_share_payload(report, config.PUBLIC_APP_URL, profile)
    return {
        "report": report.to_wire(),
        "orderedChannels": [
            item.model_dump(mode="json", by_alias=True)
            for item in sort_ota_audit(report.ota_audit, profile)
        ],
        "categories": available_categories(report.competitors),
        "scoreBand": score_band(report.executive_summary.average_score),
        "share": {"title": share.title, "text": share.text, "url": share.url},
        "exportFilename": export_filename(report, "pdf", profile),
    }


async def _run_audit(agent: AuditAgent, request: AuditRequest) -> dict:
    try:
        report = await agent.run(request)
    except AuditError as exc:
        logger.error("[API] Audit failed for %s: %s", request.hotel_name, exc.message)
        raise _http_error(exc)
    return _audit_response(report)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("/audit")
async def create_audit(body: AuditBody, agent: AuditAgent = Depends(get_agent)):
    """Validate form input and run one audit."""
    location = None
    if body.latitude is not None and body.longitude is not None:
        location = LocationHint(latitude=body.latitude, longitude=body.longitude)
    try:
        request = AuditRequest.create(body.hotel_name, body.city, body.evaluation_type, location)
    except InputValidationError as exc:
        logger.info("[API] Rejected audit input: %s", exc.field_errors)
        raise _http_error(exc)
    return await _run_audit(agent, request)


@router.get("/audit")
async def audit_from_link(request: Request, agent: AuditAgent = Depends(get_agent)):
    """Run the audit named by the deep-link query parameters."""
    audit_request = read_deep_link(MappingParamStore(dict(request.query_params)))
    if audit_request is None:
        raise HTTPException(
            status_code=400,
            detail={"message": "Both 'hotel' and 'city' query parameters are required."},
        )
    return await _run_audit(agent, audit_request)


@router.post("/audit/views")
async def report_views(body: ViewsBody):
    """Derived views for the report page (never changes the report)."""
    report = body.report
    chart = build_comparison_chart(report, body.categories, body.metric)
    return {
        "orderedChannels": [
            item.model_dump(mode="json", by_alias=True)
            for item in sort_ota_audit(report.ota_audit)
        ],
        "categories": available_categories(report.competitors),
        "competitors": [
            c.model_dump(mode="json", by_alias=True)
            for c in filter_competitors(report.competitors, body.categories)
        ],
        "chart": {
            "metric": chart.metric,
            "axisMax": chart.axis_max,
            "bars": [
                {"name": b.name, "value": b.value, "percent": b.percent, "isTarget": b.is_target}
                for b in chart.bars
            ],
        },
        "scoreBand": score_band(report.executive_summary.average_score),
    }


@router.post("/audit/share")
async def share_report(body: ReportBody):
    share = build_share_payload(body.report, config.PUBLIC_APP_URL)
    return {
        "title": share.title,
        "text": share.text,
        "url": share.url,
        "exportFilename": export_filename(body.report, "pdf"),
    }


@router.post("/audit/export")
async def export_report(body: ReportBody):
    os.makedirs(config.REPORT_EXPORT_DIR, exist_ok=True)
    scratch_dir = tempfile.mkdtemp(prefix="export_", dir=config.REPORT_EXPORT_DIR)
    path = ReportWriter.write_report(body.report, scratch_dir)
    if path is None:
        shutil.rmtree(scratch_dir, ignore_errors=True)
        raise HTTPException(status_code=500, detail={"message": "Export failed."})
    return FileResponse(
        path,
        media_type="application/json",
        filename=export_filename(body.report, "json"),
        background=BackgroundTask(shutil.rmtree, scratch_dir, ignore_errors=True),
    )
