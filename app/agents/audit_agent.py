"""
Audit Agent
===========
Runs one commercial audit end to end.

Pipeline:
    1. Build system prompt, user prompt and response schema (Request Builder)
    2. Call the audit engine once, bounded by AUDIT_TIMEOUT_SECONDS
    3. Parse the returned text as a JSON object (fatal on failure)
    4. Repair the object into a Report (never fatal)

Error Policy:
    - AuditServiceError / EmptyResponseError propagate (retryable by the user)
    - CorruptedPayloadError propagates ("corrupted data")
    - Field-level malformations are repaired silently
    - No automatic retries

The AuditAgent does NOT:
    - Validate form input (AuditRequest.create does that)
    - Hold UI state or the previous report (AuditSession does that)
    - Write deep-link parameters or exports
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from app.core.config import AUDIT_TIMEOUT_SECONDS, LOCATION_TIMEOUT_SECONDS
from app.core.errors import AuditServiceError
from app.core.profile import AuditProfile, load_profile
from app.llm.client import GeminiClient
from app.llm.prompts import build_response_schema, build_system_prompt, build_user_prompt
from app.models.audit_request import AuditRequest, LocationHint
from app.models.report import Report
from app.parser.payload_parser import parse_audit_payload
from app.services.report_validator import validate_report

logger = logging.getLogger(__name__)

LocationProvider = Callable[[], Awaitable[Optional[LocationHint]]]


async def acquire_location_hint(
    provider: Optional[LocationProvider],
    timeout: float = LOCATION_TIMEOUT_SECONDS,
) -> Optional[LocationHint]:
    """
    Best-effort location lookup with a bounded wait.

    Returns None when no provider is given, the provider fails, or it does
    not answer within `timeout` seconds. Never raises.
    """
    if provider is None:
        return None
    try:
        return await asyncio.wait_for(provider(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.info("Location hint not available within %.1fs, continuing without it", timeout)
    except Exception as e:
        logger.info("Location hint unavailable: %s", e)
    return None


class AuditAgent:
    """
    Produces a Report for an AuditRequest.

    Parameters
    ----------
    client : GeminiClient or None
        Audit engine client (auto-created if not provided).
    profile : AuditProfile or None
        Audit profile (loaded from config if not provided).
    timeout_seconds : float
        Hard ceiling for the engine call.
    """

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        profile: Optional[AuditProfile] = None,
        timeout_seconds: float = AUDIT_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client or GeminiClient()
        self.profile = profile or load_profile()
        self.timeout_seconds = timeout_seconds

    async def run(self, request: AuditRequest) -> Report:
        """
        Run the audit.

        Raises
        ------
        AuditServiceError
            Engine unreachable, timed out, rejected the call, or returned no text.
        CorruptedPayloadError
            Engine text is not a JSON object.
        """
        logger.info(
            "[AUDIT] Starting %s for %s, %s",
            request.evaluation_type.value, request.hotel_name, request.city,
        )
        start = time.time()

        system_prompt = build_system_prompt(self.profile, request.hotel_name, request.city)
        user_prompt = build_user_prompt(request, self.profile)
        schema = build_response_schema(self.profile)

        try:
            raw = await asyncio.wait_for(
                self.client.generate_audit(
                    system_prompt, user_prompt, schema, request.location_hint
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning("[AUDIT] Timed out after %.0fs for %s", self.timeout_seconds, request.hotel_name)
            raise AuditServiceError("Audit engine timed out.") from e

        payload = parse_audit_payload(raw.text)
        report = validate_report(payload, request, raw.grounding_chunks, self.profile)

        logger.info(
            "[AUDIT] Finished %s in %.1fs. Decision: %s | Score: %.1f | Channels: %d | Sources: %d",
            request.hotel_name,
            time.time() - start,
            report.executive_summary.final_decision.value,
            report.executive_summary.average_score,
            len(report.ota_audit),
            len(report.grounding_sources),
        )
        return report

    async def close(self) -> None:
        await self.client.close()
