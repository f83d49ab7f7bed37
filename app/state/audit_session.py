"""
Audit Session
=============
State for one user session, mirroring what the front-end shows.

Fields:
    loading             — True while the single audit request is in flight
    report              — last successfully produced Report (kept on failure)
    error               — message of the last failed attempt, if any
    error_kind          — "validation" | "service" | "corrupted" | None
    field_errors        — per-field validation flags
    category_selection  — competitor category filter (reset to ["All"] on success)
    last_request        — request re-issued by retry()

Concurrency:
    Only one audit is in flight per session. The loading flag is set before
    the location wait starts, so submit(), retry() or load_from_params()
    during that wait or the engine call raises AuditInProgressError.
    There is no cancellation.
"""
import logging
from typing import List, Optional

from app.core.constants import CATEGORY_ALL
from app.core.errors import (
    AuditError,
    AuditInProgressError,
    CorruptedPayloadError,
    InputValidationError,
)
from app.agents.audit_agent import AuditAgent, LocationProvider, acquire_location_hint
from app.models.audit_request import AuditRequest, FieldErrors
from app.models.report import EvaluationType, Report
from app.services.deep_link import (
    MappingParamStore,
    QueryParamStore,
    clear_deep_link,
    read_deep_link,
    write_deep_link,
)
from app.services.report_views import toggle_category

logger = logging.getLogger(__name__)


class AuditSession:
    """
    Usage:
        session = AuditSession(agent, params)
        report = await session.submit("Treebo Trend Sapphire", "Gurgaon")
        if session.error:
            await session.retry()
    """

    def __init__(
        self,
        agent: AuditAgent,
        params: Optional[QueryParamStore] = None,
        location_provider: Optional[LocationProvider] = None,
    ) -> None:
        self.agent = agent
        self.params = params if params is not None else MappingParamStore()
        self.location_provider = location_provider

        self.loading = False
        self.report: Optional[Report] = None
        self.error: Optional[str] = None
        self.error_kind: Optional[str] = None
        self.field_errors = FieldErrors()
        self.category_selection: List[str] = [CATEGORY_ALL]
        self.last_request: Optional[AuditRequest] = None

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    async def submit(
        self,
        hotel_name: str,
        city: str,
        evaluation_type: EvaluationType | str = EvaluationType.NEW_ONBOARDING,
    ) -> Optional[Report]:
        """
        Validate inputs and run an audit.

        Returns the new Report, or None if validation or the audit failed
        (see error / error_kind / field_errors).
        """
        if self.loading:
            raise AuditInProgressError()

        try:
            request = AuditRequest.create(hotel_name, city, evaluation_type)
        except InputValidationError as e:
            self.field_errors = FieldErrors(**e.field_errors)
            self.error = e.message
            self.error_kind = "validation"
            return None

        self.field_errors = FieldErrors()
        self._begin()
        try:
            location = await acquire_location_hint(self.location_provider)
            return await self._execute(request.with_location(location))
        finally:
            self.loading = False

    async def retry(self) -> Optional[Report]:
        """Re-issue the identical last request."""
        if self.last_request is None:
            logger.warning("Retry requested with no previous audit")
            return None
        self._begin()
        try:
            return await self._execute(self.last_request)
        finally:
            self.loading = False

    async def load_from_params(self) -> Optional[Report]:
        """Run an audit automatically when the deep-link parameters name one."""
        request = read_deep_link(self.params)
        if request is None:
            return None
        self._begin()
        logger.info("Auto-loading shared audit for %s, %s", request.hotel_name, request.city)
        try:
            return await self._execute(request)
        finally:
            self.loading = False

    def reset(self) -> None:
        self.report = None
        self.error = None
        self.error_kind = None
        self.field_errors = FieldErrors()
        self.category_selection = [CATEGORY_ALL]
        clear_deep_link(self.params)

    def toggle_category(self, category: str) -> List[str]:
        self.category_selection = toggle_category(self.category_selection, category)
        return self.category_selection

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _begin(self) -> None:
        # no await between the check and the set
        if self.loading:
            raise AuditInProgressError()
        self.loading = True

    async def _execute(self, request: AuditRequest) -> Optional[Report]:
        """Run one audit. Callers own the loading flag."""
        self.error = None
        self.error_kind = None
        self.last_request = request
        try:
            report = await self.agent.run(request)
        except CorruptedPayloadError as e:
            logger.error("Audit payload corrupted for %s: %s", request.hotel_name, e.message)
            self.error = e.message
            self.error_kind = "corrupted"
            return None
        except AuditError as e:
            logger.error("Audit failed for %s: %s", request.hotel_name, e.message)
            self.error = e.message
            self.error_kind = "service"
            return None

        self.report = report
        self.category_selection = [CATEGORY_ALL]
        write_deep_link(self.params, request)
        return report
