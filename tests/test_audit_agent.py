"""
Audit Agent & Session Tests
===========================
End-to-end pipeline with the engine client mocked (AsyncMock).

Covers:
    - Happy path: prompts → engine → parse → repair
    - Corrupted payload and engine timeout
    - Location hint acquisition (bounded, never fatal)
    - Session state: validation, retry, single-flight guard, deep links
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.agents.audit_agent import AuditAgent, acquire_location_hint
from app.core.errors import (
    AuditInProgressError,
    AuditServiceError,
    CorruptedPayloadError,
)
from app.llm.client import RawAuditResponse
from app.models.audit_request import AuditRequest, LocationHint
from app.models.report import AuditStatus, EvaluationDecision, EvaluationType
from app.services.deep_link import MappingParamStore
from app.state.audit_session import AuditSession


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


ENGINE_TEXT = """```json
{
  "executiveSummary": {"hotelName": "Treebo Trend Sapphire", "city": "Gurgaon",
                       "evaluationType": "New Onboarding", "finalDecision": "approve",
                       "averageScore": "7.8"},
  "protocolStatus": {"duplicationAudit": "pass", "geoVerification": "PASS",
                     "complianceAudit": "Warning"},
  "otaAudit": [{"platform": "Booking.com", "status": "PASS", "currentRating": "8.4"}],
  "competitors": [{"name": "Comp A", "category": "Budget", "otaRating": 3.9}],
  "keyRisks": "none"
}
```"""

CHUNKS = [{"web": {"uri": "https://www.booking.com/hotel/in/x", "title": "Booking.com"}}]


def _mock_client(text=ENGINE_TEXT, chunks=CHUNKS, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.generate_audit = AsyncMock(side_effect=side_effect)
    else:
        client.generate_audit = AsyncMock(
            return_value=RawAuditResponse(text=text, grounding_chunks=chunks, model="gemini-test")
        )
    client.close = AsyncMock()
    return client


def _request(**kwargs):
    return AuditRequest.create("Treebo Trend Sapphire", "Gurgaon", **kwargs)


# ---------------------------------------------------------------------------
# 1. Audit agent
# ---------------------------------------------------------------------------
class TestAuditAgent:

    def test_happy_path_produces_repaired_report(self):
        client = _mock_client()
        report = _run(AuditAgent(client=client).run(_request()))

        summary = report.executive_summary
        assert summary.final_decision == EvaluationDecision.APPROVE
        assert summary.average_score == 7.8
        assert report.protocol_status.duplication_audit == AuditStatus.PASS
        assert report.protocol_status.compliance_audit == AuditStatus.WARNING
        assert len(report.ota_audit) == 6
        assert report.key_risks == []
        assert report.grounding_sources[0].uri == "https://www.booking.com/hotel/in/x"

    def test_prompts_and_schema_sent_once(self):
        client = _mock_client()
        hint = LocationHint(latitude=28.45, longitude=77.02)
        _run(AuditAgent(client=client).run(_request(location_hint=hint)))

        client.generate_audit.assert_awaited_once()
        system_prompt, user_prompt, schema, location = client.generate_audit.call_args.args
        assert "Treebo Trend Sapphire" in user_prompt
        assert "site:treebo.com hotels in Gurgaon" in system_prompt
        assert schema["type"] == "OBJECT"
        assert location == hint

    def test_refusal_text_is_corrupted(self):
        client = _mock_client(text="I'm unable to complete this audit.")
        with pytest.raises(CorruptedPayloadError):
            _run(AuditAgent(client=client).run(_request()))

    def test_engine_error_propagates(self):
        client = _mock_client(side_effect=AuditServiceError("boom"))
        with pytest.raises(AuditServiceError):
            _run(AuditAgent(client=client).run(_request()))

    def test_slow_engine_times_out(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        client = _mock_client(side_effect=slow)
        with pytest.raises(AuditServiceError) as exc_info:
            _run(AuditAgent(client=client, timeout_seconds=0.01).run(_request()))
        assert exc_info.value.retryable is True

    def test_close_closes_client(self):
        client = _mock_client()
        _run(AuditAgent(client=client).close())
        client.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# 2. Location hint
# ---------------------------------------------------------------------------
class TestLocationHint:

    def test_no_provider(self):
        assert _run(acquire_location_hint(None)) is None

    def test_provider_answer_used(self):
        hint = LocationHint(latitude=12.9, longitude=77.6)

        async def provider():
            return hint

        assert _run(acquire_location_hint(provider)) == hint

    def test_slow_provider_abandoned(self):
        async def provider():
            await asyncio.sleep(1)

        assert _run(acquire_location_hint(provider, timeout=0.01)) is None

    def test_failing_provider_is_not_fatal(self):
        async def provider():
            raise PermissionError("denied")

        assert _run(acquire_location_hint(provider)) is None


# ---------------------------------------------------------------------------
# 3. Audit session
# ---------------------------------------------------------------------------
class TestAuditSession:

    def test_validation_failure_never_calls_engine(self):
        client = _mock_client()
        session = AuditSession(AuditAgent(client=client))
        result = _run(session.submit("ab", "G"))

        assert result is None
        assert session.error_kind == "validation"
        assert session.field_errors.hotel_name is True
        assert session.field_errors.city is True
        client.generate_audit.assert_not_awaited()

    def test_success_writes_deep_link_and_resets_filter(self):
        params = MappingParamStore()
        session = AuditSession(AuditAgent(client=_mock_client()), params)
        session.toggle_category("Budget")

        report = _run(session.submit("Treebo Trend Sapphire", "Gurgaon", EvaluationType.HEALTH_REPORT))

        assert report is session.report
        assert session.loading is False
        assert session.error is None
        assert session.category_selection == ["All"]
        assert params.as_dict() == {
            "hotel": "Treebo Trend Sapphire",
            "city": "Gurgaon",
            "type": "Existing Hotel Health Report",
        }

    def test_failure_keeps_previous_report(self):
        client = _mock_client()
        session = AuditSession(AuditAgent(client=client))
        first = _run(session.submit("Treebo Trend Sapphire", "Gurgaon"))

        client.generate_audit.side_effect = AuditServiceError("The audit engine timed out.")
        result = _run(session.submit("Hotel Blue Bell", "Pune"))

        assert result is None
        assert session.report is first
        assert session.error_kind == "service"
        assert session.loading is False

    def test_corrupted_kind(self):
        session = AuditSession(AuditAgent(client=_mock_client(text="no json")))
        _run(session.submit("Treebo Trend Sapphire", "Gurgaon"))
        assert session.error_kind == "corrupted"
        assert "corrupted" in session.error.lower()

    def test_retry_reissues_identical_request(self):
        client = _mock_client(side_effect=AuditServiceError("down"))
        session = AuditSession(AuditAgent(client=client))
        _run(session.submit("Treebo Trend Sapphire", "Gurgaon"))

        client.generate_audit.side_effect = None
        client.generate_audit.return_value = RawAuditResponse(text=ENGINE_TEXT)
        report = _run(session.retry())

        assert report is not None
        assert client.generate_audit.await_count == 2
        first_call, second_call = client.generate_audit.call_args_list
        assert first_call.args == second_call.args

    def test_retry_without_history(self):
        session = AuditSession(AuditAgent(client=_mock_client()))
        assert _run(session.retry()) is None

    def test_second_submit_during_location_wait_rejected(self):
        client = _mock_client()

        async def slow_location():
            await asyncio.sleep(0.2)
            return LocationHint(latitude=28.45, longitude=77.02)

        session = AuditSession(AuditAgent(client=client), location_provider=slow_location)

        async def both():
            return await asyncio.gather(
                session.submit("Treebo Trend Sapphire", "Gurgaon"),
                session.submit("Hotel Blue Bell", "Pune"),
                return_exceptions=True,
            )

        first, second = _run(both())
        assert first is session.report
        assert isinstance(second, AuditInProgressError)
        client.generate_audit.assert_awaited_once()
        assert session.loading is False

    def test_retry_and_link_load_rejected_while_audit_runs(self):
        release = None

        async def slow_audit(*args, **kwargs):
            await release.wait()
            return RawAuditResponse(text=ENGINE_TEXT)

        client = _mock_client(side_effect=slow_audit)
        session = AuditSession(AuditAgent(client=client))
        session.last_request = _request()

        async def overlap():
            nonlocal release
            release = asyncio.Event()
            running = asyncio.ensure_future(session.submit("Treebo Trend Sapphire", "Gurgaon"))
            await asyncio.sleep(0)
            assert session.loading is True
            with pytest.raises(AuditInProgressError):
                await session.retry()
            session.params.set("hotel", "Hotel Blue Bell")
            session.params.set("city", "Pune")
            with pytest.raises(AuditInProgressError):
                await session.load_from_params()
            release.set()
            return await running

        report = _run(overlap())
        assert report is not None
        client.generate_audit.assert_awaited_once()
        assert session.loading is False

    def test_loading_cleared_after_failure(self):
        client = _mock_client(side_effect=AuditServiceError("down"))
        session = AuditSession(AuditAgent(client=client))
        _run(session.submit("Treebo Trend Sapphire", "Gurgaon"))
        assert session.loading is False
        client.generate_audit.side_effect = None
        client.generate_audit.return_value = RawAuditResponse(text=ENGINE_TEXT)
        assert _run(session.submit("Treebo Trend Sapphire", "Gurgaon")) is not None

    def test_load_from_params(self):
        params = MappingParamStore({"hotel": "Treebo Trend Sapphire", "city": "Gurgaon"})
        client = _mock_client()
        session = AuditSession(AuditAgent(client=client), params)
        report = _run(session.load_from_params())
        assert report is not None
        client.generate_audit.assert_awaited_once()

    def test_load_from_params_without_link(self):
        client = _mock_client()
        session = AuditSession(AuditAgent(client=client), MappingParamStore())
        assert _run(session.load_from_params()) is None
        client.generate_audit.assert_not_awaited()

    def test_reset_clears_state_and_link(self):
        params = MappingParamStore({"ref": "mail"})
        session = AuditSession(AuditAgent(client=_mock_client()), params)
        _run(session.submit("Treebo Trend Sapphire", "Gurgaon"))
        session.reset()
        assert session.report is None
        assert params.as_dict() == {"ref": "mail"}
