"""
Audit Engine Client Tests
=========================
Gemini REST calls through httpx.MockTransport — no real API calls.

Covers:
    - Request payload (grounding tools, schema, location hint)
    - Text + grounding chunk extraction
    - Error mapping (timeout, HTTP status, transport, empty text, missing key)
"""
import asyncio
import json

import httpx
import pytest

from app.core.errors import AuditServiceError, EmptyResponseError
from app.llm.client import (
    GeminiClient,
    ProviderConfig,
    extract_candidate,
    supports_grounded_json,
)
from app.models.audit_request import LocationHint


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _provider(api_key: str = "test-key") -> ProviderConfig:
    return ProviderConfig(
        name="gemini",
        api_key=api_key,
        base_url="https://gemini.test/v1beta",
        model="gemini-test",
        timeout_seconds=5,
    )


def _gemini_body(text: str = '{"scorecard": []}', chunks=None) -> dict:
    candidate = {"content": {"parts": [{"text": text}]}}
    if chunks is not None:
        candidate["groundingMetadata"] = {"groundingChunks": chunks}
    return {"candidates": [candidate]}


def _client(handler, api_key: str = "test-key") -> GeminiClient:
    return GeminiClient(provider=_provider(api_key), transport=httpx.MockTransport(handler))


async def _generate(client: GeminiClient, location_hint=None):
    try:
        return await client.generate_audit("system", "user", {"type": "OBJECT"}, location_hint)
    finally:
        await client.close()


# ---------------------------------------------------------------------------
# 1. Request payload
# ---------------------------------------------------------------------------
class TestRequestPayload:

    def test_posts_generate_content_with_search_grounding(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_gemini_body())

        _run(_generate(_client(handler)))

        assert seen["url"].startswith("https://gemini.test/v1beta/models/gemini-test:generateContent")
        assert "key=test-key" in seen["url"]
        body = seen["body"]
        assert body["tools"] == [{"google_search": {}}]
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["responseSchema"] == {"type": "OBJECT"}
        assert body["system_instruction"]["parts"][0]["text"] == "system"
        assert body["contents"][0]["parts"][0]["text"] == "user"
        assert "toolConfig" not in body

    def test_location_hint_adds_maps_grounding(self):
        client = GeminiClient(provider=_provider())
        payload = client.build_payload(
            "s", "u", {}, LocationHint(latitude=12.97, longitude=77.59)
        )
        assert {"google_maps": {}} in payload["tools"]
        assert payload["toolConfig"]["retrievalConfig"]["latLng"] == {
            "latitude": 12.97, "longitude": 77.59,
        }

    @pytest.mark.parametrize("model, expected", [
        ("gemini-3-flash-preview", True),
        ("gemini-3-pro-preview", True),
        ("models/gemini-3-flash-preview", True),
        ("gemini-2.5-flash", False),
        ("gemini-1.5-pro", False),
    ])
    def test_grounded_json_support_by_model(self, model, expected):
        assert supports_grounded_json(model) is expected

    def test_older_model_gets_grounding_without_json_mode(self):
        provider = _provider()
        provider.model = "gemini-2.5-flash"
        payload = GeminiClient(provider=provider).build_payload("s", "u", {"type": "OBJECT"})
        assert payload["tools"] == [{"google_search": {}}]
        assert "responseSchema" not in payload["generationConfig"]
        assert "responseMimeType" not in payload["generationConfig"]


# ---------------------------------------------------------------------------
# 2. Response extraction
# ---------------------------------------------------------------------------
class TestResponseExtraction:

    def test_returns_text_and_chunks(self):
        chunks = [{"web": {"uri": "https://treebo.com", "title": "Treebo"}}]

        def handler(request):
            return httpx.Response(200, json=_gemini_body('{"a": 1}', chunks))

        raw = _run(_generate(_client(handler)))
        assert raw.text == '{"a": 1}'
        assert raw.grounding_chunks == chunks
        assert raw.provider_name == "gemini"
        assert raw.model == "gemini-test"

    def test_thought_parts_skipped_and_text_joined(self):
        data = {"candidates": [{"content": {"parts": [
            {"text": "thinking...", "thought": True},
            {"text": '{"a": '},
            {"text": "1}"},
        ]}}]}
        assert extract_candidate(data).text == '{"a": 1}'

    def test_no_candidates_gives_empty_text(self):
        raw = extract_candidate({})
        assert raw.text == ""
        assert raw.grounding_chunks == []


# ---------------------------------------------------------------------------
# 3. Error mapping
# ---------------------------------------------------------------------------
class TestErrorMapping:

    def test_empty_text_raises_empty_response(self):
        def handler(request):
            return httpx.Response(200, json=_gemini_body(""))

        with pytest.raises(EmptyResponseError):
            _run(_generate(_client(handler)))

    def test_http_error_is_retryable_service_error(self):
        def handler(request):
            return httpx.Response(500, json={"error": "boom"})

        with pytest.raises(AuditServiceError) as exc_info:
            _run(_generate(_client(handler)))
        assert exc_info.value.retryable is True
        assert "HTTP 500" in exc_info.value.message

    def test_rate_limit_message(self):
        def handler(request):
            return httpx.Response(429)

        with pytest.raises(AuditServiceError) as exc_info:
            _run(_generate(_client(handler)))
        assert "rate limited" in exc_info.value.message

    def test_timeout_is_service_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(AuditServiceError) as exc_info:
            _run(_generate(_client(handler)))
        assert "timed out" in exc_info.value.message

    def test_transport_error_is_service_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(AuditServiceError) as exc_info:
            _run(_generate(_client(handler)))
        assert "network error" in exc_info.value.message

    def test_non_json_body_is_service_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(AuditServiceError):
            _run(_generate(_client(handler)))

    def test_missing_api_key_fails_before_network(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=_gemini_body())

        with pytest.raises(AuditServiceError) as exc_info:
            _run(_generate(_client(handler, api_key="")))
        assert "GEMINI_API_KEY" in exc_info.value.message
        assert calls == []
