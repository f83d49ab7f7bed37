"""
Audit Engine Client
===================
Asynchronous client wrapper for the Google Gemini REST API.

One call per audit:
    - POST models/{model}:generateContent with Google Search grounding
    - JSON response mode constrained by the report response schema (Gemini 3+;
      older models get the prompt rules only, see supports_grounded_json)
    - Optional Google Maps grounding + lat/lng retrieval config when the
      caller supplied a location hint

Failure Policy:
    - Timeout, transport error, HTTP error status → AuditServiceError (retryable)
    - Success status without text                 → EmptyResponseError
    - No automatic retries; the caller decides whether to re-issue

The client returns raw text plus the citation chunks from
groundingMetadata. It never parses the JSON body; that is the payload
parser's job.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import (
    AUDIT_TIMEOUT_SECONDS,
    GEMINI_API_KEY,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    GEMINI_THINKING_BUDGET,
)
from app.core.errors import AuditServiceError, EmptyResponseError
from app.models.audit_request import LocationHint

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider Configuration
# ---------------------------------------------------------------------------
@dataclass
class ProviderConfig:
    """Configuration for the audit engine provider."""
    name: str
    api_key: str
    base_url: str
    model: str
    timeout_seconds: float = 120.0
    thinking_budget: int = 4096
    temperature: float = 0.2


GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    api_key=GEMINI_API_KEY or "",
    base_url=GEMINI_BASE_URL,
    model=GEMINI_MODEL,
    timeout_seconds=AUDIT_TIMEOUT_SECONDS,
    thinking_budget=GEMINI_THINKING_BUDGET,
)


# Gemini 1.x / 2.x reject responseSchema when tools are attached
_NO_GROUNDED_JSON_PREFIXES = ("gemini-1", "gemini-2")


def supports_grounded_json(model: str) -> bool:
    """True when the model accepts JSON mode together with grounding tools."""
    name = (model or "").lower().rsplit("/", 1)[-1]
    return not name.startswith(_NO_GROUNDED_JSON_PREFIXES)


# ---------------------------------------------------------------------------
# Raw Response
# ---------------------------------------------------------------------------
@dataclass
class RawAuditResponse:
    """Unparsed engine output plus out-of-band citation chunks."""
    text: str
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)
    provider_name: str = "gemini"
    model: str = ""


def extract_candidate(data: Dict[str, Any]) -> RawAuditResponse:
    """
    Pull text and grounding chunks out of a generateContent response body.

    Text parts are concatenated; "thought" parts are skipped.
    """
    text_parts: list[str] = []
    chunks: list[Dict[str, Any]] = []

    candidates = data.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        candidate = candidates[0]
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought"):
                text_parts.append(part["text"])
        metadata = candidate.get("groundingMetadata") or {}
        raw_chunks = metadata.get("groundingChunks") or []
        if isinstance(raw_chunks, list):
            chunks = [c for c in raw_chunks if isinstance(c, dict)]

    return RawAuditResponse(text="".join(text_parts), grounding_chunks=chunks)


# ---------------------------------------------------------------------------
# Audit Engine Client
# ---------------------------------------------------------------------------
class GeminiClient:
    """
    Async HTTP client for the audit engine.

    Usage:
        client = GeminiClient()
        raw = await client.generate_audit(system_prompt, user_prompt, schema)
        await client.close()
    """

    def __init__(
        self,
        provider: Optional[ProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider = provider or GEMINI_CONFIG
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self.provider.timeout_seconds),
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    def build_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: Dict[str, Any],
        location_hint: Optional[LocationHint] = None,
    ) -> Dict[str, Any]:
        """Build the generateContent request body."""
        tools: list[Dict[str, Any]] = [{"google_search": {}}]
        payload: Dict[str, Any] = {
            "system_instruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.provider.temperature,
                "thinkingConfig": {"thinkingBudget": self.provider.thinking_budget},
            },
        }
        if supports_grounded_json(self.provider.model):
            payload["generationConfig"]["responseMimeType"] = "application/json"
            payload["generationConfig"]["responseSchema"] = response_schema
        else:
            # prompt output rules + parse_audit_payload carry the JSON contract
            logger.debug("Model %s: JSON mode disabled alongside grounding tools", self.provider.model)
        if location_hint is not None:
            tools.append({"google_maps": {}})
            payload["toolConfig"] = {
                "retrievalConfig": {
                    "latLng": {
                        "latitude": location_hint.latitude,
                        "longitude": location_hint.longitude,
                    }
                }
            }
        payload["tools"] = tools
        return payload

    async def generate_audit(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: Dict[str, Any],
        location_hint: Optional[LocationHint] = None,
    ) -> RawAuditResponse:
        """
        Send one audit request to the engine.

        Parameters
        ----------
        system_prompt : str
            System instruction with directives.
        user_prompt : str
            Per-audit prompt.
        response_schema : dict
            Gemini responseSchema for the report.
        location_hint : LocationHint or None
            Optional coordinates for maps grounding.

        Returns
        -------
        RawAuditResponse
            Raw text and grounding chunks.

        Raises
        ------
        AuditServiceError
            Missing API key, timeout, transport or HTTP error.
        EmptyResponseError
            The engine answered without any text.
        """
        if not self.provider.api_key:
            logger.error("GEMINI_API_KEY is missing from environment/config")
            raise AuditServiceError(
                "Audit engine is not configured. Please set GEMINI_API_KEY in the backend .env file."
            )

        http = await self._get_http()
        url = (
            f"{self.provider.base_url}/models/{self.provider.model}:generateContent"
            f"?key={self.provider.api_key}"
        )
        payload = self.build_payload(system_prompt, user_prompt, response_schema, location_hint)

        try:
            resp = await http.post(url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            logger.error("Provider %s: timeout", self.provider.name)
            raise AuditServiceError(
                "The audit engine timed out. Please try again in a few seconds."
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("Provider %s: HTTP %d", self.provider.name, status)
            if status == 429:
                message = "The audit engine is rate limited. Please try again in a minute."
            else:
                message = f"The audit engine rejected the request (HTTP {status})."
            raise AuditServiceError(message) from e
        except httpx.HTTPError as e:
            logger.error("Provider %s: transport error: %s", self.provider.name, e)
            raise AuditServiceError(
                "The audit request failed due to a network error. Please try again in a few seconds."
            ) from e
        except ValueError as e:
            logger.error("Provider %s: response body is not JSON", self.provider.name)
            raise AuditServiceError("The audit engine returned an unreadable response.") from e

        raw = extract_candidate(data if isinstance(data, dict) else {})
        raw.provider_name = self.provider.name
        raw.model = self.provider.model

        if not raw.text.strip():
            logger.warning("Provider %s returned no text", self.provider.name)
            raise EmptyResponseError("Audit engine timed out.")

        logger.info(
            "Provider %s returned %d chars with %d grounding chunks",
            self.provider.name, len(raw.text), len(raw.grounding_chunks),
        )
        return raw
