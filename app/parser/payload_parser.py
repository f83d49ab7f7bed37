"""
Payload Parser
==============
Turns the audit engine's raw text into a JSON object.

Strategy:
    1. Strip whitespace and markdown code fences (```json ... ```)
    2. json.loads the cleaned text
    3. If that fails, or yields something other than an object, locate the
       first "{" and the last "}" and parse that slice (the engine sometimes
       wraps the object in prose)
    4. Anything else raises CorruptedPayloadError

This is the only fatal step between the engine and the report validator.
"""
import json
import logging
from typing import Any, Dict

from app.core.errors import CorruptedPayloadError

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        if first_newline != -1:
            cleaned = cleaned[first_newline + 1:]
        else:
            cleaned = cleaned[3:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3].rstrip()
    return cleaned


def parse_audit_payload(raw: str) -> Dict[str, Any]:
    """
    Parse engine text as a JSON object.

    Parameters
    ----------
    raw : str
        Raw text returned by the engine.

    Returns
    -------
    dict
        The parsed object. Field contents are NOT validated here.

    Raises
    ------
    CorruptedPayloadError
        If no JSON object can be recovered from the text.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise CorruptedPayloadError()

    cleaned = strip_code_fences(raw)

    try:
        data = json.loads(cleaned)
        if isinstance(data, dict):
            return data
    except (json.JSONDecodeError, ValueError):
        pass

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        logger.error("No JSON object delimiters in engine response (%d chars)", len(raw))
        raise CorruptedPayloadError()

    try:
        data = json.loads(cleaned[start:end + 1])
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Engine response is not valid JSON: %s", e)
        raise CorruptedPayloadError() from e

    if not isinstance(data, dict):
        raise CorruptedPayloadError()

    logger.info("Recovered JSON object from surrounding text")
    return data
