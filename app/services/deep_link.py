"""
Deep Links & Sharing
====================
Query-parameter adapter for shareable audit links.

Parameters:
    hotel — hotel name
    city  — city
    type  — evaluation type ("New Onboarding" / "Existing Hotel Health Report")

The core never touches browser or request globals directly: it reads and
writes through a QueryParamStore (get / set / clear). Presence of both
`hotel` and `city` means "run this audit on load".
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.core.errors import InputValidationError
from app.core.profile import AuditProfile, load_profile
from app.models.audit_request import AuditRequest
from app.models.report import EvaluationType, Report

logger = logging.getLogger(__name__)

PARAM_HOTEL = "hotel"
PARAM_CITY = "city"
PARAM_TYPE = "type"
DEEP_LINK_PARAMS = (PARAM_HOTEL, PARAM_CITY, PARAM_TYPE)

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_FILENAME_RE = re.compile(r"[^\w.-]+")


class QueryParamStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, keys: Iterable[str]) -> None: ...


class MappingParamStore:
    """Dict-backed QueryParamStore (also wraps read-only request query params)."""

    def __init__(self, params: Optional[Mapping[str, str]] = None) -> None:
        self._params: Dict[str, str] = dict(params or {})

    def get(self, key: str) -> Optional[str]:
        return self._params.get(key)

    def set(self, key: str, value: str) -> None:
        self._params[key] = value

    def clear(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._params.pop(key, None)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._params)


def read_deep_link(store: QueryParamStore) -> Optional[AuditRequest]:
    """
    Build an AuditRequest from deep-link parameters.

    Returns None when hotel or city is absent or fails validation.
    An unknown type falls back to New Onboarding.
    """
    hotel = store.get(PARAM_HOTEL)
    city = store.get(PARAM_CITY)
    if not hotel or not city:
        return None
    try:
        return AuditRequest.create(hotel, city, store.get(PARAM_TYPE))
    except InputValidationError as e:
        logger.warning("Ignoring invalid deep link: %s", e.field_errors)
        return None


def write_deep_link(store: QueryParamStore, request: AuditRequest) -> None:
    store.set(PARAM_HOTEL, request.hotel_name)
    store.set(PARAM_CITY, request.city)
    store.set(PARAM_TYPE, request.evaluation_type.value)


def clear_deep_link(store: QueryParamStore) -> None:
    store.clear(DEEP_LINK_PARAMS)


def build_share_url(base_url: str, hotel: str, city: str, evaluation_type: EvaluationType) -> str:
    """Rebuild base_url with the deep-link parameters set (other parameters kept)."""
    parts = urlsplit(base_url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in DEEP_LINK_PARAMS
    ]
    query += [
        (PARAM_HOTEL, hotel),
        (PARAM_CITY, city),
        (PARAM_TYPE, evaluation_type.value),
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


@dataclass
class SharePayload:
    title: str
    text: str
    url: str


def build_share_payload(
    report: Report,
    base_url: str,
    profile: Optional[AuditProfile] = None,
) -> SharePayload:
    profile = profile or load_profile()
    summary = report.executive_summary
    return SharePayload(
        title=f"{profile.brand} Audit: {summary.hotel_name}",
        text=(
            f"Strategic commercial evaluation for {summary.hotel_name} in {summary.city}. "
            f"Verdict: {summary.final_decision.value}"
        ),
        url=build_share_url(base_url, summary.hotel_name, summary.city, summary.evaluation_type),
    )


def _filename_segment(value: str) -> str:
    """Collapse whitespace to "_" and drop anything that could act as a path."""
    segment = _UNSAFE_FILENAME_RE.sub("_", _WHITESPACE_RE.sub("_", value.strip()))
    return segment.lstrip("._") or "Unknown"


def export_filename(
    report: Report,
    extension: str = "pdf",
    profile: Optional[AuditProfile] = None,
) -> str:
    """`<Brand>_Audit_<Hotel_Name>_<City>.<ext>`, safe to use as a single path component."""
    profile = profile or load_profile()
    summary = report.executive_summary
    hotel = _filename_segment(summary.hotel_name)
    city = _filename_segment(summary.city)
    return f"{profile.brand}_Audit_{hotel}_{city}.{extension.lstrip('.')}"
