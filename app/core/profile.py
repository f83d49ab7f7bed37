"""
Audit Profile
=============
Loads the versioned audit profile (app/core/audit_profile.yaml).

The profile is the single place that defines:
    - canonical distribution platforms (mandatory channels + display priority)
    - research directives embedded into the system prompt
    - competitor benchmark size
    - scorecard parameters requested from the audit engine

Request builder, report validator and report views all read the same
profile, so a seventh OTA or a new score parameter is a YAML edit.
"""
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

import yaml

from app.core.config import AUDIT_PROFILE_PATH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformSpec:
    """One canonical distribution platform."""
    key: str
    display_name: str
    aliases: tuple[str, ...] = ()

    def matches(self, platform_name: str) -> bool:
        """Case-insensitive substring match on the canonical key."""
        return self.key.lower() in (platform_name or "").lower()


@dataclass(frozen=True)
class Directive:
    title: str
    steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class AuditProfile:
    version: str
    brand: str
    persona: str
    platforms: tuple[PlatformSpec, ...]
    directives: tuple[Directive, ...]
    competitor_min: int = 3
    competitor_max: int = 5
    competitor_default: int = 4
    scorecard_parameters: tuple[str, ...] = field(default_factory=tuple)

    @property
    def platform_keys(self) -> List[str]:
        return [p.key for p in self.platforms]

    @property
    def priority_aliases(self) -> List[str]:
        """Flattened alias list in display priority order."""
        order: List[str] = []
        for platform in self.platforms:
            order.extend(a.lower() for a in (platform.aliases or (platform.key,)))
        return order


def _parse_profile(data: dict) -> AuditProfile:
    if not isinstance(data, dict):
        raise ValueError("Audit profile must be a YAML mapping")

    platforms = tuple(
        PlatformSpec(
            key=str(p["key"]).lower(),
            display_name=str(p.get("display_name") or p["key"]),
            aliases=tuple(str(a) for a in p.get("aliases") or [p["key"]]),
        )
        for p in data.get("platforms") or []
    )
    if not platforms:
        raise ValueError("Audit profile defines no platforms")

    directives = tuple(
        Directive(title=str(d["title"]), steps=tuple(str(s) for s in d.get("steps") or []))
        for d in data.get("directives") or []
    )

    competitors = data.get("competitors") or {}
    competitor_min = int(competitors.get("min", 3))
    competitor_max = int(competitors.get("max", 5))
    competitor_default = int(competitors.get("default", competitor_min))
    competitor_default = max(competitor_min, min(competitor_max, competitor_default))

    return AuditProfile(
        version=str(data.get("version", "unversioned")),
        brand=str(data.get("brand", "Treebo")),
        persona=str(data.get("persona", "")).strip(),
        platforms=platforms,
        directives=directives,
        competitor_min=competitor_min,
        competitor_max=competitor_max,
        competitor_default=competitor_default,
        scorecard_parameters=tuple(str(s) for s in data.get("scorecard_parameters") or []),
    )


def load_profile_from_string(content: str) -> AuditProfile:
    """Parse a profile from YAML text."""
    return _parse_profile(yaml.safe_load(content))


@lru_cache(maxsize=4)
def load_profile(path: Optional[str] = None) -> AuditProfile:
    """
    Load and cache the audit profile.

    Parameters
    ----------
    path : str or None
        YAML file path. Defaults to AUDIT_PROFILE_PATH.

    Returns
    -------
    AuditProfile
    """
    profile_path = path or AUDIT_PROFILE_PATH
    with open(profile_path, "r", encoding="utf-8") as f:
        profile = _parse_profile(yaml.safe_load(f))
    logger.info(
        "Loaded audit profile %s (%d platforms, %d directives)",
        profile.version, len(profile.platforms), len(profile.directives),
    )
    return profile
