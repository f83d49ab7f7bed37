"""
Report Views
============
Derived, read-only views over a validated Report for the front-end.

    sort_ota_audit         — channels in profile priority order, unmatched last (stable)
    available_categories   — "All" followed by competitor categories in first-seen order
    toggle_category        — category selection rules ("All" is exclusive)
    filter_competitors     — competitors in the selected categories
    parse_adr              — numeric ADR out of free text ("₹3,450/night" → 3450.0)
    build_comparison_chart — target + competitors as bars on a shared axis
    score_band             — strong / moderate / weak colour band for a 0-10 score

None of these mutate the Report; every function returns new lists.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from app.core.constants import (
    CATEGORY_ALL,
    MIN_BAR_PERCENT,
    RATING_AXIS_MAX,
    TARGET_LABEL_PREFIX,
)
from app.core.profile import AuditProfile, load_profile
from app.models.report import Competitor, OTAAuditItem, Report

METRIC_RATING = "rating"
METRIC_ADR = "adr"

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


# ---------------------------------------------------------------------------
# Channel Ordering
# ---------------------------------------------------------------------------
def channel_priority(platform_name: str, profile: AuditProfile) -> int:
    """Index of the first matching priority alias, or -1 when none match."""
    name = (platform_name or "").lower()
    for index, alias in enumerate(profile.priority_aliases):
        if alias in name:
            return index
    return -1


def sort_ota_audit(
    items: Sequence[OTAAuditItem],
    profile: Optional[AuditProfile] = None,
) -> List[OTAAuditItem]:
    """Return channels ordered by platform priority; unmatched keep their order at the end."""
    profile = profile or load_profile()
    unmatched_rank = len(profile.priority_aliases)

    def rank(item: OTAAuditItem) -> int:
        index = channel_priority(item.platform, profile)
        return unmatched_rank if index == -1 else index

    return sorted(items, key=rank)


# ---------------------------------------------------------------------------
# Category Filtering
# ---------------------------------------------------------------------------
def available_categories(competitors: Sequence[Competitor]) -> List[str]:
    categories = [CATEGORY_ALL]
    for competitor in competitors:
        if competitor.category and competitor.category not in categories:
            categories.append(competitor.category)
    return categories


def toggle_category(selection: Sequence[str], category: str) -> List[str]:
    """
    Apply one click on a category selector.

    - "All" clears every specific selection.
    - A specific category while "All" is active starts a fresh selection.
    - Deselecting the last specific category reverts to "All".
    """
    if category == CATEGORY_ALL:
        return [CATEGORY_ALL]

    current = [c for c in selection if c != CATEGORY_ALL]
    if CATEGORY_ALL in selection or not current:
        return [category]

    if category in current:
        current.remove(category)
        return current or [CATEGORY_ALL]

    return current + [category]


def filter_competitors(
    competitors: Sequence[Competitor],
    selection: Sequence[str],
) -> List[Competitor]:
    if not selection or CATEGORY_ALL in selection:
        return list(competitors)
    wanted = set(selection)
    return [c for c in competitors if c.category in wanted]


# ---------------------------------------------------------------------------
# Chart Normalisation
# ---------------------------------------------------------------------------
def parse_adr(value) -> float:
    """Keep digits and dots, parse as float; 0.0 when nothing usable remains."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else 0.0
    cleaned = _NON_NUMERIC_RE.sub("", str(value or ""))
    try:
        return float(cleaned)
    except ValueError:
        # "4.5.6" style leftovers: fall back to the leading number
        match = re.match(r"\d+(?:\.\d+)?", cleaned)
        return float(match.group(0)) if match else 0.0


@dataclass
class ChartBar:
    name: str
    value: float
    percent: float
    is_target: bool = False


@dataclass
class ComparisonChart:
    metric: str
    axis_max: float
    bars: List[ChartBar] = field(default_factory=list)


def bar_percent(value: float, axis_max: float) -> float:
    """Fill percentage with a visual floor so zero-value bars stay visible."""
    percent = (value / axis_max) * 100 if axis_max > 0 else 0.0
    return max(MIN_BAR_PERCENT, min(100.0, percent))


def build_comparison_chart(
    report: Report,
    selection: Sequence[str] = (CATEGORY_ALL,),
    metric: str = METRIC_RATING,
) -> ComparisonChart:
    """
    Build the target-vs-competitor comparison series.

    The target hotel comes first. The axis maximum is 5 for ratings and the
    highest observed ADR (at least 1) for ADR.
    """
    if metric not in (METRIC_RATING, METRIC_ADR):
        raise ValueError(f"Unknown comparison metric: {metric!r}")

    metrics = report.target_hotel_metrics
    points: List[tuple[str, float, float, bool]] = [(
        f"{TARGET_LABEL_PREFIX} {report.executive_summary.hotel_name}",
        metrics.average_ota_rating if metrics else 0.0,
        metrics.estimated_adr if metrics else 0.0,
        True,
    )]
    for competitor in filter_competitors(report.competitors, selection):
        points.append((competitor.name, competitor.ota_rating, parse_adr(competitor.estimated_adr), False))

    if metric == METRIC_RATING:
        axis_max = RATING_AXIS_MAX
    else:
        axis_max = max([adr for _, _, adr, _ in points] + [1.0])

    bars = []
    for name, rating, adr, is_target in points:
        value = rating if metric == METRIC_RATING else adr
        bars.append(ChartBar(name=name, value=value, percent=bar_percent(value, axis_max), is_target=is_target))
    return ComparisonChart(metric=metric, axis_max=axis_max, bars=bars)


def score_band(score: float) -> str:
    if score >= 7:
        return "strong"
    if score >= 5:
        return "moderate"
    return "weak"
