"""
rollup.py — Group-level aggregation of per-user performance.

Counts and revenue are summed. Each rate is combined with an explicit
strategy, chosen per metric in DEFAULT_STRATEGIES:

    MEAN_OF_RATES  — unweighted mean of the members' rates (the reporting
                     convention: every member weighs the same)
    RATIO_OF_SUMS  — the rate recomputed from summed numerators/denominators

Average deal size is always group revenue over group contract count.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sales_analytics.metrics import (
    FollowUpMode,
    TrackedCount,
    TrackedRate,
    UserPerformance,
    percentage,
)
from sales_analytics.models import NOT_TRACKED, NotTracked

logger = logging.getLogger(__name__)


class RollupStrategy(Enum):
    MEAN_OF_RATES = "mean-of-rates"
    RATIO_OF_SUMS = "ratio-of-sums"


# rate field -> (numerator fields, denominator field) for RATIO_OF_SUMS
_RATE_COMPONENTS = {
    "conversion_rate": (("closed_deals", "open_deals"), "total_leads"),
    "call_completion_rate": (("completed_calls",), "total_calls"),
    "visit_completion_rate": (("completed_visits",), "total_visits"),
    "meeting_completion_rate": (("completed_meetings",), "total_meetings"),
    "follow_up_completion_rate": (("completed_follow_ups",), "total_follow_ups"),
}

DEFAULT_STRATEGIES = {
    "conversion_rate": RollupStrategy.MEAN_OF_RATES,
    "call_completion_rate": RollupStrategy.MEAN_OF_RATES,
    "visit_completion_rate": RollupStrategy.MEAN_OF_RATES,
    "meeting_completion_rate": RollupStrategy.MEAN_OF_RATES,
    "follow_up_completion_rate": RollupStrategy.MEAN_OF_RATES,
}

_SUMMED_FIELDS = (
    "total_leads", "total_calls", "completed_calls", "total_visits",
    "completed_visits", "total_meetings", "completed_meetings",
    "closed_deals", "open_deals", "total_contracts", "signed_contracts",
    "pending_contracts",
)


@dataclass(frozen=True)
class GroupPerformance:
    """Rolled-up performance of a team or of the whole organisation."""
    member_count: int
    total_leads: int
    total_calls: int
    completed_calls: int
    total_visits: int
    completed_visits: int
    total_meetings: int
    completed_meetings: int
    total_follow_ups: TrackedCount
    completed_follow_ups: TrackedCount
    closed_deals: int
    open_deals: int
    total_contracts: int
    signed_contracts: int
    pending_contracts: int
    conversion_rate: float
    call_completion_rate: float
    visit_completion_rate: float
    meeting_completion_rate: float
    follow_up_completion_rate: TrackedRate
    total_revenue: float
    average_deal_size: float


_FOLLOW_UP_FIELDS = ("total_follow_ups", "completed_follow_ups", "follow_up_completion_rate")


def _follow_ups_tracked(
    performances: list[UserPerformance],
    mode: Optional[FollowUpMode],
) -> bool:
    """Follow-ups are tracked only when every member carries real numbers.

    Without an explicit mode an empty group counts as untracked.
    """
    if mode is FollowUpMode.NOT_TRACKED:
        return False
    if mode is None and not performances:
        return False
    return not any(
        isinstance(getattr(p, f), NotTracked)
        for p in performances for f in _FOLLOW_UP_FIELDS
    )


def _combine_rate(
    name: str,
    members: list[UserPerformance],
    totals: dict,
    strategy: RollupStrategy,
) -> TrackedRate:
    rates = [getattr(m, name) for m in members]

    if strategy is RollupStrategy.MEAN_OF_RATES:
        if not members:
            return 0.0
        return round(sum(rates) / len(members), 1)

    numerators, denominator = _RATE_COMPONENTS[name]
    return percentage(sum(totals[f] for f in numerators), totals[denominator])


def rollup(
    performances: list[UserPerformance],
    strategies: Optional[dict[str, RollupStrategy]] = None,
    follow_up_mode: Optional[FollowUpMode] = None,
) -> GroupPerformance:
    """Aggregate member snapshots into one group snapshot.

    Args:
        performances: One UserPerformance per member.
        strategies: Per-rate overrides of DEFAULT_STRATEGIES.
        follow_up_mode: How the members' follow-ups were produced. When
            omitted it is inferred from the members themselves.

    Returns:
        GroupPerformance; all zeros for an empty group, with follow-up
        metrics NOT_TRACKED unless follow-ups are tracked.
    """
    chosen = dict(DEFAULT_STRATEGIES)
    if strategies:
        unknown = set(strategies) - set(_RATE_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown rate fields: {sorted(unknown)}")
        chosen.update(strategies)

    totals = {f: sum(getattr(p, f) for p in performances) for f in _SUMMED_FIELDS}
    tracked = _follow_ups_tracked(performances, follow_up_mode)
    for f in ("total_follow_ups", "completed_follow_ups"):
        totals[f] = sum(getattr(p, f) for p in performances) if tracked else NOT_TRACKED

    revenue = round(sum(p.total_revenue for p in performances), 2)
    contracts = totals["total_contracts"]

    rates = {
        name: _combine_rate(name, performances, totals, strategy)
        for name, strategy in chosen.items()
        if tracked or name != "follow_up_completion_rate"
    }
    if not tracked:
        rates["follow_up_completion_rate"] = NOT_TRACKED

    group = GroupPerformance(
        member_count=len(performances),
        total_revenue=revenue,
        average_deal_size=round(revenue / contracts, 2) if contracts else 0.0,
        **totals,
        **rates,
    )
    logger.debug(
        "Rolled up %d members: %d leads | conversion %.1f%%",
        group.member_count, group.total_leads, group.conversion_rate,
    )
    return group
