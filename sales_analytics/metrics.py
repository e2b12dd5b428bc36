"""
metrics.py — Per-user performance calculation.

For one user and one reporting window this module:
    1. Selects the user's leads (a lead counts when its creation, last call
       or last visit date falls in the window), meetings and contracts
    2. Flattens the calls and visits embedded in those leads
    3. Computes counts, completion rates, conversion rate, revenue and
       last activity into a `UserPerformance` snapshot

Rates are percentages in [0, 100] rounded to one decimal place. Every
division is guarded: an empty denominator yields 0.

Follow-ups have no record of their own in the CRM. They are reported as
NOT_TRACKED unless synthetic demo follow-ups are explicitly requested.
"""

import logging
import re
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

import numpy as np

from sales_analytics.models import (
    NO_ACTIVITY,
    NOT_TRACKED,
    Contract,
    DateRange,
    Lead,
    LeadStatus,
    Meeting,
    NotTracked,
    User,
    parse_date,
)

logger = logging.getLogger(__name__)

COMPLETED = "Completed"
SIGNED = "Signed"
PENDING = "Pending"

SYNTHETIC_COMPLETION_PROBABILITY = 0.7
SYNTHETIC_FOLLOW_UP_TYPES = ("Call", "WhatsApp", "Email")

TrackedCount = Union[int, NotTracked]
TrackedRate = Union[float, NotTracked]


class FollowUpMode(Enum):
    NOT_TRACKED = "not_tracked"
    SYNTHETIC = "synthetic"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallRecord:
    """One call flattened out of its lead."""
    lead_id: str
    lead_name: str
    date: Optional[datetime]
    duration: str
    outcome: str
    notes: str
    completed: bool


@dataclass(frozen=True)
class VisitRecord:
    lead_id: str
    lead_name: str
    date: Optional[datetime]
    status: str
    notes: str
    completed: bool


@dataclass(frozen=True)
class FollowUpRecord:
    """A follow-up row. Only produced as labelled demo data."""
    lead_id: str
    lead_name: str
    date: Optional[datetime]
    type: str
    status: str
    notes: str
    completed: bool
    synthetic: bool = True


@dataclass
class UserActivity:
    """The records of one user that fall inside the reporting window."""
    user: User
    date_range: DateRange
    leads: list[Lead] = field(default_factory=list)
    meetings: list[Meeting] = field(default_factory=list)
    contracts: list[Contract] = field(default_factory=list)
    calls: list[CallRecord] = field(default_factory=list)
    visits: list[VisitRecord] = field(default_factory=list)
    follow_ups: Union[list[FollowUpRecord], NotTracked] = NOT_TRACKED


@dataclass(frozen=True)
class UserPerformance:
    """Performance snapshot for one user over one reporting window."""
    user: User
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
    last_activity: Union[datetime, str] = NO_ACTIVITY

    @property
    def last_activity_label(self) -> str:
        if isinstance(self.last_activity, datetime):
            return self.last_activity.strftime("%Y-%m-%d")
        return self.last_activity


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def percentage(done: float, total: float) -> float:
    """100 * done / total, clamped to [0, 100] and rounded to 1 dp."""
    if total <= 0:
        return 0.0
    value = 100.0 * done / total
    return round(min(max(value, 0.0), 100.0), 1)


def _lead_in_range(lead: Lead, date_range: DateRange) -> bool:
    if not date_range.is_bounded:
        return True
    return any(
        date_range.contains_raw(raw)
        for raw in (lead.created_at, lead.last_call_date, lead.last_visit_date)
    )


def _call_completed(lead: Lead) -> bool:
    # Lead-level approximation: the call outcome itself is not consulted
    return lead.status is not LeadStatus.NO_ANSWER


def _flatten_calls(leads: list[Lead], date_range: DateRange) -> list[CallRecord]:
    records = []
    for lead in leads:
        for call in lead.calls:
            when = parse_date(call.date)
            if date_range.is_bounded and not date_range.contains(when):
                continue
            records.append(CallRecord(
                lead_id=lead.id,
                lead_name=lead.name,
                date=when,
                duration=call.duration,
                outcome=call.outcome,
                notes=call.notes,
                completed=_call_completed(lead),
            ))
    return records


def _flatten_visits(leads: list[Lead], date_range: DateRange) -> list[VisitRecord]:
    records = []
    for lead in leads:
        for visit in lead.visits:
            when = parse_date(visit.date)
            if date_range.is_bounded and not date_range.contains(when):
                continue
            records.append(VisitRecord(
                lead_id=lead.id,
                lead_name=lead.name,
                date=when,
                status=visit.status,
                notes=visit.notes,
                completed=visit.status == COMPLETED,
            ))
    return records


def synthetic_follow_ups(leads: list[Lead], seed: int = 0) -> list[FollowUpRecord]:
    """Generate labelled demo follow-ups: 1-3 per lead, ~70% completed.

    The generator is seeded per (seed, lead id), so a lead always gets the
    same follow-ups regardless of which report asks for them.
    """
    records = []
    for lead in leads:
        rng = np.random.default_rng([seed, zlib.crc32(lead.id.encode("utf-8"))])
        anchor = parse_date(lead.created_at)
        for _ in range(int(rng.integers(1, 4))):
            completed = bool(rng.random() < SYNTHETIC_COMPLETION_PROBABILITY)
            offset = int(rng.integers(1, 15))
            records.append(FollowUpRecord(
                lead_id=lead.id,
                lead_name=lead.name,
                date=anchor + timedelta(days=offset) if anchor else None,
                type=str(rng.choice(SYNTHETIC_FOLLOW_UP_TYPES)),
                status=COMPLETED if completed else PENDING,
                notes="Synthetic follow-up (demo data)",
                completed=completed,
            ))
    return records


def _last_activity(activity: UserActivity) -> Union[datetime, str]:
    date_range = activity.date_range
    candidates = []
    for lead in activity.leads:
        for raw in (lead.last_call_date, lead.last_visit_date):
            when = parse_date(raw)
            if when is not None and date_range.contains(when):
                candidates.append(when)
    for meeting in activity.meetings:
        when = parse_date(meeting.date)
        if when is not None:
            candidates.append(when)
    return max(candidates) if candidates else NO_ACTIVITY


_CLOCK = re.compile(r"^(\d+):(\d{1,2})(?::(\d{1,2}))?$")
_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")


def _duration_minutes(text: str) -> Optional[float]:
    text = (text or "").strip()
    clock = _CLOCK.match(text)
    if clock:
        a, b, c = clock.groups()
        if c is None:
            return int(a) + int(b) / 60
        return int(a) * 60 + int(b) + int(c) / 60
    number = _NUMBER.search(text)
    return float(number.group(1)) if number else None


def average_call_duration(calls: list[CallRecord]) -> str:
    """Mean call length as 'N.N min', or 'N/A' when no duration parses."""
    minutes = [m for m in (_duration_minutes(c.duration) for c in calls) if m is not None]
    if not minutes:
        return "N/A"
    return f"{sum(minutes) / len(minutes):.1f} min"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def collect_activity(
    user: User,
    leads: list[Lead],
    meetings: list[Meeting],
    contracts: list[Contract],
    date_range: DateRange,
    follow_up_mode: FollowUpMode = FollowUpMode.NOT_TRACKED,
    seed: int = 0,
) -> UserActivity:
    """Select the records of `user` that fall inside `date_range`.

    Args:
        user: The user being measured.
        leads: Candidate leads (any owner).
        meetings: Candidate meetings (any assignee).
        contracts: Candidate contracts (any creator).
        date_range: Reporting window; unbounded keeps everything.
        follow_up_mode: Whether to attach synthetic demo follow-ups.
        seed: Seed for synthetic follow-ups.

    Returns:
        UserActivity holding the filtered and flattened records.
    """
    user_leads = [
        lead for lead in leads
        if lead.owner_id == user.id and _lead_in_range(lead, date_range)
    ]
    user_meetings = [
        m for m in meetings
        if m.assigned_to_id == user.id and date_range.contains_raw(m.date)
    ]
    user_contracts = [
        c for c in contracts
        if c.created_by_id == user.id and date_range.contains_raw(c.contract_date)
    ]

    if follow_up_mode is FollowUpMode.SYNTHETIC:
        follow_ups = synthetic_follow_ups(user_leads, seed)
    else:
        follow_ups = NOT_TRACKED

    return UserActivity(
        user=user,
        date_range=date_range,
        leads=user_leads,
        meetings=user_meetings,
        contracts=user_contracts,
        calls=_flatten_calls(user_leads, date_range),
        visits=_flatten_visits(user_leads, date_range),
        follow_ups=follow_ups,
    )


def summarise_activity(activity: UserActivity) -> UserPerformance:
    """Reduce a user's filtered records to a `UserPerformance`."""
    leads = activity.leads
    total_leads = len(leads)
    closed = sum(1 for lead in leads if lead.status is LeadStatus.CLOSED_DEAL)
    opened = sum(1 for lead in leads if lead.status is LeadStatus.OPEN_DEAL)

    completed_calls = sum(1 for c in activity.calls if c.completed)
    completed_visits = sum(1 for v in activity.visits if v.completed)
    completed_meetings = sum(1 for m in activity.meetings if m.status == COMPLETED)

    if isinstance(activity.follow_ups, NotTracked):
        total_fu: TrackedCount = NOT_TRACKED
        done_fu: TrackedCount = NOT_TRACKED
        fu_rate: TrackedRate = NOT_TRACKED
    else:
        total_fu = len(activity.follow_ups)
        done_fu = sum(1 for f in activity.follow_ups if f.completed)
        fu_rate = percentage(done_fu, total_fu)

    revenue = sum(c.deal_value for c in activity.contracts)
    n_contracts = len(activity.contracts)

    perf = UserPerformance(
        user=activity.user,
        total_leads=total_leads,
        total_calls=len(activity.calls),
        completed_calls=completed_calls,
        total_visits=len(activity.visits),
        completed_visits=completed_visits,
        total_meetings=len(activity.meetings),
        completed_meetings=completed_meetings,
        total_follow_ups=total_fu,
        completed_follow_ups=done_fu,
        closed_deals=closed,
        open_deals=opened,
        total_contracts=n_contracts,
        signed_contracts=sum(1 for c in activity.contracts if c.status == SIGNED),
        pending_contracts=sum(1 for c in activity.contracts if c.status == PENDING),
        conversion_rate=percentage(closed + opened, total_leads),
        call_completion_rate=percentage(completed_calls, len(activity.calls)),
        visit_completion_rate=percentage(completed_visits, len(activity.visits)),
        meeting_completion_rate=percentage(completed_meetings, len(activity.meetings)),
        follow_up_completion_rate=fu_rate,
        total_revenue=round(revenue, 2),
        average_deal_size=round(revenue / n_contracts, 2) if n_contracts else 0.0,
        last_activity=_last_activity(activity),
    )
    logger.debug(
        "User %s: %d leads | %d calls | %d meetings | revenue %.2f",
        activity.user.id, total_leads, perf.total_calls, perf.total_meetings, revenue,
    )
    return perf


def compute_user_performance(
    user: User,
    leads: list[Lead],
    meetings: list[Meeting],
    contracts: list[Contract],
    date_range: DateRange,
    follow_up_mode: FollowUpMode = FollowUpMode.NOT_TRACKED,
    seed: int = 0,
) -> UserPerformance:
    """Compute the performance snapshot of one user over one window.

    This is the single public entry point for per-user metrics; see
    `collect_activity` for the filtering rules.
    """
    activity = collect_activity(
        user, leads, meetings, contracts, date_range, follow_up_mode, seed
    )
    return summarise_activity(activity)
