"""
reports.py — Report assembly.

Composes the range resolver, access scope, per-user metrics and rollups
into the report shapes the exporter knows how to write:

    TeamLeaderReport       — a leader's team, member by member
    SalesReportData        — organisation view with status/source/month breakdowns
    SalesMemberReport      — one viewer's sales population, with detail listings
    AllSalesMembersReport  — one SalesMemberReport per rep / leader, plus their union
    UserPerformanceReport  — one performance row per visible user

Every builder is a pure function of its inputs: nothing is cached and the
dataset is never modified.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

import pandas as pd

from sales_analytics.access import (
    can_view_reports,
    direct_reports,
    sibling_reps,
    visible_users,
)
from sales_analytics.data_loader import Dataset
from sales_analytics.date_ranges import Timeframe, WeekStart, resolve
from sales_analytics.metrics import (
    COMPLETED,
    CallRecord,
    FollowUpMode,
    FollowUpRecord,
    TrackedCount,
    TrackedRate,
    UserActivity,
    UserPerformance,
    VisitRecord,
    average_call_duration,
    collect_activity,
    percentage,
    summarise_activity,
)
from sales_analytics.models import (
    NOT_TRACKED,
    Contract,
    DateRange,
    Lead,
    LeadStatus,
    Meeting,
    NotTracked,
    Role,
    User,
    parse_date,
)
from sales_analytics.rollup import GroupPerformance, rollup

logger = logging.getLogger(__name__)

CANCELLED = "Cancelled"
UNKNOWN_MONTH = "Unknown"

_LOST_STATUSES = frozenset({LeadStatus.CANCELLATION, LeadStatus.NOT_INTERESTED_NOW})


class ReportType(Enum):
    TEAM = "team"
    SALES = "sales"
    USER = "user"
    SALES_MEMBER = "salesMember"
    ALL_SALES_MEMBERS = "allSalesMembers"


# ---------------------------------------------------------------------------
# Request / options
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReportRequest:
    """What the viewer asked for."""
    viewer_id: str
    report_type: ReportType
    timeframe: Timeframe = Timeframe.MONTH
    custom_range: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ReportOptions:
    """Engine settings that do not come from the request."""
    week_start: WeekStart = WeekStart.MONDAY
    follow_up_mode: FollowUpMode = FollowUpMode.NOT_TRACKED
    seed: int = 0
    recent_activity_limit: int = 50
    top_performers: int = 10

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "ReportOptions":
        return cls(
            week_start=WeekStart(cfg["date_ranges"]["week_start"]),
            follow_up_mode=FollowUpMode(cfg["metrics"]["follow_ups"]),
            seed=int(cfg["metrics"]["synthetic_seed"]),
            recent_activity_limit=int(cfg["report"]["recent_activity_limit"]),
            top_performers=int(cfg["report"]["top_performers"]),
        )


@dataclass(frozen=True)
class AccessDenied:
    """Returned instead of a report when the viewer may not see reports."""
    viewer_id: str
    reason: str = "Access denied"


# ---------------------------------------------------------------------------
# Report shapes
# ---------------------------------------------------------------------------

@dataclass
class MemberDetail:
    """One user's filtered records and the snapshot derived from them."""
    user: User
    activity: UserActivity
    performance: UserPerformance


@dataclass
class TeamLeaderReport:
    team_leader: User
    period: str
    date_range: DateRange
    members: list[MemberDetail]
    team_performance: GroupPerformance

    @property
    def team_members(self) -> list[User]:
        return [m.user for m in self.members]


@dataclass
class SalesReportData:
    viewer: User
    period: str
    date_range: DateRange
    members: list[MemberDetail]
    performance: GroupPerformance
    leads_by_status: dict[str, int]
    leads_by_source: dict[str, int]
    revenue_by_month: dict[str, float]
    top_performers: list[UserPerformance]


@dataclass(frozen=True)
class ActivityEntry:
    type: str
    date: Optional[datetime]
    description: str
    lead_name: str
    outcome: str


@dataclass
class SalesMemberReport:
    """Combined view of a sales population, anchored on one user."""
    user: User
    period: str
    date_range: DateRange
    population: list[User]
    members: list[MemberDetail]
    # Lead lifecycle
    total_leads: int
    new_leads: int
    active_leads: int
    converted_leads: int
    lost_leads: int
    lead_conversion_rate: float
    # Activities
    total_calls: int
    completed_calls: int
    missed_calls: int
    call_completion_rate: float
    average_call_duration: str
    total_visits: int
    completed_visits: int
    scheduled_visits: int
    visit_completion_rate: float
    total_meetings: int
    completed_meetings: int
    scheduled_meetings: int
    meeting_completion_rate: float
    total_follow_ups: TrackedCount
    completed_follow_ups: TrackedCount
    pending_follow_ups: TrackedCount
    follow_up_completion_rate: TrackedRate
    # Sales
    total_reservations: int
    total_contracts: int
    signed_contracts: int
    pending_contracts: int
    cancelled_contracts: int
    total_revenue: float
    average_deal_size: float
    total_deals: int
    closed_deals: int
    open_deals: int
    conversion_rate: float
    leads_by_status: dict[str, int]
    leads_by_source: dict[str, int]
    recent_activities: list[ActivityEntry]
    # Detail listings
    leads: list[Lead] = field(default_factory=list)
    meetings: list[Meeting] = field(default_factory=list)
    contracts: list[Contract] = field(default_factory=list)
    calls: list[CallRecord] = field(default_factory=list)
    visits: list[VisitRecord] = field(default_factory=list)
    follow_ups: Union[list[FollowUpRecord], NotTracked] = NOT_TRACKED
    # No data source exists for these
    average_response_time: NotTracked = NOT_TRACKED
    customer_satisfaction_score: NotTracked = NOT_TRACKED


@dataclass
class AllSalesMembersReport:
    viewer: User
    period: str
    date_range: DateRange
    reports: list[SalesMemberReport]
    combined: SalesMemberReport


@dataclass
class UserPerformanceReport:
    viewer: User
    period: str
    date_range: DateRange
    members: list[MemberDetail]


Report = Union[
    TeamLeaderReport,
    SalesReportData,
    SalesMemberReport,
    AllSalesMembersReport,
    UserPerformanceReport,
]


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------

def evaluate_members(
    users: list[User],
    dataset: Dataset,
    date_range: DateRange,
    options: ReportOptions,
) -> list[MemberDetail]:
    """Collect activity and compute performance for each user."""
    details = []
    for user in users:
        activity = collect_activity(
            user, dataset.leads, dataset.meetings, dataset.contracts, date_range,
            follow_up_mode=options.follow_up_mode, seed=options.seed,
        )
        details.append(MemberDetail(user, activity, summarise_activity(activity)))
    return details


def _count_by(values: list[str]) -> dict[str, int]:
    if not values:
        return {}
    counts = pd.Series(values, dtype="object").value_counts()
    return {str(k): int(v) for k, v in counts.items()}


def _lead_breakdowns(leads: list[Lead]) -> tuple[dict[str, int], dict[str, int]]:
    by_status = _count_by([lead.status_label for lead in leads])
    by_source = _count_by([lead.source or "Unknown" for lead in leads])
    return by_status, by_source


def _revenue_by_month(contracts: list[Contract]) -> dict[str, float]:
    if not contracts:
        return {}
    months = []
    for c in contracts:
        when = parse_date(c.contract_date)
        months.append(when.strftime("%Y-%m") if when else UNKNOWN_MONTH)
    df = pd.DataFrame({"month": months, "value": [c.deal_value for c in contracts]})
    totals = df.groupby("month")["value"].sum().round(2).sort_index()
    return {str(k): float(v) for k, v in totals.items()}


def _recent_activities(
    details: list[MemberDetail],
    limit: int,
) -> list[ActivityEntry]:
    entries = []
    for detail in details:
        act = detail.activity
        for call in act.calls:
            entries.append(ActivityEntry(
                "call", call.date, f"Call with {call.lead_name}",
                call.lead_name, call.outcome or "N/A",
            ))
        for visit in act.visits:
            entries.append(ActivityEntry(
                "visit", visit.date, f"Visit with {visit.lead_name}",
                visit.lead_name, visit.status or "N/A",
            ))
        for meeting in act.meetings:
            entries.append(ActivityEntry(
                "meeting", parse_date(meeting.date), meeting.title or "Meeting",
                meeting.client, meeting.status or "N/A",
            ))
        for contract in act.contracts:
            entries.append(ActivityEntry(
                "contract", parse_date(contract.contract_date),
                f"Contract for {contract.property}", contract.lead_name,
                contract.status or "N/A",
            ))
        if not isinstance(act.follow_ups, NotTracked):
            for fu in act.follow_ups:
                entries.append(ActivityEntry(
                    "follow_up", fu.date, f"{fu.type} follow-up (synthetic)",
                    fu.lead_name, fu.status,
                ))
    entries.sort(key=lambda e: e.date or datetime.min, reverse=True)
    return entries[:limit]


def _period(date_range: DateRange) -> str:
    return date_range.label()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_team_leader_report(
    viewer: User,
    dataset: Dataset,
    date_range: DateRange,
    options: Optional[ReportOptions] = None,
) -> TeamLeaderReport:
    """Team view: every member of the viewer's scope except the viewer."""
    options = options or ReportOptions()
    scope = visible_users(viewer, dataset.users)
    members = [u for u in scope if u.id != viewer.id]
    details = evaluate_members(members, dataset, date_range, options)
    team = rollup([d.performance for d in details], follow_up_mode=options.follow_up_mode)
    logger.info(
        "Team report for %s: %d members | %d leads | conversion %.1f%%",
        viewer.name, team.member_count, team.total_leads, team.conversion_rate,
    )
    return TeamLeaderReport(
        team_leader=viewer,
        period=_period(date_range),
        date_range=date_range,
        members=details,
        team_performance=team,
    )


def build_sales_report(
    viewer: User,
    dataset: Dataset,
    date_range: DateRange,
    options: Optional[ReportOptions] = None,
) -> SalesReportData:
    """Organisation view over everyone the viewer may see."""
    options = options or ReportOptions()
    details = evaluate_members(
        visible_users(viewer, dataset.users), dataset, date_range, options
    )
    performances = [d.performance for d in details]
    leads = [lead for d in details for lead in d.activity.leads]
    contracts = [c for d in details for c in d.activity.contracts]
    by_status, by_source = _lead_breakdowns(leads)

    ranked = sorted(performances, key=lambda p: p.total_revenue, reverse=True)
    report = SalesReportData(
        viewer=viewer,
        period=_period(date_range),
        date_range=date_range,
        members=details,
        performance=rollup(performances, follow_up_mode=options.follow_up_mode),
        leads_by_status=by_status,
        leads_by_source=by_source,
        revenue_by_month=_revenue_by_month(contracts),
        top_performers=ranked[:options.top_performers],
    )
    logger.info(
        "Sales report: %d users | %d leads | revenue %.2f",
        len(details), report.performance.total_leads, report.performance.total_revenue,
    )
    return report


def sales_member_population(viewer: User, all_users: list[User]) -> list[User]:
    """Users covered by a sales member report anchored on `viewer`.

    Team leaders see their direct reports; reps see every rep sharing their
    manager; admins see every rep.
    """
    role = viewer.role
    if role is Role.TEAM_LEADER:
        return direct_reports(viewer, all_users)
    if role is Role.SALES_REP:
        return sibling_reps(viewer, all_users)
    if role is Role.ADMIN or role is Role.SALES_ADMIN:
        return [u for u in all_users if u.role is Role.SALES_REP]
    raise ValueError(f"Unhandled role: {role!r}")


def summarise_members(
    user: User,
    details: list[MemberDetail],
    date_range: DateRange,
    options: ReportOptions,
) -> SalesMemberReport:
    """Fold member details into one SalesMemberReport anchored on `user`."""
    group = rollup([d.performance for d in details], follow_up_mode=options.follow_up_mode)
    leads = [lead for d in details for lead in d.activity.leads]
    meetings = [m for d in details for m in d.activity.meetings]
    contracts = [c for d in details for c in d.activity.contracts]
    calls = [c for d in details for c in d.activity.calls]
    visits = [v for d in details for v in d.activity.visits]

    if isinstance(group.total_follow_ups, NotTracked):
        follow_ups: Union[list[FollowUpRecord], NotTracked] = NOT_TRACKED
        pending_fu: TrackedCount = NOT_TRACKED
    else:
        follow_ups = [f for d in details for f in d.activity.follow_ups]
        pending_fu = group.total_follow_ups - group.completed_follow_ups

    converted = sum(1 for lead in leads if lead.status is LeadStatus.CLOSED_DEAL)
    lost = sum(1 for lead in leads if lead.status in _LOST_STATUSES)
    by_status, by_source = _lead_breakdowns(leads)

    return SalesMemberReport(
        user=user,
        period=_period(date_range),
        date_range=date_range,
        population=[d.user for d in details],
        members=details,
        total_leads=group.total_leads,
        new_leads=sum(1 for lead in leads if lead.status is LeadStatus.FRESH_LEAD),
        active_leads=group.total_leads - converted - lost,
        converted_leads=converted,
        lost_leads=lost,
        lead_conversion_rate=percentage(converted, group.total_leads),
        total_calls=group.total_calls,
        completed_calls=group.completed_calls,
        missed_calls=group.total_calls - group.completed_calls,
        call_completion_rate=group.call_completion_rate,
        average_call_duration=average_call_duration(calls),
        total_visits=group.total_visits,
        completed_visits=group.completed_visits,
        scheduled_visits=group.total_visits - group.completed_visits,
        visit_completion_rate=group.visit_completion_rate,
        total_meetings=group.total_meetings,
        completed_meetings=group.completed_meetings,
        scheduled_meetings=sum(1 for m in meetings if m.status != COMPLETED and m.status != CANCELLED),
        meeting_completion_rate=group.meeting_completion_rate,
        total_follow_ups=group.total_follow_ups,
        completed_follow_ups=group.completed_follow_ups,
        pending_follow_ups=pending_fu,
        follow_up_completion_rate=group.follow_up_completion_rate,
        total_reservations=sum(1 for lead in leads if lead.status is LeadStatus.RESERVATION),
        total_contracts=group.total_contracts,
        signed_contracts=group.signed_contracts,
        pending_contracts=group.pending_contracts,
        cancelled_contracts=sum(1 for c in contracts if c.status == CANCELLED),
        total_revenue=group.total_revenue,
        average_deal_size=group.average_deal_size,
        total_deals=group.closed_deals + group.open_deals,
        closed_deals=group.closed_deals,
        open_deals=group.open_deals,
        conversion_rate=group.conversion_rate,
        leads_by_status=by_status,
        leads_by_source=by_source,
        recent_activities=_recent_activities(details, options.recent_activity_limit),
        leads=leads,
        meetings=meetings,
        contracts=contracts,
        calls=calls,
        visits=visits,
        follow_ups=follow_ups,
    )


def build_sales_member_report(
    viewer: User,
    dataset: Dataset,
    date_range: DateRange,
    options: Optional[ReportOptions] = None,
) -> SalesMemberReport:
    """Sales member view anchored on the viewer (see sales_member_population)."""
    options = options or ReportOptions()
    population = sales_member_population(viewer, dataset.users)
    details = evaluate_members(population, dataset, date_range, options)
    report = summarise_members(viewer, details, date_range, options)
    logger.info(
        "Sales member report for %s: %d members | %d leads | %d calls",
        viewer.name, len(population), report.total_leads, report.total_calls,
    )
    return report


def combine_member_reports(
    user: User,
    reports: list[SalesMemberReport],
    date_range: DateRange,
    options: Optional[ReportOptions] = None,
) -> SalesMemberReport:
    """Union of individual reports: sums, and activity lists merged newest first."""
    options = options or ReportOptions()
    seen = set()
    details = []
    for report in reports:
        for detail in report.members:
            if detail.user.id not in seen:
                seen.add(detail.user.id)
                details.append(detail)
    return summarise_members(user, details, date_range, options)


def build_all_sales_members_report(
    viewer: User,
    dataset: Dataset,
    date_range: DateRange,
    options: Optional[ReportOptions] = None,
) -> AllSalesMembersReport:
    """One report per visible rep or team leader, plus the combined view."""
    options = options or ReportOptions()
    sellers = [
        u for u in visible_users(viewer, dataset.users)
        if u.role is Role.SALES_REP or u.role is Role.TEAM_LEADER
    ]
    reports = [
        summarise_members(
            u, evaluate_members([u], dataset, date_range, options), date_range, options
        )
        for u in sellers
    ]
    combined = combine_member_reports(viewer, reports, date_range, options)
    logger.info(
        "All sales members report: %d members | %d leads | revenue %.2f",
        len(reports), combined.total_leads, combined.total_revenue,
    )
    return AllSalesMembersReport(
        viewer=viewer,
        period=_period(date_range),
        date_range=date_range,
        reports=reports,
        combined=combined,
    )


def build_user_performance_report(
    viewer: User,
    dataset: Dataset,
    date_range: DateRange,
    options: Optional[ReportOptions] = None,
) -> UserPerformanceReport:
    """One performance row, with detail listings, per visible user."""
    options = options or ReportOptions()
    details = evaluate_members(
        visible_users(viewer, dataset.users), dataset, date_range, options
    )
    logger.info("User performance report: %d users", len(details))
    return UserPerformanceReport(
        viewer=viewer,
        period=_period(date_range),
        date_range=date_range,
        members=details,
    )


_BUILDERS = {
    ReportType.TEAM: build_team_leader_report,
    ReportType.SALES: build_sales_report,
    ReportType.USER: build_user_performance_report,
    ReportType.SALES_MEMBER: build_sales_member_report,
    ReportType.ALL_SALES_MEMBERS: build_all_sales_members_report,
}


def generate_report(
    request: ReportRequest,
    dataset: Dataset,
    options: Optional[ReportOptions] = None,
    now: Optional[datetime] = None,
) -> Union[Report, AccessDenied]:
    """Run the capability check, resolve the window and build the report.

    Args:
        request: Viewer, report type, timeframe and optional custom bounds.
        dataset: CRM records.
        options: Engine settings; defaults when omitted.
        now: Reference time for the timeframe; defaults to the current time.

    Returns:
        The requested report, or AccessDenied when the viewer is unknown or
        may not view reports.
    """
    options = options or ReportOptions()
    viewer = dataset.find_user(request.viewer_id)
    if viewer is None:
        logger.warning("Report requested by unknown user %s", request.viewer_id)
        return AccessDenied(request.viewer_id, "Unknown user")
    if not can_view_reports(viewer):
        logger.warning("User %s (%s) may not view reports", viewer.id, viewer.role.value)
        return AccessDenied(viewer.id)

    date_range = resolve(
        request.timeframe, request.custom_range, now=now, week_start=options.week_start
    )
    logger.info(
        "Building %s report for %s over %s",
        request.report_type.value, viewer.name, date_range.label(),
    )
    return _BUILDERS[request.report_type](viewer, dataset, date_range, options)
