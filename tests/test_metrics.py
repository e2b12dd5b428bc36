"""
test_metrics.py — Unit tests for the per-user metrics engine.

Tests cover:
    - percentage helper (guards and clamping)
    - Lead / meeting / contract selection by owner and window
    - Call, visit and meeting completion
    - Conversion rate, revenue and deal size
    - Follow-ups: NOT_TRACKED by default, deterministic synthetic mode
    - Last activity and average call duration
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from sales_analytics.metrics import (
    CallRecord,
    FollowUpMode,
    average_call_duration,
    collect_activity,
    compute_user_performance,
    percentage,
    synthetic_follow_ups,
)
from sales_analytics.models import ALL_TIME, NO_ACTIVITY, NotTracked, DateRange

MARCH = DateRange(datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59, 59, 999000))


def _perf(dataset, uid, date_range=MARCH, **kw):
    user = dataset.find_user(uid)
    return compute_user_performance(
        user, dataset.leads, dataset.meetings, dataset.contracts, date_range, **kw
    )


# ---------------------------------------------------------------------------
# percentage
# ---------------------------------------------------------------------------

class TestPercentage:
    """Tests for percentage."""

    def test_basic(self):
        assert percentage(1, 4) == 25.0

    def test_rounds_to_one_decimal(self):
        assert percentage(1, 3) == 33.3

    def test_zero_total_is_zero(self):
        assert percentage(5, 0) == 0.0

    def test_clamped_to_hundred(self):
        assert percentage(7, 5) == 100.0


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class TestCollectActivity:
    """Tests for collect_activity filtering."""

    def test_leads_selected_by_owner_and_window(self, rich_dataset):
        user = rich_dataset.find_user("rep2")
        act = collect_activity(user, rich_dataset.leads, rich_dataset.meetings,
                               rich_dataset.contracts, MARCH)
        # l4 has no parseable date, l5 was created in 2023
        assert [lead.id for lead in act.leads] == ["l3"]

    def test_all_time_keeps_undated_records(self, rich_dataset):
        user = rich_dataset.find_user("rep2")
        act = collect_activity(user, rich_dataset.leads, rich_dataset.meetings,
                               rich_dataset.contracts, ALL_TIME)
        assert len(act.leads) == 3
        assert len(act.contracts) == 2
        assert len(act.meetings) == 1

    def test_lead_in_window_by_last_call_date(self, make_lead, make_user):
        rep = make_user("r")
        lead = make_lead("l", "r", created="2023-01-01", lastCallDate="2024-03-05")
        act = collect_activity(rep, [lead], [], [], MARCH)
        assert len(act.leads) == 1

    def test_calls_outside_window_are_dropped(self, make_lead, make_user):
        rep = make_user("r")
        lead = make_lead("l", "r", calls=[
            {"date": "2024-03-02", "duration": "1:00"},
            {"date": "2024-02-02", "duration": "1:00"},
            {"date": "N/A", "duration": "1:00"},
        ])
        act = collect_activity(rep, [lead], [], [], MARCH)
        assert len(act.calls) == 1

    def test_follow_ups_not_tracked_by_default(self, rich_dataset):
        act = collect_activity(rich_dataset.find_user("rep1"), rich_dataset.leads,
                               rich_dataset.meetings, rich_dataset.contracts, MARCH)
        assert isinstance(act.follow_ups, NotTracked)


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

class TestComputeUserPerformance:
    """Tests for compute_user_performance."""

    def test_counts(self, rich_dataset):
        p = _perf(rich_dataset, "rep1")
        assert p.total_leads == 2
        assert p.total_calls == 3
        assert p.total_visits == 2
        assert p.total_meetings == 2
        assert p.total_contracts == 1

    def test_call_completion_follows_lead_status(self, rich_dataset):
        p = _perf(rich_dataset, "rep1")
        # both calls on the closed lead count, the one on the no_answer lead does not
        assert p.completed_calls == 2
        assert p.call_completion_rate == 66.7

    def test_visit_and_meeting_completion(self, rich_dataset):
        p = _perf(rich_dataset, "rep1")
        assert p.completed_visits == 1
        assert p.visit_completion_rate == 50.0
        assert p.completed_meetings == 1
        assert p.meeting_completion_rate == 50.0

    def test_conversion_counts_open_and_closed(self, rich_dataset):
        p = _perf(rich_dataset, "rep1")
        assert p.closed_deals == 1
        assert p.conversion_rate == 50.0

    def test_revenue_and_deal_size(self, rich_dataset):
        p = _perf(rich_dataset, "rep2", ALL_TIME)
        assert p.total_revenue == 1500.0
        assert p.average_deal_size == 750.0
        assert p.signed_contracts == 1
        assert p.pending_contracts == 1

    def test_unparseable_contract_date_excluded_from_bounded_revenue(self, rich_dataset):
        assert _perf(rich_dataset, "rep2", MARCH).total_revenue == 1000.0
        assert _perf(rich_dataset, "rep2", ALL_TIME).total_revenue == 1500.0

    def test_user_without_records_is_all_zero(self, rich_dataset):
        p = _perf(rich_dataset, "solo")
        assert p.total_leads == 0
        assert p.conversion_rate == 0.0
        assert p.average_deal_size == 0.0
        assert p.last_activity == NO_ACTIVITY
        assert p.last_activity_label == NO_ACTIVITY

    def test_rates_within_bounds(self, rich_dataset):
        for uid in ("rep1", "rep2", "solo", "tl1"):
            for window in (MARCH, ALL_TIME):
                p = _perf(rich_dataset, uid, window)
                for rate in (p.conversion_rate, p.call_completion_rate,
                             p.visit_completion_rate, p.meeting_completion_rate):
                    assert 0.0 <= rate <= 100.0

    def test_follow_ups_not_tracked(self, rich_dataset):
        p = _perf(rich_dataset, "rep1")
        assert isinstance(p.total_follow_ups, NotTracked)
        assert isinstance(p.follow_up_completion_rate, NotTracked)

    def test_last_activity_is_latest_in_window(self, rich_dataset):
        p = _perf(rich_dataset, "rep1")
        assert p.last_activity == datetime(2024, 3, 14)
        assert p.last_activity_label == "2024-03-14"


# ---------------------------------------------------------------------------
# Synthetic follow-ups
# ---------------------------------------------------------------------------

class TestSyntheticFollowUps:
    """Tests for the opt-in synthetic follow-up mode."""

    def test_deterministic_per_seed(self, rich_dataset):
        leads = rich_dataset.leads
        assert synthetic_follow_ups(leads, seed=3) == synthetic_follow_ups(leads, seed=3)

    def test_one_to_three_per_lead_and_labelled(self, rich_dataset):
        records = synthetic_follow_ups(rich_dataset.leads[:1], seed=1)
        assert 1 <= len(records) <= 3
        assert all(r.synthetic for r in records)

    def test_synthetic_mode_populates_metrics(self, rich_dataset):
        p = _perf(rich_dataset, "rep1", follow_up_mode=FollowUpMode.SYNTHETIC, seed=5)
        assert isinstance(p.total_follow_ups, int)
        assert 2 <= p.total_follow_ups <= 6
        assert 0.0 <= p.follow_up_completion_rate <= 100.0


# ---------------------------------------------------------------------------
# Call duration
# ---------------------------------------------------------------------------

def _call(duration):
    return CallRecord("l", "Lead", None, duration, "", "", True)


class TestAverageCallDuration:
    """Tests for average_call_duration."""

    def test_clock_durations(self):
        assert average_call_duration([_call("5:30"), _call("2:30")]) == "4.0 min"

    def test_plain_minutes(self):
        assert average_call_duration([_call("10 min")]) == "10.0 min"

    @pytest.mark.parametrize("calls", [[], [_call("")], [_call("unknown")]])
    def test_no_durations(self, calls):
        assert average_call_duration(calls) == "N/A"
