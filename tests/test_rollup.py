"""
test_rollup.py — Unit tests for group aggregation.

The mean-of-rates convention is deliberate and pinned here: a team of one
rep at 50% and one at 0% reports 25%, even when the lead-weighted figure
would be 20%.
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from sales_analytics.metrics import FollowUpMode, compute_user_performance
from sales_analytics.models import ALL_TIME, NOT_TRACKED, NotTracked
from sales_analytics.rollup import RollupStrategy, rollup


@pytest.fixture
def team_performances(two_rep_dataset):
    ds = two_rep_dataset
    return [
        compute_user_performance(ds.find_user(uid), ds.leads, ds.meetings,
                                 ds.contracts, ALL_TIME)
        for uid in ("rep_a", "rep_b")
    ]


class TestRollup:
    """Tests for rollup."""

    def test_member_rates(self, team_performances):
        a, b = team_performances
        assert a.conversion_rate == 50.0
        assert b.conversion_rate == 0.0

    def test_team_conversion_is_mean_of_member_rates(self, team_performances):
        group = rollup(team_performances)
        assert group.total_leads == 10
        assert group.closed_deals == 2
        assert group.conversion_rate == 25.0
        assert group.conversion_rate != 20.0

    def test_ratio_of_sums_is_opt_in(self, team_performances):
        group = rollup(team_performances,
                       {"conversion_rate": RollupStrategy.RATIO_OF_SUMS})
        assert group.conversion_rate == 20.0

    def test_unknown_strategy_key_raises(self, team_performances):
        with pytest.raises(ValueError):
            rollup(team_performances, {"revenue": RollupStrategy.RATIO_OF_SUMS})

    def test_sums_equal_member_sums(self, team_performances):
        group = rollup(team_performances)
        for name in ("total_leads", "total_calls", "completed_calls", "total_visits",
                     "total_meetings", "closed_deals", "open_deals", "total_contracts"):
            assert getattr(group, name) == sum(getattr(p, name) for p in team_performances)
        assert group.member_count == 2

    def test_deal_size_is_revenue_over_contracts(self, team_performances):
        a, b = team_performances
        members = [replace(a, total_revenue=3000.0, total_contracts=2),
                   replace(b, total_revenue=1000.0, total_contracts=2)]
        group = rollup(members)
        assert group.total_revenue == 4000.0
        assert group.average_deal_size == 1000.0

    def test_empty_group_is_all_zero(self):
        group = rollup([])
        assert group.member_count == 0
        assert group.total_leads == 0
        assert group.conversion_rate == 0.0
        assert group.average_deal_size == 0.0

    def test_empty_group_follow_ups_not_tracked(self):
        group = rollup([])
        assert isinstance(group.total_follow_ups, NotTracked)
        assert isinstance(group.completed_follow_ups, NotTracked)
        assert isinstance(group.follow_up_completion_rate, NotTracked)

    def test_explicit_mode_decides_empty_group(self):
        assert isinstance(rollup([], follow_up_mode=FollowUpMode.NOT_TRACKED)
                          .total_follow_ups, NotTracked)
        group = rollup([], follow_up_mode=FollowUpMode.SYNTHETIC)
        assert group.total_follow_ups == 0
        assert group.follow_up_completion_rate == 0.0

    def test_not_tracked_follow_ups_stay_not_tracked(self, team_performances):
        group = rollup(team_performances)
        assert isinstance(group.total_follow_ups, NotTracked)
        assert isinstance(group.follow_up_completion_rate, NotTracked)

    def test_tracked_follow_ups_are_summed(self, team_performances):
        a, b = team_performances
        members = [
            replace(a, total_follow_ups=4, completed_follow_ups=2,
                    follow_up_completion_rate=50.0),
            replace(b, total_follow_ups=1, completed_follow_ups=1,
                    follow_up_completion_rate=100.0),
        ]
        group = rollup(members)
        assert group.total_follow_ups == 5
        assert group.completed_follow_ups == 3
        assert group.follow_up_completion_rate == 75.0

    def test_mixed_tracking_is_not_tracked(self, team_performances):
        a, b = team_performances
        members = [replace(a, total_follow_ups=4, completed_follow_ups=2,
                           follow_up_completion_rate=50.0),
                   replace(b, total_follow_ups=NOT_TRACKED)]
        assert isinstance(rollup(members).total_follow_ups, NotTracked)
