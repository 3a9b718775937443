"""
Tests for approval_engines.rules -- pure rule matching.

Covers:
- kind filtering and the enabled flag
- budget thresholds (absolute delta, boundary, unusable values)
- timeline thresholds (fractional days, dates, ISO strings, both directions)
- thresholds ignored on other kinds, deterministic ordering
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from approval_engines.rules import (
    budget_delta,
    days_between,
    match_rules,
    rule_applies,
    to_datetime,
    to_decimal,
)
from approval_kernel.domain.approval import ChangeKind
from tests.conftest import make_rule


# =============================================================================
# Kind and enabled flag
# =============================================================================


class TestKindFiltering:
    def test_only_matching_kind_applies(self):
        scope = make_rule("scope", ChangeKind.SCOPE_CHANGE, roles=("management",))
        team = make_rule("team", ChangeKind.TEAM_CHANGE, roles=("management",))

        matched = match_rules([scope, team], ChangeKind.SCOPE_CHANGE)

        assert [r.rule_id for r in matched] == ["scope"]

    def test_disabled_rule_never_applies(self):
        rule = make_rule("scope", ChangeKind.SCOPE_CHANGE, enabled=False)

        assert match_rules([rule], ChangeKind.SCOPE_CHANGE) == []

    def test_no_rules_returns_empty_list(self):
        assert match_rules([], ChangeKind.PROJECT_CREATION) == []

    def test_kind_accepts_plain_string(self):
        rule = make_rule("scope", ChangeKind.SCOPE_CHANGE)

        assert match_rules([rule], "scope_change") == [rule]


# =============================================================================
# Budget thresholds
# =============================================================================


class TestBudgetThreshold:
    @pytest.fixture
    def rule(self):
        return make_rule("budget", budget_threshold=10000)

    def test_delta_above_threshold_applies(self, rule):
        assert rule_applies(rule, ChangeKind.BUDGET_CHANGE, 5000, 20000)

    def test_delta_equal_to_threshold_applies(self, rule):
        assert rule_applies(rule, ChangeKind.BUDGET_CHANGE, 5000, 15000)

    def test_delta_below_threshold_does_not_apply(self, rule):
        assert not rule_applies(rule, ChangeKind.BUDGET_CHANGE, 5000, 14999.99)

    def test_decrease_uses_absolute_delta(self, rule):
        assert rule_applies(rule, ChangeKind.BUDGET_CHANGE, 50000, 30000)

    def test_missing_value_does_not_apply(self, rule):
        assert not rule_applies(rule, ChangeKind.BUDGET_CHANGE, None, 20000)

    def test_non_numeric_value_does_not_apply(self, rule):
        assert not rule_applies(rule, ChangeKind.BUDGET_CHANGE, "n/a", 20000)

    def test_numeric_strings_are_accepted(self, rule):
        assert rule_applies(rule, ChangeKind.BUDGET_CHANGE, "5000.00", " 20000 ")

    def test_zero_threshold_is_unconditional(self):
        rule = make_rule("budget-any", budget_threshold=0)

        assert rule_applies(rule, ChangeKind.BUDGET_CHANGE, None, None)

    def test_both_tiers_match_large_change(self):
        high = make_rule("budget-high", budget_threshold=10000)
        medium = make_rule("budget-medium", roles=("management",), budget_threshold=5000)

        matched = match_rules([medium, high], ChangeKind.BUDGET_CHANGE, 0, 12000)

        assert [r.rule_id for r in matched] == ["budget-high", "budget-medium"]

    def test_only_lower_tier_matches_medium_change(self):
        high = make_rule("budget-high", budget_threshold=10000)
        medium = make_rule("budget-medium", roles=("management",), budget_threshold=5000)

        matched = match_rules([high, medium], ChangeKind.BUDGET_CHANGE, 0, 6000)

        assert [r.rule_id for r in matched] == ["budget-medium"]


# =============================================================================
# Timeline thresholds
# =============================================================================


class TestTimelineThreshold:
    @pytest.fixture
    def rule(self):
        return make_rule(
            "timeline",
            ChangeKind.TIMELINE_CHANGE,
            roles=("management",),
            timeline_threshold_days=7,
        )

    def test_slip_of_ten_days_applies(self, rule):
        assert rule_applies(
            rule, ChangeKind.TIMELINE_CHANGE, date(2024, 3, 1), date(2024, 3, 11),
        )

    def test_pull_in_uses_absolute_days(self, rule):
        assert rule_applies(
            rule, ChangeKind.TIMELINE_CHANGE, date(2024, 3, 11), date(2024, 3, 1),
        )

    def test_exactly_threshold_applies(self, rule):
        assert rule_applies(
            rule, ChangeKind.TIMELINE_CHANGE, "2024-03-01", "2024-03-08",
        )

    def test_fractional_days_below_threshold(self, rule):
        before = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        after = before + timedelta(days=6, hours=23)

        assert not rule_applies(rule, ChangeKind.TIMELINE_CHANGE, before, after)

    def test_unparseable_date_does_not_apply(self, rule):
        assert not rule_applies(rule, ChangeKind.TIMELINE_CHANGE, "soon", "2024-03-08")


class TestThresholdsOnOtherKinds:
    def test_budget_threshold_ignored_on_scope_change(self):
        rule = make_rule("scope", ChangeKind.SCOPE_CHANGE, budget_threshold=10000)

        assert rule_applies(rule, ChangeKind.SCOPE_CHANGE, None, None)

    def test_timeline_threshold_ignored_on_budget_change(self):
        rule = make_rule("budget", timeline_threshold_days=7)

        assert rule_applies(rule, ChangeKind.BUDGET_CHANGE, 1, 2)


# =============================================================================
# Value coercion
# =============================================================================


class TestCoercion:
    def test_budget_delta(self):
        assert budget_delta(Decimal("100.50"), 50) == Decimal("50.50")

    def test_booleans_are_not_amounts(self):
        assert to_decimal(True) is None

    def test_non_finite_amounts_rejected(self):
        assert to_decimal("NaN") is None
        assert to_decimal(float("inf")) is None

    def test_days_between_is_signed(self):
        assert days_between("2024-03-01", "2024-03-04") == Decimal(-3)

    def test_days_between_half_day(self):
        assert days_between("2024-03-01T12:00:00", "2024-03-01T00:00:00") == Decimal("0.5")

    def test_naive_datetime_taken_as_utc(self):
        result = to_datetime(datetime(2024, 1, 1, 8, 0))

        assert result.tzinfo is not None
        assert result == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)

    def test_unknown_type_is_none(self):
        assert to_datetime(12345) is None
