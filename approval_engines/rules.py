"""
approval_engines.rules -- Pure approval rule matching.

Responsibility:
    Decide which configured rules apply to a proposed change, given its
    change kind and its before/after values.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types.

Invariants enforced:
    - Only enabled rules whose change kind matches exactly can apply.
    - budget_change thresholds compare ``abs(after - before)``.
    - timeline_change thresholds compare the absolute, fractional number
      of days between the two values.
    - Deterministic ordering: matches are returned sorted by ``rule_id``.

Failure modes:
    - Never raises on bad values.  A threshold rule whose before/after
      values are missing or cannot be parsed simply does not apply.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from approval_kernel.domain.approval import ApprovalRule, ChangeKind

_SECONDS_PER_DAY = Decimal(86400)


def match_rules(
    rules: Iterable[ApprovalRule],
    change_kind: ChangeKind,
    before_value: Any = None,
    after_value: Any = None,
) -> list[ApprovalRule]:
    """Return every enabled rule that applies to the change.

    Args:
        rules: Candidate rules (any order).
        change_kind: Kind of the proposed change.
        before_value: Current value (budget amount, end date, ...).
        after_value: Proposed value.

    Returns:
        Applicable rules sorted by ``rule_id``; empty when nothing applies.
    """
    kind = ChangeKind(change_kind)
    matched = [
        rule for rule in rules
        if rule_applies(rule, kind, before_value, after_value)
    ]
    return sorted(matched, key=lambda r: r.rule_id)


def rule_applies(
    rule: ApprovalRule,
    change_kind: ChangeKind,
    before_value: Any,
    after_value: Any,
) -> bool:
    """Check a single rule against a change."""
    if not rule.enabled or rule.change_kind != change_kind:
        return False

    conditions = rule.conditions

    if change_kind == ChangeKind.BUDGET_CHANGE and conditions.budget_threshold:
        delta = budget_delta(before_value, after_value)
        return delta is not None and delta >= conditions.budget_threshold

    if change_kind == ChangeKind.TIMELINE_CHANGE and conditions.timeline_threshold_days:
        days = days_between(after_value, before_value)
        return days is not None and abs(days) >= conditions.timeline_threshold_days

    # Thresholds on other kinds are ignored
    return True


def budget_delta(before_value: Any, after_value: Any) -> Decimal | None:
    """Absolute difference between two amounts, or None if either is unusable."""
    before = to_decimal(before_value)
    after = to_decimal(after_value)
    if before is None or after is None:
        return None
    return abs(after - before)


def days_between(later: Any, earlier: Any) -> Decimal | None:
    """Signed fractional days from ``earlier`` to ``later``.

    Accepts ``date``, ``datetime`` or ISO-8601 strings.  A naive value is
    taken as UTC when compared with an aware one.
    """
    end = to_datetime(later)
    start = to_datetime(earlier)
    if end is None or start is None:
        return None
    seconds = Decimal(str((end - start).total_seconds()))
    return seconds / _SECONDS_PER_DAY


def to_decimal(value: Any) -> Decimal | None:
    """Coerce an amount to Decimal.  Returns None for non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def to_datetime(value: Any) -> datetime | None:
    """Coerce a date-like value to an aware UTC datetime, or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            result = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result
