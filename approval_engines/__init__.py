"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation functions of
    the approval workflow: rule matching, approver resolution and vote
    aggregation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain.
    MUST NOT import approval_kernel.services, stores, db or models.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps are passed in.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from approval_engines import match_rules, resolve_approvers, evaluate_votes
"""

from approval_engines.aggregation import cast_vote, evaluate_votes
from approval_engines.approvers import optional_roles, resolve_approvers
from approval_engines.rules import (
    budget_delta,
    days_between,
    match_rules,
    rule_applies,
)

__all__ = [
    "budget_delta",
    "cast_vote",
    "days_between",
    "evaluate_votes",
    "match_rules",
    "optional_roles",
    "resolve_approvers",
    "rule_applies",
]
