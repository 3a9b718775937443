"""
RuleRegistry -- holds approval rules and matches changes against them.

Responsibility:
    Configuration-side CRUD for rules (upsert, enable/disable, remove) and
    the read-side ``match`` used when a request is created.  Matching is
    delegated to the pure ``approval_engines.rules`` module.

Architecture position:
    Kernel > Services.  May import from domain/, stores/ via the
    ``RuleStore`` port, and approval_engines.

Invariants enforced:
    - Rules are read-only during evaluation: ``match`` takes a snapshot of
      the store and never writes.
    - Editing or disabling a rule never touches existing requests; they
      carry their own frozen approver set.

Failure modes:
    - RuleNotFoundError from ``set_rule_enabled`` / ``get_rule`` on an
      unknown id.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable

from approval_engines.rules import match_rules
from approval_kernel.domain.approval import ApprovalRule, ChangeKind
from approval_kernel.domain.ports import RuleStore
from approval_kernel.exceptions import RuleNotFoundError
from approval_kernel.logging_config import get_logger

logger = get_logger("services.rule_registry")


class RuleRegistry:
    """Manages approval rules stored in a ``RuleStore``."""

    def __init__(self, store: RuleStore) -> None:
        self._store = store

    def match(
        self,
        change_kind: ChangeKind,
        before_value: Any = None,
        after_value: Any = None,
    ) -> list[ApprovalRule]:
        """Return the enabled rules that apply to a change (may be empty)."""
        matched = match_rules(self._store.list(), change_kind, before_value, after_value)
        logger.debug(
            "approval_rules_matched",
            extra={
                "change_kind": ChangeKind(change_kind).value,
                "rule_ids": [r.rule_id for r in matched],
            },
        )
        return matched

    def upsert_rule(self, rule: ApprovalRule) -> None:
        """Insert a rule or replace the rule with the same id."""
        self._store.upsert(rule)
        logger.info(
            "approval_rule_upserted",
            extra={
                "rule_id": rule.rule_id,
                "change_kind": rule.change_kind.value,
                "enabled": rule.enabled,
            },
        )

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> ApprovalRule:
        """Enable or disable a rule.  In-flight requests are unaffected."""
        rule = self.get_rule(rule_id)
        updated = replace(rule, enabled=enabled)
        self._store.upsert(updated)
        logger.info(
            "approval_rule_toggled",
            extra={"rule_id": rule_id, "enabled": enabled},
        )
        return updated

    def remove_rule(self, rule_id: str) -> bool:
        """Delete a rule.  Returns False if it did not exist."""
        removed = self._store.delete(rule_id)
        if removed:
            logger.info("approval_rule_removed", extra={"rule_id": rule_id})
        return removed

    def get_rule(self, rule_id: str) -> ApprovalRule:
        rule = self._store.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def list_rules(self, change_kind: ChangeKind | None = None) -> list[ApprovalRule]:
        rules = self._store.list()
        if change_kind is not None:
            rules = [r for r in rules if r.change_kind == ChangeKind(change_kind)]
        return rules

    def install_defaults(self, rules: Iterable[ApprovalRule]) -> int:
        """Seed ``rules`` when the store holds no rules yet.

        Returns:
            Number of rules installed (0 if the store was not empty).
        """
        if self._store.list():
            return 0
        count = 0
        for rule in rules:
            self._store.upsert(rule)
            count += 1
        logger.info("approval_rules_seeded", extra={"count": count})
        return count
