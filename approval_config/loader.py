"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML rule sets and approver directories and parses them into kernel
domain objects (``ApprovalRule``, ``StaticApproverDirectory``).

Architecture position
---------------------
**Config layer** -- sits above ``approval_kernel``.  The kernel never
imports from this package.

Invariants enforced
-------------------
* Every parsed rule is a frozen ``ApprovalRule``.
* Parse errors raise ``RuleConfigurationError`` naming the rule and the
  problem; there are no silent defaults for required keys.
* ``compute_checksum`` produces a deterministic SHA-256 over a rule set.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad rule entry  -> ``RuleConfigurationError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable

import yaml

from approval_kernel.domain.approval import (
    ApprovalRule,
    ApproverIdentity,
    ChangeKind,
    RequiredApprover,
    RuleConditions,
)
from approval_kernel.exceptions import RuleConfigurationError
from approval_kernel.services.directory import StaticApproverDirectory
from approval_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, rule_id: str | None, key: str) -> Decimal | None:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise RuleConfigurationError(rule_id, f"{key} is not a number: {value!r}")
    if not result.is_finite() or result < 0:
        raise RuleConfigurationError(rule_id, f"{key} must be a non-negative number")
    return result


def parse_conditions(data: dict[str, Any], rule_id: str | None = None) -> RuleConditions:
    """Parse the ``conditions`` block of a rule."""
    minimum = data.get("minimum_approvers", 1)
    if not isinstance(minimum, int) or minimum < 0:
        raise RuleConfigurationError(rule_id, "minimum_approvers must be a non-negative integer")
    return RuleConditions(
        budget_threshold=parse_decimal(data.get("budget_threshold"), rule_id, "budget_threshold"),
        timeline_threshold_days=parse_decimal(
            data.get("timeline_threshold_days"), rule_id, "timeline_threshold_days",
        ),
        requires_all_approvers=bool(data.get("requires_all_approvers", False)),
        minimum_approvers=minimum,
    )


def parse_required_approver(data: dict[str, Any], rule_id: str | None = None) -> RequiredApprover:
    if "role" not in data:
        raise RuleConfigurationError(rule_id, "approver entry without role")
    return RequiredApprover(
        role=str(data["role"]),
        required=bool(data.get("required", True)),
        collaborator_ids=tuple(str(c) for c in data.get("collaborator_ids", ())),
    )


def parse_rule(data: dict[str, Any]) -> ApprovalRule:
    """
    Parse an ``ApprovalRule`` from a dict.

    Preconditions:
        - ``data`` must contain ``id``, ``name`` and ``change_kind``.
    Raises:
        RuleConfigurationError: on missing keys or invalid values.
    """
    rule_id = data.get("id")
    for key in ("id", "name", "change_kind"):
        if key not in data:
            raise RuleConfigurationError(rule_id, f"missing required key '{key}'")
    try:
        change_kind = ChangeKind(data["change_kind"])
    except ValueError:
        raise RuleConfigurationError(rule_id, f"unknown change_kind {data['change_kind']!r}")

    return ApprovalRule(
        rule_id=str(rule_id),
        name=str(data["name"]),
        change_kind=change_kind,
        enabled=bool(data.get("enabled", True)),
        conditions=parse_conditions(data.get("conditions") or {}, rule_id),
        approvers=tuple(
            parse_required_approver(a, rule_id) for a in data.get("approvers") or ()
        ),
    )


def parse_rule_set(data: dict[str, Any]) -> list[ApprovalRule]:
    """Parse the ``rules`` list of a rule-set document.  Ids must be unique."""
    rules = [parse_rule(entry) for entry in data.get("rules") or ()]
    seen: set[str] = set()
    for rule in rules:
        if rule.rule_id in seen:
            raise RuleConfigurationError(rule.rule_id, "duplicate rule id")
        seen.add(rule.rule_id)
    return rules


def parse_directory(data: dict[str, Any]) -> StaticApproverDirectory:
    """
    Parse an approver directory document.

    Expected shape::

        approvers:
          - id: mgmt-1
            name: Joao Silva
            role: management
    """
    members = []
    for entry in data.get("approvers") or ():
        if "id" not in entry or "role" not in entry:
            raise RuleConfigurationError(None, f"directory entry needs id and role: {entry!r}")
        members.append(
            ApproverIdentity(
                identity=str(entry["id"]),
                display_name=str(entry.get("name", entry["id"])),
                role=str(entry["role"]),
            )
        )
    return StaticApproverDirectory(members)


def serialize_rule(rule: ApprovalRule) -> dict[str, Any]:
    """Inverse of ``parse_rule``, used for checksums."""
    return {
        "id": rule.rule_id,
        "name": rule.name,
        "change_kind": rule.change_kind.value,
        "enabled": rule.enabled,
        "conditions": {
            "budget_threshold": rule.conditions.budget_threshold,
            "timeline_threshold_days": rule.conditions.timeline_threshold_days,
            "requires_all_approvers": rule.conditions.requires_all_approvers,
            "minimum_approvers": rule.conditions.minimum_approvers,
        },
        "approvers": [
            {
                "role": a.role,
                "required": a.required,
                "collaborator_ids": list(a.collaborator_ids),
            }
            for a in rule.approvers
        ],
    }


def compute_checksum(rules: Iterable[ApprovalRule]) -> str:
    """
    Compute SHA-256 checksum of a rule set.

    Order-independent: rules are sorted by id before hashing.
    """
    ordered = sorted(rules, key=lambda r: r.rule_id)
    return hash_payload({"rules": [serialize_rule(r) for r in ordered]})
