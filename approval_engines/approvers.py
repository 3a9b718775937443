"""
approval_engines.approvers -- Pure approver-set resolution.

Responsibility:
    Turn matched rules into a concrete, deduplicated list of approvers
    using a role -> identities lookup.

Architecture position:
    Engines -- pure calculation layer.  The directory is passed in; this
    module holds no identity data of its own.

Invariants enforced:
    - Each identity appears at most once (dedup by ``identity``), in order
      of first appearance across rules sorted by ``rule_id``.
    - Only ``required=True`` entries add approvers.  ``required=False``
      entries are reported by ``optional_roles`` and never bind.
"""

from __future__ import annotations

from typing import Iterable

from approval_kernel.domain.approval import ApprovalRule, ApproverIdentity
from approval_kernel.domain.ports import ApproverDirectory


def resolve_approvers(
    rules: Iterable[ApprovalRule],
    directory: ApproverDirectory,
) -> list[ApproverIdentity]:
    """Collect every directory identity holding a required role.

    When a ``RequiredApprover`` lists ``collaborator_ids``, only members of
    the role whose identity is in that list are taken.
    """
    seen: dict[str, ApproverIdentity] = {}
    for rule in sorted(rules, key=lambda r: r.rule_id):
        for entry in rule.approvers:
            if not entry.required:
                continue
            allowed = set(entry.collaborator_ids)
            for member in directory.members_of(entry.role):
                if allowed and member.identity not in allowed:
                    continue
                seen.setdefault(member.identity, member)
    return list(seen.values())


def optional_roles(rules: Iterable[ApprovalRule]) -> tuple[str, ...]:
    """Informational roles named by the rules, deduplicated, in order.

    A role that is required by any of the rules is not reported here.
    """
    ordered = sorted(rules, key=lambda r: r.rule_id)
    required = {role for rule in ordered for role in rule.required_roles}
    roles: list[str] = []
    for rule in ordered:
        for role in rule.optional_roles:
            if role not in required and role not in roles:
                roles.append(role)
    return tuple(roles)
