"""
ApproverResolver -- turns matched rules into a concrete approver set.

Responsibility:
    Consult the injected ``ApproverDirectory`` and produce the deduplicated
    list of identities that must vote on a request.  Holds no identity data.

Failure modes:
    - NoApplicableRuleError when the matched-rule list is empty and approval
      is mandatory.
"""

from __future__ import annotations

from typing import Sequence

from approval_engines.approvers import optional_roles, resolve_approvers
from approval_kernel.domain.approval import ApprovalRule, ApproverIdentity, ChangeKind
from approval_kernel.domain.ports import ApproverDirectory
from approval_kernel.exceptions import NoApplicableRuleError


class ApproverResolver:
    """Resolves required approvers through an ``ApproverDirectory``."""

    def __init__(self, directory: ApproverDirectory) -> None:
        self._directory = directory

    def resolve(
        self,
        matched_rules: Sequence[ApprovalRule],
        *,
        mandatory: bool = True,
        change_kind: ChangeKind | None = None,
    ) -> list[ApproverIdentity]:
        """Required approvers for ``matched_rules``, deduplicated by identity."""
        if not matched_rules and mandatory:
            raise NoApplicableRuleError(
                ChangeKind(change_kind).value if change_kind is not None else "unknown",
            )
        return resolve_approvers(matched_rules, self._directory)

    def optional_roles(self, matched_rules: Sequence[ApprovalRule]) -> tuple[str, ...]:
        """Informational, non-binding roles named by ``matched_rules``."""
        return optional_roles(matched_rules)
