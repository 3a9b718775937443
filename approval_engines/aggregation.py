"""
approval_engines.aggregation -- Pure vote aggregation.

Responsibility:
    Compute the overall outcome of a request from its individual votes,
    and produce the vote tuple that results from one approver's decision.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  No clock access; the
    decision timestamp is passed in by the service.

Invariants enforced:
    - Veto: any rejected vote makes the request rejected, whatever the
      other votes are.
    - Unanimity: the request is approved only when every vote is approved.
    - Commutativity: the outcome depends only on the multiset of votes,
      never on the order they were cast.
    - ``minimum_approvers`` / ``requires_all_approvers`` on rules do not
      take part in aggregation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from approval_kernel.domain.approval import (
    AggregateOutcome,
    Approval,
    Decision,
    RequestStatus,
    VoteStatus,
)


def evaluate_votes(approvals: Iterable[Approval]) -> AggregateOutcome:
    """Aggregate votes into a request status.

    Returns:
        ``REJECTED`` if any vote is rejected, else ``APPROVED`` if there is
        at least one vote and all are approved, else ``PENDING``.
    """
    approved = rejected = pending = 0
    rejected_by: list[str] = []
    for approval in approvals:
        if approval.status == VoteStatus.REJECTED:
            rejected += 1
            rejected_by.append(approval.approver_id)
        elif approval.status == VoteStatus.APPROVED:
            approved += 1
        else:
            pending += 1

    if rejected:
        return AggregateOutcome(
            status=RequestStatus.REJECTED,
            approved=approved,
            rejected=rejected,
            pending=pending,
            reason=f"Rejected by {', '.join(rejected_by)}",
        )

    if pending == 0 and approved > 0:
        return AggregateOutcome(
            status=RequestStatus.APPROVED,
            approved=approved,
            reason="Approved by all approvers",
        )

    return AggregateOutcome(
        status=RequestStatus.PENDING,
        approved=approved,
        pending=pending,
        reason=f"{approved}/{approved + pending} approvals",
    )


def cast_vote(
    approvals: tuple[Approval, ...],
    approver_id: str,
    decision: Decision,
    comment: str | None,
    decided_at: datetime,
) -> tuple[Approval, ...]:
    """Return ``approvals`` with ``approver_id``'s vote set to ``decision``.

    Preconditions (checked by the caller): the approver has exactly one
    pending vote in ``approvals``.  Order of votes is preserved.
    """
    status = Decision(decision).vote_status
    return tuple(
        Approval(
            approver_id=a.approver_id,
            approver_name=a.approver_name,
            status=status,
            comment=comment,
            decided_at=decided_at,
        )
        if a.approver_id == approver_id
        else a
        for a in approvals
    )
