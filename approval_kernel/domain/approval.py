"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval workflow engine.  Defines the request
and vote lifecycle state machines, rule data, request/vote records, query
filters and decision results.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``stores/`` or outer layers.

Invariants enforced
-------------------
* Request lifecycle -- ``REQUEST_TRANSITIONS`` defines the only valid
  status transitions.  Terminal states have no outgoing edges.
* Vote lifecycle -- ``VOTE_TRANSITIONS`` allows only ``pending -> approved``
  and ``pending -> rejected``.
* Approver-set freezing -- ``ApprovalRequest.approvals`` is a tuple fixed
  at creation; later rule edits never reach an existing request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =========================================================================
# Enumerations
# =========================================================================


class ChangeKind(str, Enum):
    """Kinds of change to a managed entity that may need sign-off."""

    BUDGET_CHANGE = "budget_change"
    SCOPE_CHANGE = "scope_change"
    TIMELINE_CHANGE = "timeline_change"
    TEAM_CHANGE = "team_change"
    PROJECT_CREATION = "project_creation"
    PROJECT_CANCELLATION = "project_cancellation"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RequestStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
})


class VoteStatus(str, Enum):
    """State of one approver's individual vote."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


VOTE_TRANSITIONS: dict[VoteStatus, frozenset[VoteStatus]] = {
    VoteStatus.PENDING: frozenset({VoteStatus.APPROVED, VoteStatus.REJECTED}),
    VoteStatus.APPROVED: frozenset(),
    VoteStatus.REJECTED: frozenset(),
}


class Decision(str, Enum):
    """Decision an approver can submit."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def vote_status(self) -> VoteStatus:
        return VoteStatus(self.value)


class ActionStatus(str, Enum):
    """Outcome of applying the approved change to the domain entity."""

    NOT_APPLICABLE = "not_applicable"
    APPLIED = "applied"
    FAILED = "failed"


class NotificationEvent(str, Enum):
    """Events emitted to the notification sink after state is persisted."""

    REQUEST_CREATED = "request_created"
    VOTE_RECORDED = "vote_recorded"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_CANCELLED = "request_cancelled"
    ACTION_FAILED = "action_failed"


# =========================================================================
# Rule Types
# =========================================================================


@dataclass(frozen=True)
class RuleConditions:
    """Match conditions of a rule.

    ``requires_all_approvers`` and ``minimum_approvers`` are carried as
    configuration only; aggregation is always unanimous.
    """

    budget_threshold: Decimal | None = None
    timeline_threshold_days: Decimal | None = None
    requires_all_approvers: bool = False
    minimum_approvers: int = 1


@dataclass(frozen=True)
class RequiredApprover:
    """One approver role named by a rule.

    ``required=False`` entries are informational and never add approvers.
    A non-empty ``collaborator_ids`` narrows the role to those identities.
    """

    role: str
    required: bool = True
    collaborator_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ApprovalRule:
    """Configuration mapping a kind of change to the approvers it requires."""

    rule_id: str
    name: str
    change_kind: ChangeKind
    enabled: bool = True
    conditions: RuleConditions = field(default_factory=RuleConditions)
    approvers: tuple[RequiredApprover, ...] = ()

    @property
    def required_roles(self) -> tuple[str, ...]:
        return tuple(a.role for a in self.approvers if a.required)

    @property
    def optional_roles(self) -> tuple[str, ...]:
        return tuple(a.role for a in self.approvers if not a.required)


# =========================================================================
# Identities and Subjects
# =========================================================================


@dataclass(frozen=True)
class ApproverIdentity:
    """A concrete approver returned by the approver directory."""

    identity: str
    display_name: str = ""
    role: str = ""


@dataclass(frozen=True)
class SubjectRef:
    """The managed entity a change applies to."""

    project_id: str
    project_name: str = ""


# =========================================================================
# Request and Vote Records
# =========================================================================


@dataclass(frozen=True)
class Approval:
    """One approver's vote on a request. Immutable; replaced on decision."""

    approver_id: str
    approver_name: str = ""
    status: VoteStatus = VoteStatus.PENDING
    comment: str | None = None
    decided_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == VoteStatus.PENDING


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request.

    ``approvals`` is frozen at creation.  ``version`` increases by one on
    every successful store write and guards compare-and-swap updates.
    """

    request_id: UUID
    change_kind: ChangeKind
    subject: SubjectRef
    requester_id: str
    title: str
    requester_name: str = ""
    description: str = ""
    before_value: Any = None
    after_value: Any = None
    justification: str = ""
    urgency: Urgency = Urgency.MEDIUM
    status: RequestStatus = RequestStatus.PENDING
    approvals: tuple[Approval, ...] = ()
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deadline: datetime | None = None
    attachments: tuple[str, ...] = ()
    matched_rule_ids: tuple[str, ...] = ()
    optional_roles: tuple[str, ...] = ()
    action_status: ActionStatus = ActionStatus.NOT_APPLICABLE
    action_error: str | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def approver_ids(self) -> tuple[str, ...]:
        return tuple(a.approver_id for a in self.approvals)

    def approval_for(self, approver_id: str) -> Approval | None:
        for approval in self.approvals:
            if approval.approver_id == approver_id:
                return approval
        return None

    def pending_approvers(self) -> tuple[str, ...]:
        return tuple(a.approver_id for a in self.approvals if a.is_pending)


# =========================================================================
# Queries and Results
# =========================================================================


@dataclass(frozen=True)
class RequestFilter:
    """Criteria for ``list_requests``.  ``None`` fields do not filter."""

    status: RequestStatus | None = None
    project_id: str | None = None
    approver_id: str | None = None
    change_kind: ChangeKind | None = None

    def matches(self, request: ApprovalRequest) -> bool:
        if self.status is not None and request.status != self.status:
            return False
        if self.project_id is not None and request.subject.project_id != self.project_id:
            return False
        if self.approver_id is not None and self.approver_id not in request.approver_ids:
            return False
        if self.change_kind is not None and request.change_kind != self.change_kind:
            return False
        return True


@dataclass(frozen=True)
class AggregateOutcome:
    """Result of evaluating all votes on a request."""

    status: RequestStatus
    approved: int = 0
    rejected: int = 0
    pending: int = 0
    reason: str = ""


@dataclass(frozen=True)
class DecisionResult:
    """Result of processing a vote or retrying an approved action.

    ``action_error`` is set when the action executor failed; the request
    itself stays approved.
    """

    request: ApprovalRequest
    action_invoked: bool = False
    action_error: str | None = None

    @property
    def status(self) -> RequestStatus:
        return self.request.status

    @property
    def action_failed(self) -> bool:
        return self.action_error is not None
