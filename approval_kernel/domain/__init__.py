"""
Pure domain layer.

Value objects, lifecycle tables and ports with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the Clock abstraction itself)
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATUSES,
    VOTE_TRANSITIONS,
    ActionStatus,
    AggregateOutcome,
    Approval,
    ApprovalRequest,
    ApprovalRule,
    ApproverIdentity,
    ChangeKind,
    Decision,
    DecisionResult,
    NotificationEvent,
    RequestFilter,
    RequestStatus,
    RequiredApprover,
    RuleConditions,
    SubjectRef,
    Urgency,
    VoteStatus,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "REQUEST_TRANSITIONS",
    "TERMINAL_REQUEST_STATUSES",
    "VOTE_TRANSITIONS",
    "ActionStatus",
    "AggregateOutcome",
    "Approval",
    "ApprovalRequest",
    "ApprovalRule",
    "ApproverIdentity",
    "ChangeKind",
    "Clock",
    "Decision",
    "DecisionResult",
    "DeterministicClock",
    "NotificationEvent",
    "RequestFilter",
    "RequestStatus",
    "RequiredApprover",
    "RuleConditions",
    "SubjectRef",
    "SystemClock",
    "Urgency",
    "VoteStatus",
]
