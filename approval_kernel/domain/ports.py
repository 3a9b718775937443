"""
Ports -- pluggable interfaces consumed by the approval services.

Responsibility:
    Declares the collaborators the engine is parameterized over: the
    approver directory, the action executor, the notification sink and the
    two keyed stores.  Implementations live in ``stores/`` and
    ``services/`` (or outside the package entirely).

Architecture position:
    Kernel > Domain.  Protocols only, zero I/O.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol, Sequence
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalRequest,
    ApprovalRule,
    ApproverIdentity,
    NotificationEvent,
    RequestFilter,
)


class ApproverDirectory(Protocol):
    """Lookup from organizational role to concrete approver identities."""

    def members_of(self, role: str) -> Sequence[ApproverIdentity]:
        """Return every identity holding ``role`` (empty if none)."""
        ...


class ActionExecutor(Protocol):
    """Applies an approved change to the domain entity."""

    def apply(self, subject_id: str, before_value: Any, after_value: Any) -> None:
        """Apply the change.  Raise on failure."""
        ...


class NotificationSink(Protocol):
    """Best-effort delivery of state changes to approvers and requesters."""

    def notify(self, event: NotificationEvent, request: ApprovalRequest) -> None:
        ...


class RequestStore(Protocol):
    """Keyed collection of approval requests.

    ``save`` is a compare-and-swap: it succeeds only when the stored
    version equals ``request.version`` and returns the stored record with
    ``version + 1``.  ``lock`` serializes read-modify-write on one id.
    """

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        ...

    def get(self, request_id: UUID) -> ApprovalRequest | None:
        ...

    def save(self, request: ApprovalRequest) -> ApprovalRequest:
        ...

    def list(self, request_filter: RequestFilter | None = None) -> list[ApprovalRequest]:
        ...

    def lock(self, request_id: UUID) -> AbstractContextManager[None]:
        ...


class RuleStore(Protocol):
    """Keyed collection of approval rules."""

    def upsert(self, rule: ApprovalRule) -> None:
        ...

    def get(self, rule_id: str) -> ApprovalRule | None:
        ...

    def delete(self, rule_id: str) -> bool:
        ...

    def list(self) -> list[ApprovalRule]:
        ...
