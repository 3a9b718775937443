"""
In-memory request and rule stores.

Responsibility:
    Dict-backed implementations of ``RequestStore`` and ``RuleStore`` for
    tests and single-process embedding.  Records are frozen dataclasses, so
    readers always see a consistent snapshot.

Invariants enforced:
    - Compare-and-swap writes on ``ApprovalRequest.version``.
    - Per-request exclusive locking through ``lock(request_id)``.
"""

from __future__ import annotations

import threading
from contextlib import AbstractContextManager
from dataclasses import replace
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalRequest,
    ApprovalRule,
    RequestFilter,
)
from approval_kernel.exceptions import OptimisticLockError, RequestNotFoundError
from approval_kernel.utils.locks import KeyedLock


class InMemoryRequestStore:
    """Keyed ``requests`` collection held in a dict."""

    def __init__(self) -> None:
        self._records: dict[UUID, ApprovalRequest] = {}
        self._guard = threading.Lock()
        self._locks: KeyedLock[UUID] = KeyedLock()

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        stored = replace(request, version=1)
        with self._guard:
            if request.request_id in self._records:
                raise OptimisticLockError("ApprovalRequest", str(request.request_id))
            self._records[request.request_id] = stored
        return stored

    def get(self, request_id: UUID) -> ApprovalRequest | None:
        with self._guard:
            return self._records.get(request_id)

    def save(self, request: ApprovalRequest) -> ApprovalRequest:
        with self._guard:
            current = self._records.get(request.request_id)
            if current is None:
                raise RequestNotFoundError(str(request.request_id))
            if current.version != request.version:
                raise OptimisticLockError("ApprovalRequest", str(request.request_id))
            stored = replace(request, version=request.version + 1)
            self._records[request.request_id] = stored
        return stored

    def list(self, request_filter: RequestFilter | None = None) -> list[ApprovalRequest]:
        with self._guard:
            records = list(self._records.values())
        if request_filter is not None:
            records = [r for r in records if request_filter.matches(r)]
        return _newest_first(records)

    def lock(self, request_id: UUID) -> AbstractContextManager[None]:
        return self._locks.hold(request_id)


class InMemoryRuleStore:
    """Keyed ``rules`` collection held in a dict."""

    def __init__(self) -> None:
        self._rules: dict[str, ApprovalRule] = {}
        self._guard = threading.Lock()

    def upsert(self, rule: ApprovalRule) -> None:
        with self._guard:
            self._rules[rule.rule_id] = rule

    def get(self, rule_id: str) -> ApprovalRule | None:
        with self._guard:
            return self._rules.get(rule_id)

    def delete(self, rule_id: str) -> bool:
        with self._guard:
            return self._rules.pop(rule_id, None) is not None

    def list(self) -> list[ApprovalRule]:
        with self._guard:
            return sorted(self._rules.values(), key=lambda r: r.rule_id)


def _newest_first(records: list[ApprovalRequest]) -> list[ApprovalRequest]:
    # Stable tie-break on id so equal timestamps list deterministically
    return sorted(
        records,
        key=lambda r: (r.created_at is not None, r.created_at, str(r.request_id)),
        reverse=True,
    )
