"""
SQLAlchemy-backed request and rule stores.

Responsibility:
    Persist the ``requests`` and ``rules`` collections in relational tables
    (``approval_requests`` + ``approvals``, ``approval_rules``).  Each call
    runs in its own transaction through ``session_scope``.

Architecture position:
    Kernel > Stores.  May import from db/, models/, domain/.

Invariants enforced:
    - Compare-and-swap writes: ``save`` re-reads the row under
      ``SELECT ... FOR UPDATE`` and refuses a stale ``version``.
    - In-process serialization per request id through ``lock``.  Across
      processes the row lock and the version check keep writes atomic.

Failure modes:
    - RequestNotFoundError when saving an unknown request.
    - OptimisticLockError on a stale write.
    - ImmutabilityViolationError from the ORM lifecycle listeners.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval import (
    ApprovalRequest,
    ApprovalRule,
    RequestFilter,
)
from approval_kernel.exceptions import OptimisticLockError, RequestNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import (
    ApprovalModel,
    ApprovalRequestModel,
    ApprovalRuleModel,
)
from approval_kernel.utils.locks import KeyedLock

logger = get_logger("stores.sql")


class SqlRequestStore:
    """``RequestStore`` over the approval_requests / approvals tables."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._locks: KeyedLock[UUID] = KeyedLock()

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        stored = replace(request, version=1)
        with session_scope(self._session_factory) as session:
            session.add(ApprovalRequestModel.from_dto(stored))
        return stored

    def get(self, request_id: UUID) -> ApprovalRequest | None:
        with session_scope(self._session_factory) as session:
            model = session.execute(
                select(ApprovalRequestModel).where(
                    ApprovalRequestModel.request_id == request_id,
                )
            ).scalar_one_or_none()
            return model.to_dto() if model is not None else None

    def save(self, request: ApprovalRequest) -> ApprovalRequest:
        with session_scope(self._session_factory) as session:
            model = session.execute(
                select(ApprovalRequestModel)
                .where(ApprovalRequestModel.request_id == request.request_id)
                .with_for_update()
            ).scalar_one_or_none()

            if model is None:
                raise RequestNotFoundError(str(request.request_id))
            if model.version != request.version:
                logger.warning(
                    "approval_request_stale_write",
                    extra={
                        "request_id": str(request.request_id),
                        "stored_version": model.version,
                        "write_version": request.version,
                    },
                )
                raise OptimisticLockError("ApprovalRequest", str(request.request_id))

            model.apply_dto(request)
            model.version = request.version + 1
            session.flush()
            return model.to_dto()

    def list(self, request_filter: RequestFilter | None = None) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestModel)
        if request_filter is not None:
            if request_filter.status is not None:
                stmt = stmt.where(ApprovalRequestModel.status == request_filter.status.value)
            if request_filter.project_id is not None:
                stmt = stmt.where(ApprovalRequestModel.project_id == request_filter.project_id)
            if request_filter.change_kind is not None:
                stmt = stmt.where(
                    ApprovalRequestModel.change_kind == request_filter.change_kind.value,
                )
            if request_filter.approver_id is not None:
                stmt = stmt.where(
                    ApprovalRequestModel.request_id.in_(
                        select(ApprovalModel.request_id).where(
                            ApprovalModel.approver_id == request_filter.approver_id,
                        )
                    )
                )
        stmt = stmt.order_by(
            ApprovalRequestModel.created_at.desc(),
            ApprovalRequestModel.request_id.desc(),
        )
        with session_scope(self._session_factory) as session:
            return [m.to_dto() for m in session.execute(stmt).scalars().all()]

    def lock(self, request_id: UUID) -> AbstractContextManager[None]:
        return self._locks.hold(request_id)


class SqlRuleStore:
    """``RuleStore`` over the approval_rules table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def upsert(self, rule: ApprovalRule) -> None:
        with session_scope(self._session_factory) as session:
            model = self._load(session, rule.rule_id)
            if model is None:
                session.add(ApprovalRuleModel.from_dto(rule))
            else:
                model.apply_dto(rule)

    def get(self, rule_id: str) -> ApprovalRule | None:
        with session_scope(self._session_factory) as session:
            model = self._load(session, rule_id)
            return model.to_dto() if model is not None else None

    def delete(self, rule_id: str) -> bool:
        with session_scope(self._session_factory) as session:
            model = self._load(session, rule_id)
            if model is None:
                return False
            session.delete(model)
            return True

    def list(self) -> list[ApprovalRule]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(ApprovalRuleModel).order_by(ApprovalRuleModel.rule_id)
            ).scalars().all()
            return [m.to_dto() for m in models]

    @staticmethod
    def _load(session: Session, rule_id: str) -> ApprovalRuleModel | None:
        return session.execute(
            select(ApprovalRuleModel).where(ApprovalRuleModel.rule_id == rule_id)
        ).scalar_one_or_none()
