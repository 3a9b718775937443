"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approval requests, their per-approver
    votes, and approval rules.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Request lifecycle: DB check constraint limits status values; an ORM
      listener refuses any status change on a terminal request.
    - Vote lifecycle: an ORM listener refuses any status change on a vote
      that is no longer pending.
    - One vote per approver: UNIQUE(request_id, approver_id).
    - Approver-set freezing: ``apply_dto`` refuses to add or drop votes.

Failure modes:
    - IntegrityError on duplicate approver rows.
    - ImmutabilityViolationError on terminal request / decided vote mutation.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, attributes, mapped_column, relationship

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import (
        Approval,
        ApprovalRequest,
        ApprovalRule,
    )

_TERMINAL = ("approved", "rejected", "cancelled")


class ApprovalRequestModel(Base):
    """Persistent approval request.

    Contract:
        Status transitions are lifecycle-constrained.  Terminal statuses
        (approved, rejected, cancelled) cannot be changed once set.
        ``version`` is bumped by the request store on every write.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "action_status IN ('not_applicable', 'applied', 'failed')",
            name="ck_approval_requests_valid_action_status",
        ),
        Index("ix_approval_requests_status_created", "status", "created_at"),
        Index("ix_approval_requests_project_status", "project_id", "status"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    change_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    before_value: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    after_value: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    justification: Mapped[str] = mapped_column(Text, default="", nullable=False)
    urgency: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    matched_rule_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    optional_roles: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    action_status: Mapped[str] = mapped_column(
        String(20), default="not_applicable", nullable=False,
    )
    action_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    approvals: Mapped[list["ApprovalModel"]] = relationship(
        "ApprovalModel",
        back_populates="request",
        primaryjoin="ApprovalRequestModel.request_id == ApprovalModel.request_id",
        order_by="ApprovalModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.request_id} "
            f"{self.change_kind}/{self.project_id} "
            f"status={self.status}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ActionStatus,
            ApprovalRequest as ApprovalRequestDTO,
            ChangeKind,
            RequestStatus,
            SubjectRef,
            Urgency,
        )

        return ApprovalRequestDTO(
            request_id=self.request_id,
            change_kind=ChangeKind(self.change_kind),
            subject=SubjectRef(project_id=self.project_id, project_name=self.project_name),
            requester_id=self.requester_id,
            requester_name=self.requester_name,
            title=self.title,
            description=self.description,
            before_value=self.before_value,
            after_value=self.after_value,
            justification=self.justification,
            urgency=Urgency(self.urgency),
            status=RequestStatus(self.status),
            approvals=tuple(a.to_dto() for a in self.approvals),
            created_at=self.created_at,
            updated_at=self.updated_at,
            deadline=self.deadline,
            attachments=tuple(self.attachments or ()),
            matched_rule_ids=tuple(self.matched_rule_ids or ()),
            optional_roles=tuple(self.optional_roles or ()),
            action_status=ActionStatus(self.action_status),
            action_error=self.action_error,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRequest) -> ApprovalRequestModel:
        """Create ORM model (with its vote rows) from a domain DTO."""
        model = cls(
            request_id=dto.request_id,
            change_kind=dto.change_kind.value,
            project_id=dto.subject.project_id,
            project_name=dto.subject.project_name,
            requester_id=dto.requester_id,
            requester_name=dto.requester_name,
            title=dto.title,
            description=dto.description,
            before_value=dto.before_value,
            after_value=dto.after_value,
            justification=dto.justification,
            urgency=dto.urgency.value,
            status=dto.status.value,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
            deadline=dto.deadline,
            attachments=list(dto.attachments),
            matched_rule_ids=list(dto.matched_rule_ids),
            optional_roles=list(dto.optional_roles),
            action_status=dto.action_status.value,
            action_error=dto.action_error,
            version=dto.version,
        )
        model.approvals = [
            ApprovalModel.from_dto(dto.request_id, position, approval)
            for position, approval in enumerate(dto.approvals)
        ]
        return model

    def apply_dto(self, dto: ApprovalRequest) -> None:
        """Copy the mutable fields of ``dto`` onto this row.

        Only status, timestamps, action outcome and vote decisions change
        after creation.  The approver set must match exactly.
        """
        rows = {a.approver_id: a for a in self.approvals}
        if set(rows) != set(dto.approver_ids) or len(rows) != len(dto.approvals):
            raise ImmutabilityViolationError(
                entity_type="ApprovalRequest",
                entity_id=str(self.request_id),
                reason="Approver set is frozen at creation",
            )
        for approval in dto.approvals:
            rows[approval.approver_id].apply_dto(approval)

        self.status = dto.status.value
        self.updated_at = dto.updated_at
        self.action_status = dto.action_status.value
        self.action_error = dto.action_error


class ApprovalModel(Base):
    """Persistent vote of one approver on one request.

    Contract:
        A vote moves from pending to approved or rejected once and is
        immutable afterwards.
    """

    __tablename__ = "approvals"

    __table_args__ = (
        Index("ix_approvals_approver_status", "approver_id", "status"),
        UniqueConstraint(
            "request_id", "approver_id",
            name="uq_approvals_request_approver",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approvals_valid_status",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.request_id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    request: Mapped["ApprovalRequestModel"] = relationship(
        "ApprovalRequestModel",
        back_populates="approvals",
        foreign_keys=[request_id],
        primaryjoin="ApprovalModel.request_id == ApprovalRequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval request={self.request_id} "
            f"approver={self.approver_id} status={self.status}>"
        )

    def to_dto(self) -> Approval:
        from approval_kernel.domain.approval import Approval as ApprovalDTO, VoteStatus

        return ApprovalDTO(
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            status=VoteStatus(self.status),
            comment=self.comment,
            decided_at=self.decided_at,
        )

    @classmethod
    def from_dto(cls, request_id: UUID, position: int, dto: Approval) -> ApprovalModel:
        return cls(
            request_id=request_id,
            position=position,
            approver_id=dto.approver_id,
            approver_name=dto.approver_name,
            status=dto.status.value,
            comment=dto.comment,
            decided_at=dto.decided_at,
        )

    def apply_dto(self, dto: Approval) -> None:
        if self.status == dto.status.value:
            return
        self.status = dto.status.value
        self.comment = dto.comment
        self.decided_at = dto.decided_at


class ApprovalRuleModel(Base):
    """Persistent approval rule.  Rules are freely editable configuration."""

    __tablename__ = "approval_rules"

    __table_args__ = (
        Index("ix_approval_rules_kind_enabled", "change_kind", "enabled"),
    )

    rule_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    change_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    budget_threshold: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    timeline_threshold_days: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    requires_all_approvers: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    minimum_approvers: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    approvers: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    def __repr__(self) -> str:
        return f"<ApprovalRule {self.rule_id} {self.change_kind} enabled={self.enabled}>"

    def to_dto(self) -> ApprovalRule:
        from approval_kernel.domain.approval import (
            ApprovalRule as ApprovalRuleDTO,
            ChangeKind,
            RequiredApprover,
            RuleConditions,
        )

        return ApprovalRuleDTO(
            rule_id=self.rule_id,
            name=self.name,
            change_kind=ChangeKind(self.change_kind),
            enabled=self.enabled,
            conditions=RuleConditions(
                budget_threshold=_normalized(self.budget_threshold),
                timeline_threshold_days=_normalized(self.timeline_threshold_days),
                requires_all_approvers=self.requires_all_approvers,
                minimum_approvers=self.minimum_approvers,
            ),
            approvers=tuple(
                RequiredApprover(
                    role=entry["role"],
                    required=entry.get("required", True),
                    collaborator_ids=tuple(entry.get("collaborator_ids", ())),
                )
                for entry in self.approvers or ()
            ),
        )

    def apply_dto(self, dto: ApprovalRule) -> None:
        self.rule_id = dto.rule_id
        self.name = dto.name
        self.change_kind = dto.change_kind.value
        self.enabled = dto.enabled
        self.budget_threshold = dto.conditions.budget_threshold
        self.timeline_threshold_days = dto.conditions.timeline_threshold_days
        self.requires_all_approvers = dto.conditions.requires_all_approvers
        self.minimum_approvers = dto.conditions.minimum_approvers
        self.approvers = [
            {
                "role": a.role,
                "required": a.required,
                "collaborator_ids": list(a.collaborator_ids),
            }
            for a in dto.approvers
        ]

    @classmethod
    def from_dto(cls, dto: ApprovalRule) -> ApprovalRuleModel:
        model = cls()
        model.apply_dto(dto)
        return model


def _normalized(value: Decimal | None) -> Decimal | None:
    # Numeric(38, 9) returns trailing zeros
    if value is None:
        return None
    return Decimal(value).normalize()


# =============================================================================
# ORM-Level Lifecycle Guards
# =============================================================================


def _previous(target, attr: str) -> str | None:
    history = attributes.get_history(target, attr)
    if history.deleted:
        return history.deleted[0]
    return None


@event.listens_for(ApprovalRequestModel, "before_update")
def prevent_terminal_request_update(mapper, connection, target):
    """Refuse status changes on a request that already left pending."""
    previous = _previous(target, "status")
    if previous in _TERMINAL and previous != target.status:
        raise ImmutabilityViolationError(
            entity_type="ApprovalRequest",
            entity_id=str(target.request_id),
            reason=f"Request is {previous} -- status cannot change",
        )


@event.listens_for(ApprovalModel, "before_update")
def prevent_decided_vote_update(mapper, connection, target):
    """Refuse any change to a vote that is no longer pending."""
    previous = _previous(target, "status")
    if previous is not None and previous != "pending":
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=f"{target.request_id}/{target.approver_id}",
            reason=f"Vote already {previous} -- cannot modify",
        )
