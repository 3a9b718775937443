"""
approval_kernel.services.approval_service -- Approval lifecycle management.

Responsibility:
    Manages the full lifecycle of approval requests: creation, vote
    processing, cancellation, retry of a failed approved action, and the
    read-side queries.  Rule matching, approver resolution and vote
    aggregation are delegated to the registry, the resolver and the pure
    approval engines.

Architecture position:
    Kernel > Services.  May import from domain/, stores/ (through ports),
    services/, approval_engines.

Invariants enforced:
    - Request lifecycle: ``REQUEST_TRANSITIONS`` checked before every status
      write; terminal requests are never written again.
    - Vote lifecycle: ``VOTE_TRANSITIONS`` decides whether a vote may take
      the decision; a decided vote has no outgoing edge, so a second
      decision by the same approver raises AlreadyDecidedError and changes
      nothing.
    - Unanimity with veto: see ``approval_engines.aggregation``.
    - Serialization: every read-modify-write runs inside
      ``RequestStore.lock(request_id)`` and ends in a compare-and-swap save.
    - Exactly-once action: the executor runs only in the call that moved the
      request to approved (or in an explicit retry after a failure).
    - Mutate then emit: notifications are dispatched after the write and
      outside the request lock.

Failure modes:
    - NoApplicableRuleError, NoApproversError on creation.
    - RequestNotFoundError, NotAnApproverError, AlreadyDecidedError,
      RequestAlreadyTerminalError on processing.
    - NotRequesterError, RequestAlreadyTerminalError on cancellation.
    - ActionNotRetryableError on retry.
    - Executor failures are NOT raised: they are stored on the request and
      returned in ``DecisionResult.action_error``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID, uuid4

from approval_engines.aggregation import cast_vote, evaluate_votes
from approval_kernel.domain.approval import (
    REQUEST_TRANSITIONS,
    VOTE_TRANSITIONS,
    ActionStatus,
    Approval,
    ApprovalRequest,
    ApprovalRule,
    ChangeKind,
    Decision,
    DecisionResult,
    NotificationEvent,
    RequestFilter,
    RequestStatus,
    SubjectRef,
    Urgency,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.ports import ActionExecutor, NotificationSink, RequestStore
from approval_kernel.exceptions import (
    ActionNotRetryableError,
    AlreadyDecidedError,
    InvalidApprovalTransitionError,
    NoApplicableRuleError,
    NoApproversError,
    NotAnApproverError,
    NotRequesterError,
    RequestAlreadyTerminalError,
    RequestNotFoundError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.approver_resolver import ApproverResolver
from approval_kernel.services.notifications import NotificationDispatcher
from approval_kernel.services.rule_registry import RuleRegistry

logger = get_logger("services.approval")

_RESOLUTION_EVENTS = {
    RequestStatus.APPROVED: NotificationEvent.REQUEST_APPROVED,
    RequestStatus.REJECTED: NotificationEvent.REQUEST_REJECTED,
}


class ApprovalService:
    """Manages approval request/vote lifecycle."""

    def __init__(
        self,
        requests: RequestStore,
        rules: RuleRegistry,
        resolver: ApproverResolver,
        executor: ActionExecutor | None = None,
        notifications: NotificationSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._requests = requests
        self._rules = rules
        self._resolver = resolver
        self._executor = executor
        self._notifier = NotificationDispatcher(notifications)
        self._clock = clock or SystemClock()

    @property
    def rules(self) -> RuleRegistry:
        return self._rules

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_request(
        self,
        change_kind: ChangeKind,
        subject: SubjectRef,
        requester_id: str,
        title: str,
        description: str = "",
        before_value: Any = None,
        after_value: Any = None,
        justification: str = "",
        urgency: Urgency | None = None,
        deadline: datetime | None = None,
        requester_name: str | None = None,
        attachments: Iterable[str] = (),
    ) -> ApprovalRequest:
        """Create a new approval request with one pending vote per approver.

        The approver set is computed here, once, and never recomputed.
        """
        kind = ChangeKind(change_kind)
        matched = self._rules.match(kind, before_value, after_value)
        if not matched:
            raise NoApplicableRuleError(kind.value, subject.project_id)

        approvers = self._resolver.resolve(matched, change_kind=kind)
        rule_ids = tuple(r.rule_id for r in matched)
        if not approvers:
            raise NoApproversError(kind.value, rule_ids)

        now = self._clock.now()
        request = ApprovalRequest(
            request_id=uuid4(),
            change_kind=kind,
            subject=subject,
            requester_id=requester_id,
            requester_name=requester_name or requester_id,
            title=title,
            description=description,
            before_value=before_value,
            after_value=after_value,
            justification=justification,
            urgency=Urgency(urgency) if urgency is not None else Urgency.MEDIUM,
            status=RequestStatus.PENDING,
            approvals=tuple(
                Approval(approver_id=a.identity, approver_name=a.display_name or a.identity)
                for a in approvers
            ),
            created_at=now,
            updated_at=now,
            deadline=_as_utc(deadline),
            attachments=tuple(attachments),
            matched_rule_ids=rule_ids,
            optional_roles=self._resolver.optional_roles(matched),
        )
        stored = self._requests.add(request)

        logger.info(
            "approval_request_created",
            extra={
                "request_id": str(stored.request_id),
                "change_kind": kind.value,
                "project_id": subject.project_id,
                "requester_id": requester_id,
                "rule_ids": list(rule_ids),
                "approvers": list(stored.approver_ids),
            },
        )
        self._notifier.emit(NotificationEvent.REQUEST_CREATED, stored)
        return stored

    def process_approval(
        self,
        request_id: UUID | str,
        approver_id: str,
        decision: Decision,
        comment: str | None = None,
    ) -> DecisionResult:
        """Record one approver's decision and re-evaluate the request."""
        decision = Decision(decision)
        request_id = _request_key(request_id)
        with LogContext.bind(request_id=str(request_id), actor_id=approver_id):
            with self._requests.lock(request_id):
                request = self._load(request_id)

                approval = request.approval_for(approver_id)
                if approval is None:
                    raise NotAnApproverError(str(request_id), approver_id)
                if decision.vote_status not in VOTE_TRANSITIONS[approval.status]:
                    raise AlreadyDecidedError(
                        str(request_id), approver_id, approval.status.value,
                    )
                if request.is_terminal:
                    raise RequestAlreadyTerminalError(
                        str(request_id), request.status.value,
                    )

                now = self._clock.now()
                approvals = cast_vote(
                    request.approvals, approver_id, decision, comment, now,
                )
                outcome = evaluate_votes(approvals)
                if outcome.status != request.status:
                    self._check_transition(request.status, outcome.status)

                stored = self._requests.save(
                    replace(
                        request,
                        approvals=approvals,
                        status=outcome.status,
                        updated_at=now,
                    )
                )

                action_invoked = False
                action_error = None
                if stored.status == RequestStatus.APPROVED and self._executor is not None:
                    stored, action_error = self._apply_action(stored)
                    action_invoked = True

            logger.info(
                "approval_vote_recorded",
                extra={
                    "decision": decision.value,
                    "new_status": stored.status.value,
                    "approved": outcome.approved,
                    "rejected": outcome.rejected,
                    "pending": outcome.pending,
                },
            )
            if stored.is_terminal:
                logger.info(
                    "approval_request_resolved",
                    extra={"status": stored.status.value, "reason": outcome.reason},
                )

        self._notifier.emit(
            _RESOLUTION_EVENTS.get(stored.status, NotificationEvent.VOTE_RECORDED),
            stored,
        )
        if action_error is not None:
            self._notifier.emit(NotificationEvent.ACTION_FAILED, stored)

        return DecisionResult(
            request=stored,
            action_invoked=action_invoked,
            action_error=action_error,
        )

    def cancel_request(self, request_id: UUID | str, caller_id: str) -> ApprovalRequest:
        """Cancel a pending request.  Only the original requester may cancel."""
        request_id = _request_key(request_id)
        with LogContext.bind(request_id=str(request_id), actor_id=caller_id):
            with self._requests.lock(request_id):
                request = self._load(request_id)

                if request.requester_id != caller_id:
                    raise NotRequesterError(
                        str(request_id), caller_id, request.requester_id,
                    )
                if request.is_terminal:
                    raise RequestAlreadyTerminalError(
                        str(request_id), request.status.value,
                    )
                self._check_transition(request.status, RequestStatus.CANCELLED)

                stored = self._requests.save(
                    replace(
                        request,
                        status=RequestStatus.CANCELLED,
                        updated_at=self._clock.now(),
                    )
                )

            logger.info(
                "approval_request_cancelled",
                extra={"pending_approvers": list(request.pending_approvers())},
            )

        self._notifier.emit(NotificationEvent.REQUEST_CANCELLED, stored)
        return stored

    def retry_action(self, request_id: UUID | str) -> DecisionResult:
        """Re-run the executor for an approved request whose action failed."""
        request_id = _request_key(request_id)
        with LogContext.bind(request_id=str(request_id)):
            with self._requests.lock(request_id):
                request = self._load(request_id)
                if (
                    self._executor is None
                    or request.status != RequestStatus.APPROVED
                    or request.action_status != ActionStatus.FAILED
                ):
                    raise ActionNotRetryableError(
                        str(request_id),
                        request.status.value,
                        request.action_status.value,
                    )
                stored, action_error = self._apply_action(request)

            logger.info(
                "approved_action_retried",
                extra={"action_status": stored.action_status.value},
            )

        if action_error is not None:
            self._notifier.emit(NotificationEvent.ACTION_FAILED, stored)
        return DecisionResult(
            request=stored,
            action_invoked=True,
            action_error=action_error,
        )

    def upsert_rule(self, rule: ApprovalRule) -> None:
        self._rules.upsert_rule(rule)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> ApprovalRule:
        return self._rules.set_rule_enabled(rule_id, enabled)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID | str) -> ApprovalRequest:
        return self._load(_request_key(request_id))

    def list_requests(
        self,
        request_filter: RequestFilter | None = None,
    ) -> list[ApprovalRequest]:
        """All requests matching ``request_filter``, newest first."""
        return self._requests.list(request_filter)

    def list_pending_for_approver(self, approver_id: str) -> list[ApprovalRequest]:
        """Pending requests on which ``approver_id`` still has to vote."""
        candidates = self._requests.list(
            RequestFilter(status=RequestStatus.PENDING, approver_id=approver_id)
        )
        result = []
        for request in candidates:
            approval = request.approval_for(approver_id)
            if approval is not None and approval.is_pending:
                result.append(request)
        return result

    def list_overdue(self, as_of: datetime | None = None) -> list[ApprovalRequest]:
        """Pending requests whose deadline has passed.

        Advisory only: nothing here changes request state.
        """
        cutoff = _as_utc(as_of) or self._clock.now()
        return [
            r for r in self._requests.list(RequestFilter(status=RequestStatus.PENDING))
            if r.deadline is not None and r.deadline < cutoff
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: UUID) -> ApprovalRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    @staticmethod
    def _check_transition(current: RequestStatus, new: RequestStatus) -> None:
        if new not in REQUEST_TRANSITIONS.get(current, frozenset()):
            raise InvalidApprovalTransitionError(current.value, new.value)

    def _apply_action(
        self,
        request: ApprovalRequest,
    ) -> tuple[ApprovalRequest, str | None]:
        """Invoke the executor and persist its outcome on the request.

        The request stays approved whatever the executor does.
        """
        try:
            self._executor.apply(
                request.subject.project_id,
                request.before_value,
                request.after_value,
            )
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error(
                "approved_action_failed",
                exc_info=True,
                extra={"project_id": request.subject.project_id},
            )
            stored = self._requests.save(
                replace(
                    request,
                    action_status=ActionStatus.FAILED,
                    action_error=error,
                    updated_at=self._clock.now(),
                )
            )
            return stored, error

        stored = self._requests.save(
            replace(
                request,
                action_status=ActionStatus.APPLIED,
                action_error=None,
                updated_at=self._clock.now(),
            )
        )
        logger.info(
            "approved_action_applied",
            extra={"project_id": request.subject.project_id},
        )
        return stored, None


def _request_key(request_id: UUID | str) -> UUID:
    """Request ids are UUIDs in every store; accept their string form too."""
    if isinstance(request_id, UUID):
        return request_id
    try:
        return UUID(str(request_id))
    except ValueError:
        raise RequestNotFoundError(str(request_id)) from None


def _as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
