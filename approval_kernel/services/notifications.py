"""
Notification dispatch -- best-effort delivery of approval events.

Responsibility:
    Forward ``NotificationEvent``s to the injected sink after the state
    change that produced them has been persisted.

Invariants enforced:
    - A sink failure is logged and swallowed.  It never propagates into
      ``create_request``, ``process_approval`` or ``cancel_request``.
"""

from __future__ import annotations

from approval_kernel.domain.approval import ApprovalRequest, NotificationEvent
from approval_kernel.domain.ports import NotificationSink
from approval_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationDispatcher:
    """Wraps a ``NotificationSink`` so that delivery can never fail a call."""

    def __init__(self, sink: NotificationSink | None = None) -> None:
        self._sink = sink

    def emit(self, event: NotificationEvent, request: ApprovalRequest) -> bool:
        """Deliver one event.  Returns False if the sink raised."""
        if self._sink is None:
            return True
        try:
            self._sink.notify(event, request)
        except Exception:
            logger.warning(
                "notification_failed",
                exc_info=True,
                extra={
                    "event": event.value,
                    "request_id": str(request.request_id),
                },
            )
            return False
        return True


class LoggingNotificationSink:
    """Sink that writes each event to the structured log."""

    def __init__(self) -> None:
        self._logger = get_logger("notifications")

    def notify(self, event: NotificationEvent, request: ApprovalRequest) -> None:
        self._logger.info(
            "approval_notification",
            extra={
                "event": event.value,
                "request_id": str(request.request_id),
                "status": request.status.value,
                "requester_id": request.requester_id,
                "pending_approvers": list(request.pending_approvers()),
            },
        )
