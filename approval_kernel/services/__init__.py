"""Services for the approval kernel (write side and queries)."""

from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.approver_resolver import ApproverResolver
from approval_kernel.services.directory import StaticApproverDirectory
from approval_kernel.services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
)
from approval_kernel.services.rule_registry import RuleRegistry

__all__ = [
    "ApprovalService",
    "ApproverResolver",
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "RuleRegistry",
    "StaticApproverDirectory",
]
