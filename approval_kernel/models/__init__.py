"""ORM models for the approval kernel."""

from approval_kernel.models.approval import (
    ApprovalModel,
    ApprovalRequestModel,
    ApprovalRuleModel,
)

__all__ = [
    "ApprovalModel",
    "ApprovalRequestModel",
    "ApprovalRuleModel",
]
