"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
USAGE
===============================================================================

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (request id, approver id, rule id)

Example:
    try:
        service.process_approval(request_id, "mgmt-1", Decision.APPROVED)
    except AlreadyDecidedError as e:
        api_response(code=e.code, request=e.request_id, approver=e.approver_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- RuleError
    |   +-- NoApplicableRuleError
    |   +-- RuleNotFoundError
    |   +-- RuleConfigurationError
    |
    +-- RequestError
    |   +-- NoApproversError
    |   +-- RequestNotFoundError
    |   +-- NotAnApproverError
    |   +-- AlreadyDecidedError
    |   +-- RequestAlreadyTerminalError
    |   +-- NotRequesterError
    |   +-- InvalidApprovalTransitionError
    |   +-- ActionNotRetryableError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------
Rule         | NO_APPLICABLE_RULE           | No enabled rule matches the change
             | RULE_NOT_FOUND               | Unknown rule id
             | RULE_CONFIGURATION_INVALID   | Malformed rule definition
-------------|------------------------------|-----------------------------------
Request      | NO_APPROVERS                 | Matched rules resolve to nobody
             | REQUEST_NOT_FOUND            | Unknown request id
             | NOT_AN_APPROVER              | Identity has no vote on request
             | ALREADY_DECIDED              | Identity already voted
             | REQUEST_ALREADY_TERMINAL     | Request left pending
             | NOT_REQUESTER                | Cancel by someone else
             | INVALID_APPROVAL_TRANSITION  | Status change not in table
             | ACTION_NOT_RETRYABLE         | Retry on non-failed action
-------------|------------------------------|-----------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT     | Stale compare-and-swap write
-------------|------------------------------|-----------------------------------
Immutability | IMMUTABILITY_VIOLATION       | Terminal row mutated at ORM level
"""

from __future__ import annotations


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Rule-related exceptions


class RuleError(ApprovalKernelError):
    """Base exception for rule registry errors."""

    code: str = "RULE_ERROR"


class NoApplicableRuleError(RuleError):
    """No enabled rule applies to the proposed change."""

    code: str = "NO_APPLICABLE_RULE"

    def __init__(self, change_kind: str, project_id: str | None = None):
        self.change_kind = change_kind
        self.project_id = project_id
        super().__init__(
            f"No applicable approval rule for {change_kind}"
            + (f" on project {project_id}" if project_id else "")
        )


class RuleNotFoundError(RuleError):
    """Rule with given ID was not found."""

    code: str = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Approval rule not found: {rule_id}")


class RuleConfigurationError(RuleError):
    """A rule definition could not be parsed or is inconsistent."""

    code: str = "RULE_CONFIGURATION_INVALID"

    def __init__(self, rule_id: str | None, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Invalid approval rule {rule_id or '<unnamed>'}: {reason}")


# Request-related exceptions


class RequestError(ApprovalKernelError):
    """Base exception for approval request errors."""

    code: str = "REQUEST_ERROR"


class NoApproversError(RequestError):
    """Matched rules resolved to an empty approver set."""

    code: str = "NO_APPROVERS"

    def __init__(self, change_kind: str, rule_ids: tuple[str, ...]):
        self.change_kind = change_kind
        self.rule_ids = rule_ids
        super().__init__(
            f"No approvers resolved for {change_kind} "
            f"(rules: {', '.join(rule_ids) or 'none'})"
        )


class RequestNotFoundError(RequestError):
    """Approval request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class NotAnApproverError(RequestError):
    """The identity has no approval row on the request."""

    code: str = "NOT_AN_APPROVER"

    def __init__(self, request_id: str, approver_id: str):
        self.request_id = request_id
        self.approver_id = approver_id
        super().__init__(
            f"{approver_id} is not an approver of request {request_id}"
        )


class AlreadyDecidedError(RequestError):
    """
    The approver has already voted on this request.

    Second votes are rejected and leave the request untouched.
    """

    code: str = "ALREADY_DECIDED"

    def __init__(self, request_id: str, approver_id: str, status: str):
        self.request_id = request_id
        self.approver_id = approver_id
        self.status = status
        super().__init__(
            f"{approver_id} already decided request {request_id} ({status})"
        )


class RequestAlreadyTerminalError(RequestError):
    """The request is no longer pending."""

    code: str = "REQUEST_ALREADY_TERMINAL"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Request {request_id} is already {status}")


class NotRequesterError(RequestError):
    """Only the original requester may cancel a request."""

    code: str = "NOT_REQUESTER"

    def __init__(self, request_id: str, caller_id: str, requester_id: str):
        self.request_id = request_id
        self.caller_id = caller_id
        self.requester_id = requester_id
        super().__init__(
            f"{caller_id} cannot cancel request {request_id}: "
            f"only the requester {requester_id} may cancel"
        )


class InvalidApprovalTransitionError(RequestError):
    """Status transition is not in the lifecycle table."""

    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid approval transition: {from_status} -> {to_status}")


class ActionNotRetryableError(RequestError):
    """Approved action can only be retried after a failed application."""

    code: str = "ACTION_NOT_RETRYABLE"

    def __init__(self, request_id: str, status: str, action_status: str):
        self.request_id = request_id
        self.status = status
        self.action_status = action_status
        super().__init__(
            f"Action for request {request_id} is not retryable "
            f"(status={status}, action_status={action_status})"
        )


# Concurrency-related exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another writer"
        )


# Immutability-related exceptions


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify a decided vote or a terminal request."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
