"""
Pytest fixtures for the approval kernel test suite.

Provides:
- Structured logging setup and a ``captured_logs`` helper
- Deterministic clock, approver directory and default rules
- In-memory and SQLite-backed stores
- Recording / failing action executors and notification sinks
- A wired ``ApprovalService`` and a ``create_request`` factory fixture
"""

import json
import logging
import threading
from decimal import Decimal
from io import StringIO

import pytest

from approval_config import get_default_rules
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.approval import (
    ApprovalRule,
    ChangeKind,
    RequiredApprover,
    RuleConditions,
    SubjectRef,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.services import (
    ApprovalService,
    ApproverResolver,
    RuleRegistry,
    StaticApproverDirectory,
)
from approval_kernel.stores import (
    InMemoryRequestStore,
    InMemoryRuleStore,
    SqlRequestStore,
    SqlRuleStore,
)

REQUESTER_ID = "pm-1"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as exercising real thread contention"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, approval_service):
            approval_service.create_request(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_request_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Helpers
# =============================================================================


def make_rule(
    rule_id="budget-high",
    change_kind=ChangeKind.BUDGET_CHANGE,
    roles=("management", "executive"),
    budget_threshold=None,
    timeline_threshold_days=None,
    enabled=True,
    optional=(),
    minimum_approvers=1,
):
    """Build an ApprovalRule with one required entry per role."""
    approvers = tuple(RequiredApprover(role=r) for r in roles) + tuple(
        RequiredApprover(role=r, required=False) for r in optional
    )
    return ApprovalRule(
        rule_id=rule_id,
        name=rule_id.replace("-", " ").title(),
        change_kind=change_kind,
        enabled=enabled,
        conditions=RuleConditions(
            budget_threshold=(
                Decimal(str(budget_threshold)) if budget_threshold is not None else None
            ),
            timeline_threshold_days=(
                Decimal(str(timeline_threshold_days))
                if timeline_threshold_days is not None else None
            ),
            minimum_approvers=minimum_approvers,
        ),
        approvers=approvers,
    )


class RecordingExecutor:
    """ActionExecutor that records every call."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def apply(self, subject_id, before_value, after_value):
        with self._lock:
            self.calls.append((subject_id, before_value, after_value))


class FailingExecutor(RecordingExecutor):
    """ActionExecutor that records the call, then raises while ``failing``."""

    def __init__(self):
        super().__init__()
        self.failing = True

    def apply(self, subject_id, before_value, after_value):
        super().apply(subject_id, before_value, after_value)
        if self.failing:
            raise RuntimeError("project store unavailable")


class RecordingSink:
    """NotificationSink that records (event, status) pairs."""

    def __init__(self):
        self.events = []

    def notify(self, event, request):
        self.events.append((event, request.status))

    @property
    def event_names(self):
        return [e.value for e, _ in self.events]


class FailingSink:
    def __init__(self):
        self.attempts = 0

    def notify(self, event, request):
        self.attempts += 1
        raise ConnectionError("mail relay down")


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def directory():
    """One identity per role, plus a second operations member."""
    return StaticApproverDirectory.from_mapping({
        "management": [("mgmt-1", "Joao Silva")],
        "executive": [("exec-1", "Maria Santos")],
        "operations": [("ops-1", "Pedro Costa"), ("ops-2", "Rita Lopes")],
        "finance": [("fin-1", "Ana Oliveira")],
    })


@pytest.fixture
def default_rules():
    return get_default_rules()


@pytest.fixture
def request_store():
    return InMemoryRequestStore()


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def rule_registry(rule_store):
    return RuleRegistry(rule_store)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def approval_service(
    request_store, rule_registry, directory, executor, sink, deterministic_clock,
):
    """ApprovalService over in-memory stores with the Scenario A/B rule."""
    rule_registry.upsert_rule(make_rule(budget_threshold=10000))
    return ApprovalService(
        requests=request_store,
        rules=rule_registry,
        resolver=ApproverResolver(directory),
        executor=executor,
        notifications=sink,
        clock=deterministic_clock,
    )


@pytest.fixture
def subject():
    return SubjectRef(project_id="proj-42", project_name="Harbour Bridge")


@pytest.fixture
def create_request(approval_service, subject):
    """Factory fixture creating a budget change request of 5000 -> 20000.

    Returns a callable accepting keyword overrides.
    """

    def _create(service=None, **overrides):
        kwargs = dict(
            change_kind=ChangeKind.BUDGET_CHANGE,
            subject=subject,
            requester_id=REQUESTER_ID,
            title="Increase budget",
            before_value=5000,
            after_value=20000,
            justification="Steel prices rose",
        )
        kwargs.update(overrides)
        return (service or approval_service).create_request(**kwargs)

    return _create


# =============================================================================
# SQL fixtures
# =============================================================================


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database per test."""
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()


@pytest.fixture
def sql_request_store(session_factory):
    return SqlRequestStore(session_factory)


@pytest.fixture
def sql_rule_store(session_factory):
    return SqlRuleStore(session_factory)
