"""
approval_config -- YAML-driven approval rules and approver directories.

Responsibility:
    Provides the runtime entry points for configuration: the bundled
    default rule set, loading of custom rule sets, and loading of an
    approver directory.  YAML parsing lives in ``approval_config.loader``.

Architecture position:
    Configuration -- sits above ``approval_kernel``.  The kernel MUST NEVER
    import from ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``RuleConfigurationError`` -- a rule or directory entry is malformed.

Audit relevance:
    Every load emits an ``APPROVAL_CONFIG_TRACE`` log entry with the source
    path, rule count and checksum.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_directory,
    parse_rule_set,
)
from approval_kernel.domain.approval import ApprovalRule
from approval_kernel.logging_config import get_logger
from approval_kernel.services.directory import StaticApproverDirectory

_logger = get_logger("config")

_SETS_DIR = Path(__file__).parent / "sets"
DEFAULT_RULES_PATH = _SETS_DIR / "default_rules.yaml"
EXAMPLE_DIRECTORY_PATH = _SETS_DIR / "example_directory.yaml"


def load_rule_set(path: Path) -> list[ApprovalRule]:
    """Load and validate a YAML rule set."""
    rules = parse_rule_set(load_yaml_file(Path(path)))
    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "source": str(path),
            "rule_count": len(rules),
            "checksum": compute_checksum(rules),
        },
    )
    return rules


def get_default_rules() -> list[ApprovalRule]:
    """The dashboard's built-in rule set."""
    return load_rule_set(DEFAULT_RULES_PATH)


def load_directory(path: Path) -> StaticApproverDirectory:
    """Load a YAML approver directory (role -> identities)."""
    directory = parse_directory(load_yaml_file(Path(path)))
    _logger.info(
        "APPROVAL_DIRECTORY_LOADED",
        extra={"source": str(path), "roles": list(directory.roles)},
    )
    return directory


__all__ = [
    "DEFAULT_RULES_PATH",
    "EXAMPLE_DIRECTORY_PATH",
    "compute_checksum",
    "get_default_rules",
    "load_directory",
    "load_rule_set",
]
