"""
Tests for approval_config -- YAML rule sets and approver directories.
"""

from decimal import Decimal

import pytest
import yaml

from approval_config import (
    DEFAULT_RULES_PATH,
    EXAMPLE_DIRECTORY_PATH,
    compute_checksum,
    get_default_rules,
    load_directory,
    load_rule_set,
)
from approval_config.loader import parse_rule, parse_rule_set
from approval_kernel.domain.approval import ChangeKind
from approval_kernel.exceptions import RuleConfigurationError


def write_yaml(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultRules:
    def test_six_rules_bundled(self, default_rules):
        assert len(default_rules) == 6

    def test_high_budget_rule(self, default_rules):
        [rule] = [r for r in default_rules if r.rule_id == "budget-change-high"]

        assert rule.change_kind == ChangeKind.BUDGET_CHANGE
        assert rule.conditions.budget_threshold == Decimal("10000")
        assert rule.conditions.minimum_approvers == 2
        assert rule.required_roles == ("management", "executive")

    def test_timeline_rule_threshold_in_days(self, default_rules):
        [rule] = [r for r in default_rules if r.rule_id == "timeline-change-major"]

        assert rule.conditions.timeline_threshold_days == Decimal("7")

    def test_cancellation_requires_all(self, default_rules):
        [rule] = [r for r in default_rules if r.rule_id == "project-cancellation"]

        assert rule.conditions.requires_all_approvers is True

    def test_load_is_traced(self, captured_logs):
        rules = get_default_rules()

        [trace] = [r for r in captured_logs() if r["message"] == "APPROVAL_CONFIG_TRACE"]
        assert trace["source"] == str(DEFAULT_RULES_PATH)
        assert trace["rule_count"] == 6
        assert trace["checksum"] == compute_checksum(rules)


class TestParseRule:
    def test_minimal_rule(self):
        rule = parse_rule({"id": "r", "name": "R", "change_kind": "scope_change"})

        assert rule.enabled is True
        assert rule.approvers == ()
        assert rule.conditions.budget_threshold is None

    def test_collaborators_and_optional_roles(self):
        rule = parse_rule({
            "id": "team",
            "name": "Team",
            "change_kind": "team_change",
            "approvers": [
                {"role": "operations", "collaborator_ids": ["ops-2"]},
                {"role": "finance", "required": False},
            ],
        })

        assert rule.approvers[0].collaborator_ids == ("ops-2",)
        assert rule.optional_roles == ("finance",)

    @pytest.mark.parametrize("missing", ["id", "name", "change_kind"])
    def test_missing_key(self, missing):
        data = {"id": "r", "name": "R", "change_kind": "scope_change"}
        del data[missing]

        with pytest.raises(RuleConfigurationError) as exc_info:
            parse_rule(data)

        assert missing in exc_info.value.reason

    def test_unknown_kind(self):
        with pytest.raises(RuleConfigurationError):
            parse_rule({"id": "r", "name": "R", "change_kind": "budget_increase"})

    def test_negative_threshold(self):
        with pytest.raises(RuleConfigurationError):
            parse_rule({
                "id": "r",
                "name": "R",
                "change_kind": "budget_change",
                "conditions": {"budget_threshold": -5},
            })

    def test_approver_without_role(self):
        with pytest.raises(RuleConfigurationError):
            parse_rule({
                "id": "r", "name": "R", "change_kind": "scope_change",
                "approvers": [{"required": True}],
            })

    def test_duplicate_ids_in_set(self):
        entry = {"id": "r", "name": "R", "change_kind": "scope_change"}

        with pytest.raises(RuleConfigurationError) as exc_info:
            parse_rule_set({"rules": [entry, dict(entry)]})

        assert exc_info.value.code == "RULE_CONFIGURATION_INVALID"


class TestLoadFiles:
    def test_load_rule_set(self, tmp_path):
        path = write_yaml(tmp_path, "rules.yaml", {
            "rules": [{
                "id": "scope",
                "name": "Scope",
                "change_kind": "scope_change",
                "approvers": [{"role": "management"}],
            }],
        })

        [rule] = load_rule_set(path)

        assert rule.rule_id == "scope"

    def test_empty_file_has_no_rules(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_rule_set(path) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rule_set(tmp_path / "absent.yaml")

    def test_example_directory(self):
        directory = load_directory(EXAMPLE_DIRECTORY_PATH)

        assert directory.roles == ("executive", "finance", "management", "operations")
        [manager] = directory.members_of("management")
        assert manager.identity == "mgmt-1"
        assert manager.display_name == "Joao Silva"

    def test_directory_entry_without_role(self, tmp_path):
        path = write_yaml(tmp_path, "dir.yaml", {"approvers": [{"id": "x"}]})

        with pytest.raises(RuleConfigurationError):
            load_directory(path)


class TestChecksum:
    def test_order_independent(self, default_rules):
        assert compute_checksum(default_rules) == compute_checksum(reversed(default_rules))

    def test_changes_with_content(self, default_rules):
        from dataclasses import replace

        edited = [replace(default_rules[0], enabled=False)] + default_rules[1:]

        assert compute_checksum(edited) != compute_checksum(default_rules)
