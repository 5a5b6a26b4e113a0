"""Approval rules deciding which tool calls pass the review gate."""

import pytest
import yaml

from taskAgent.config import resolve_config_file
from taskAgent.hitl import ApprovalChecker, ApprovalDecision


@pytest.fixture
def rules_file(tmp_path):
    config = {
        "global": {
            "enabled": True,
            "risk_patterns": {
                "critical": {
                    "patterns": [r"password\s*[=:]"],
                    "action": "require_approval",
                    "reason": "Credentials in arguments",
                },
            },
        },
        "tools": {
            "lookup": {"enabled": True, "patterns": {"high": [r"\bpayroll\b"]}},
            "sleepy": {"always": True, "reason": "Slow tool", "risk_level": "low"},
        },
    }
    path = tmp_path / "hitl_rules.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


class TestApprovalChecker:
    def test_mutating_tool_needs_approval(self, tool_registry):
        checker = ApprovalChecker(tool_registry=tool_registry)
        decision = checker.check("update_record", {"record_id": "1", "value": "x"})
        assert decision.needs_approval
        assert decision.risk_level == "high"

    def test_read_tool_passes(self, tool_registry):
        checker = ApprovalChecker(tool_registry=tool_registry)
        assert not checker.check("lookup", {"query": "x"}).needs_approval

    def test_auto_approve_disables_builtin_rule(self, tool_registry):
        checker = ApprovalChecker(tool_registry=tool_registry, auto_approve_mutations=True)
        assert not checker.check("update_record", {"record_id": "1", "value": "x"}).needs_approval

    def test_global_pattern_applies_to_any_tool(self, rules_file, tool_registry):
        checker = ApprovalChecker(rules_file, tool_registry=tool_registry)
        decision = checker.check("lookup", {"query": "password=hunter2"})
        assert decision.needs_approval
        assert decision.risk_level == "critical"

    def test_tool_pattern(self, rules_file):
        checker = ApprovalChecker(rules_file)
        assert checker.check("lookup", {"query": "payroll for March"}).needs_approval
        assert not checker.check("lookup", {"query": "weather"}).needs_approval

    def test_always_rule(self, rules_file):
        decision = ApprovalChecker(rules_file).check("sleepy", {"label": "x", "delay": 0})
        assert decision.needs_approval
        assert decision.reason == "Slow tool"

    def test_custom_checker_has_priority(self, rules_file, tool_registry):
        checker = ApprovalChecker(rules_file, tool_registry=tool_registry)
        checker.register_checker("update_record", lambda args: ApprovalDecision(needs_approval=False))
        assert not checker.check("update_record", {"record_id": "1", "value": "password=x"}).needs_approval

    def test_missing_config_file_is_ignored(self, tmp_path):
        checker = ApprovalChecker(tmp_path / "missing.yaml")
        assert not checker.check("lookup", {"query": "x"}).needs_approval

    def test_bundled_rules_load(self):
        checker = ApprovalChecker(resolve_config_file("hitl_rules.yaml"))
        assert checker.check("save_note", {"title": "t", "body": "confidential plan"}).needs_approval
        assert not checker.check("save_note", {"title": "t", "body": "groceries"}).needs_approval
