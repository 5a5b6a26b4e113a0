"""Decides which tool calls must pass the human review gate."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from taskAgent.tools.registry import ToolRegistry

LOGGER = logging.getLogger("taskagent.hitl")

RISK_LEVELS_ORDER = ["critical", "high", "medium", "low"]


@dataclass
class ApprovalDecision:
    """Outcome of an approval check."""

    needs_approval: bool
    reason: str = ""
    risk_level: str = "low"  # low, medium, high, critical


class ApprovalChecker:
    """Layered approval rules (highest priority first):

    1. Custom checkers registered in code
    2. Global risk patterns matched against any tool's arguments
    3. Per-tool rules from the YAML config (``always`` or regex patterns)
    4. Built-in rule: tools whose metadata says they mutate external state
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        tool_registry: Optional[ToolRegistry] = None,
        auto_approve_mutations: bool = False,
    ):
        self.config_path = config_path
        self.rules = self._load_config() if config_path else {}
        self.tool_registry = tool_registry
        self.auto_approve_mutations = auto_approve_mutations
        self.custom_checkers: Dict[str, Callable[[dict], ApprovalDecision]] = {}
        self.global_patterns = self._load_global_patterns()

    def _load_config(self) -> dict:
        if not self.config_path or not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            LOGGER.warning(f"Failed to load approval config {self.config_path}: {e}")
            return {}

    def _load_global_patterns(self) -> Dict[str, Any]:
        global_config = self.rules.get("global", {})
        if not global_config.get("enabled", True):
            return {}

        patterns_by_level = {}
        for level, pattern_config in global_config.get("risk_patterns", {}).items():
            if isinstance(pattern_config, dict):
                patterns_by_level[level] = {
                    "patterns": pattern_config.get("patterns", []),
                    "action": pattern_config.get("action", "require_approval"),
                    "reason": pattern_config.get("reason", f"Matches global {level} risk pattern"),
                }
        return patterns_by_level

    def register_checker(self, tool_name: str, checker: Callable[[dict], ApprovalDecision]):
        """Register a code-level checker for one tool; it overrides every other rule."""
        self.custom_checkers[tool_name] = checker

    def check(self, tool_name: str, args: dict) -> ApprovalDecision:
        """Return whether calling ``tool_name`` with ``args`` needs human review."""
        if tool_name in self.custom_checkers:
            return self.custom_checkers[tool_name](args)

        global_decision = self._check_global_patterns(args)
        if global_decision.needs_approval:
            return global_decision

        if tool_name in self.rules.get("tools", {}):
            decision = self._check_config_rules(tool_name, args)
            if decision.needs_approval:
                return decision

        return self._check_builtin_rules(tool_name)

    @staticmethod
    def _args_text(args: dict) -> str:
        return " ".join(
            v if isinstance(v, str) else json.dumps(v, ensure_ascii=False, default=str)
            for v in args.values()
        )

    def _check_global_patterns(self, args: dict) -> ApprovalDecision:
        if not self.global_patterns:
            return ApprovalDecision(needs_approval=False)

        args_str = self._args_text(args)
        for risk_level in RISK_LEVELS_ORDER:
            pattern_config = self.global_patterns.get(risk_level)
            if not pattern_config or pattern_config["action"] != "require_approval":
                continue
            for pattern in pattern_config["patterns"]:
                if re.search(pattern, args_str, re.IGNORECASE):
                    return ApprovalDecision(
                        needs_approval=True,
                        reason=pattern_config["reason"],
                        risk_level=risk_level,
                    )

        return ApprovalDecision(needs_approval=False)

    def _check_config_rules(self, tool_name: str, args: dict) -> ApprovalDecision:
        tool_config = self.rules["tools"][tool_name] or {}

        if not tool_config.get("enabled", True):
            return ApprovalDecision(needs_approval=False)

        if tool_config.get("always"):
            return ApprovalDecision(
                needs_approval=True,
                reason=tool_config.get("reason", f"{tool_name} always requires review"),
                risk_level=tool_config.get("risk_level", "medium"),
            )

        args_str = self._args_text(args)
        for risk_level, pattern_list in tool_config.get("patterns", {}).items():
            for pattern in pattern_list or []:
                if re.search(pattern, args_str, re.IGNORECASE):
                    return ApprovalDecision(
                        needs_approval=True,
                        reason=f"Matches {risk_level} risk pattern: {pattern}",
                        risk_level=risk_level,
                    )

        return ApprovalDecision(needs_approval=False)

    def _check_builtin_rules(self, tool_name: str) -> ApprovalDecision:
        if self.auto_approve_mutations or self.tool_registry is None:
            return ApprovalDecision(needs_approval=False)

        meta = self.tool_registry.get_meta_optional(tool_name)
        if meta and meta.mutates:
            return ApprovalDecision(
                needs_approval=True,
                reason=f"{tool_name} changes external state",
                risk_level=meta.risk,
            )
        return ApprovalDecision(needs_approval=False)
