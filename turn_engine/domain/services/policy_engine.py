"""
Policy engine - rule-priority authorization of tool calls.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models.policy import PolicyDecision, PolicyEngineConfig, PolicyRule


def stable_stringify(args: Dict[str, Any]) -> str:
    """Canonical, key-sorted compact JSON used for pattern matching."""
    return json.dumps(args, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def rule_matches(rule: PolicyRule, name: str, args: Optional[Dict[str, Any]], stringified_args: Optional[str]) -> bool:
    """Whether ``rule`` applies to a call; absent fields are wildcards."""
    if rule.tool_name and rule.tool_name != name:
        return False

    if rule.args_pattern is not None:
        # A pattern never matches a call without arguments
        if not args or stringified_args is None:
            return False
        if not rule.args_pattern.search(stringified_args):
            return False

    return True


class PolicyEngine:
    """Decides allow / ask-user / deny for each tool call."""

    def __init__(self, config: Optional[PolicyEngineConfig] = None, logger: Optional[logging.Logger] = None):
        config = config or PolicyEngineConfig()
        self._rules: List[PolicyRule] = self._sorted(list(config.rules))
        self._default_decision = config.default_decision
        self._non_interactive = config.non_interactive
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _sorted(rules: List[PolicyRule]) -> List[PolicyRule]:
        # sorted() is stable, so equal priorities keep insertion order
        return sorted(rules, key=lambda r: r.priority, reverse=True)

    @property
    def rules(self) -> Tuple[PolicyRule, ...]:
        return tuple(self._rules)

    @property
    def default_decision(self) -> PolicyDecision:
        return self._default_decision

    @property
    def non_interactive(self) -> bool:
        return self._non_interactive

    def check(self, call: Any) -> PolicyDecision:
        """Decide a call; ``call`` needs ``name`` and ``args`` attributes."""
        name = getattr(call, "name", None)
        args = getattr(call, "args", None)

        stringified_args: Optional[str] = None
        if args and any(rule.args_pattern is not None for rule in self._rules):
            stringified_args = stable_stringify(args)

        for rule in self._rules:
            if rule_matches(rule, name, args, stringified_args):
                decision = self._apply_non_interactive_mode(rule.decision)
                self._logger.debug(f"Policy rule matched for {name}: {decision.value} (priority {rule.priority})")
                return decision

        decision = self._apply_non_interactive_mode(self._default_decision)
        self._logger.debug(f"No policy rule matched for {name}; default {decision.value}")
        return decision

    def add_rule(self, rule: PolicyRule) -> None:
        """Append a rule and re-sort by priority."""
        self._rules.append(rule)
        self._rules = self._sorted(self._rules)

    def remove_rules_for_tool(self, tool_name: str) -> None:
        """Drop every rule whose tool name is exactly ``tool_name``."""
        self._rules = [rule for rule in self._rules if rule.tool_name != tool_name]

    def _apply_non_interactive_mode(self, decision: PolicyDecision) -> PolicyDecision:
        # Nobody can answer a prompt in non-interactive mode
        if self._non_interactive and decision is PolicyDecision.ASK_USER:
            return PolicyDecision.DENY
        return decision
