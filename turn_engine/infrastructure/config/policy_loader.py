"""
Policy loader - builds a validated PolicyEngineConfig from raw rule dictionaries.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Optional, Union

from jsonschema import Draft202012Validator

from ...domain.errors import PolicyConfigError
from ...domain.models.policy import PolicyDecision, PolicyEngineConfig, PolicyRule
from ...domain.services.policy_engine import PolicyEngine
from .settings import PolicySettings


_DECISIONS = [d.value for d in PolicyDecision]

# JSON Schema for a single policy rule as it appears in settings
_POLICY_RULE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["decision"],
    "properties": {
        "decision": {"enum": _DECISIONS},
        "tool_name": {"type": ["string", "null"], "minLength": 1},
        "args_pattern": {"type": ["string", "null"]},
        "priority": {"type": "integer"},
    },
    "additionalProperties": False,
}

_RULE_VALIDATOR = Draft202012Validator(_POLICY_RULE_SCHEMA)


def _validate_rule(index: int, raw: Any) -> None:
    errors = sorted(_RULE_VALIDATOR.iter_errors(raw), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.path) or "rule"
        raise PolicyConfigError(f"Policy rule #{index} failed validation at {where}: {first.message}")


def load_policy_config(
    raw_rules: Optional[Iterable[Dict[str, Any]]],
    default_decision: Union[PolicyDecision, str] = PolicyDecision.ASK_USER,
    non_interactive: bool = False,
) -> PolicyEngineConfig:
    """Validate raw rule dictionaries and build the engine configuration."""
    try:
        default = PolicyDecision(default_decision)
    except ValueError:
        raise PolicyConfigError(f"Unknown default policy decision: {default_decision!r}") from None

    rules = []
    for index, raw in enumerate(raw_rules or []):
        _validate_rule(index, raw)
        rules.append(PolicyRule(
            decision=PolicyDecision(raw["decision"]),
            tool_name=raw.get("tool_name"),
            args_pattern=raw.get("args_pattern"),
            priority=raw.get("priority", 0),
        ))

    return PolicyEngineConfig(rules=rules, default_decision=default, non_interactive=non_interactive)


def build_policy_engine(settings: PolicySettings, logger: Optional[logging.Logger] = None) -> PolicyEngine:
    """Create the policy engine described by ``POLICY_*`` settings."""
    config = load_policy_config(
        settings.rules,
        default_decision=settings.default_decision,
        non_interactive=settings.non_interactive,
    )
    return PolicyEngine(config, logger=logger)
