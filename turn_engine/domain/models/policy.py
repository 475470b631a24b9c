"""
Policy domain models - rules and decisions for tool call authorization.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Union
from enum import Enum
import re

from ..errors import PolicyConfigError


class PolicyDecision(Enum):
    """Whether a tool call may run without human confirmation."""
    ALLOW = "allow"
    DENY = "deny"
    ASK_USER = "ask_user"


@dataclass(frozen=True)
class PolicyRule:
    """A single authorization rule.

    ``tool_name`` of None applies to every tool. ``args_pattern`` is matched
    with ``re.search`` against the key-sorted JSON of the call's arguments;
    strings are compiled here so a bad pattern fails at construction.
    """
    decision: PolicyDecision
    tool_name: Optional[str] = None
    args_pattern: Optional[Union[str, Pattern[str]]] = None
    priority: int = 0

    def __post_init__(self):
        if not isinstance(self.decision, PolicyDecision):
            try:
                object.__setattr__(self, "decision", PolicyDecision(self.decision))
            except ValueError:
                raise PolicyConfigError(f"Unknown policy decision: {self.decision!r}") from None
        if isinstance(self.args_pattern, str):
            try:
                object.__setattr__(self, "args_pattern", re.compile(self.args_pattern))
            except re.error as e:
                raise PolicyConfigError(f"Invalid args_pattern {self.args_pattern!r}: {e}") from e


@dataclass
class PolicyEngineConfig:
    """Construction-time configuration for a policy engine."""
    rules: List[PolicyRule] = field(default_factory=list)
    default_decision: PolicyDecision = PolicyDecision.ASK_USER
    non_interactive: bool = False
