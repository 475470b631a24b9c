"""
Stream event models - the ordered output contract of a turn.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
from enum import Enum

from .policy import PolicyDecision


class StreamEventType(Enum):
    """Discriminator for stream events."""
    CONTENT = "content"
    THOUGHT = "thought"
    TOOL_CALL_REQUEST = "tool_call_request"
    TOOL_CALL_RESPONSE = "tool_call_response"
    ERROR = "error"


@dataclass(frozen=True)
class ContentEvent:
    """Plain model text."""
    text: str
    type: StreamEventType = field(default=StreamEventType.CONTENT, init=False)


@dataclass(frozen=True)
class ThoughtEvent:
    """A thought summary emitted by a reasoning model."""
    subject: str
    description: str
    type: StreamEventType = field(default=StreamEventType.THOUGHT, init=False)


@dataclass(frozen=True)
class ToolCallRequestEvent:
    """A tool call the external executor should run (or confirm, for ASK_USER)."""
    call_id: str
    name: str
    args: Dict[str, Any]
    prompt_id: str = ""
    decision: PolicyDecision = PolicyDecision.ALLOW
    type: StreamEventType = field(default=StreamEventType.TOOL_CALL_REQUEST, init=False)


@dataclass(frozen=True)
class ToolCallResponseEvent:
    """A tool call answered by the engine itself (denied or rejected)."""
    call_id: str
    name: str = ""
    error: Optional[str] = None
    type: StreamEventType = field(default=StreamEventType.TOOL_CALL_RESPONSE, init=False)


@dataclass(frozen=True)
class ErrorEvent:
    """A turn-terminating failure."""
    message: str
    status: Optional[int] = None
    type: StreamEventType = field(default=StreamEventType.ERROR, init=False)


StreamEvent = Union[ContentEvent, ThoughtEvent, ToolCallRequestEvent, ToolCallResponseEvent, ErrorEvent]
