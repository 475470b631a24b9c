"""Domain models package."""

from .content import (
    AuthKind,
    BackendConfig,
    Content,
    FunctionCall,
    GenerateRequest,
    GenerateResponse,
    GenerationConfig,
    Part,
    Role,
    ToolDeclaration,
)
from .events import (
    ContentEvent,
    ErrorEvent,
    StreamEvent,
    StreamEventType,
    ThoughtEvent,
    ToolCallRequestEvent,
    ToolCallResponseEvent,
)
from .policy import PolicyDecision, PolicyEngineConfig, PolicyRule
from .session import FallbackIntent, FallbackOutcome, FallbackState, Session
from .tool import FeedResult, ParsedCall, Segment

__all__ = [
    "AuthKind",
    "BackendConfig",
    "Content",
    "FunctionCall",
    "GenerateRequest",
    "GenerateResponse",
    "GenerationConfig",
    "Part",
    "Role",
    "ToolDeclaration",
    "ContentEvent",
    "ErrorEvent",
    "StreamEvent",
    "StreamEventType",
    "ThoughtEvent",
    "ToolCallRequestEvent",
    "ToolCallResponseEvent",
    "PolicyDecision",
    "PolicyEngineConfig",
    "PolicyRule",
    "FallbackIntent",
    "FallbackOutcome",
    "FallbackState",
    "Session",
    "FeedResult",
    "ParsedCall",
    "Segment",
]
