"""
Content domain models - vendor-neutral request and response shapes.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Union
from enum import Enum

from ..errors import ConfigurationError


class AuthKind(Enum):
    """Authentication kinds; each selects one backend strategy."""
    API_KEY = "gemini-api-key"
    VERTEX_AI = "vertex-ai"
    OAUTH_PERSONAL = "oauth-personal"
    CLOUD_SHELL = "cloud-shell"
    GATEWAY = "gateway"


API_KEY_AUTH_KINDS = frozenset({AuthKind.API_KEY, AuthKind.VERTEX_AI})


class Role(Enum):
    """Content roles understood by every backend."""
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class BackendConfig:
    """Immutable per-call backend selection."""
    model: str
    auth_kind: AuthKind
    api_key: Optional[str] = None
    use_vertex: Optional[bool] = None
    proxy: Optional[str] = None

    def __post_init__(self):
        if self.api_key is not None and self.auth_kind not in API_KEY_AUTH_KINDS:
            raise ConfigurationError(
                f"api_key may only be set for {sorted(k.value for k in API_KEY_AUTH_KINDS)}, "
                f"not {self.auth_kind.value}"
            )


@dataclass
class FunctionCall:
    """A structured tool invocation carried in a response part."""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "args": self.args}
        if self.id:
            data["id"] = self.id
        return data


@dataclass
class Part:
    """One piece of content: plain text, a thought, or a function call."""
    text: Optional[str] = None
    thought: bool = False
    function_call: Optional[FunctionCall] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.function_call is not None:
            return {"functionCall": self.function_call.to_dict()}
        data: Dict[str, Any] = {"text": self.text or ""}
        if self.thought:
            data["thought"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Part:
        fc = data.get("functionCall")
        if isinstance(fc, dict) and isinstance(fc.get("name"), str):
            return cls(function_call=FunctionCall(
                name=fc["name"],
                args=fc.get("args") or {},
                id=fc.get("id"),
            ))
        return cls(text=data.get("text"), thought=bool(data.get("thought", False)))


@dataclass
class Content:
    """A role-tagged list of parts."""
    role: Role = Role.USER
    parts: List[Part] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Join non-thought text parts."""
        return "".join(p.text or "" for p in self.parts if not p.thought and p.function_call is None)

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "parts": [p.to_dict() for p in self.parts]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Content:
        role_str = data.get("role", "user")
        try:
            role = Role(role_str)
        except ValueError:
            role = Role.USER
        return cls(role=role, parts=[Part.from_dict(p) for p in data.get("parts") or [] if isinstance(p, dict)])

    @classmethod
    def from_text(cls, text: str, role: Role = Role.USER) -> Content:
        return cls(role=role, parts=[Part(text=text)])


ContentInput = Union[str, Content, List[Content]]


def normalize_contents(contents: ContentInput) -> List[Content]:
    """Convert a string, a single Content, or a list into a list of Content."""
    if isinstance(contents, str):
        return [Content.from_text(contents)]
    if isinstance(contents, Content):
        return [contents]
    normalized: List[Content] = []
    for item in contents or []:
        if isinstance(item, str):
            normalized.append(Content.from_text(item))
        else:
            normalized.append(item)
    return normalized


@dataclass
class ToolDeclaration:
    """A function the model may call."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class GenerationConfig:
    """Generation options shared across backends."""
    system_instruction: Optional[ContentInput] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    stop_sequences: Optional[List[str]] = None
    response_mime_type: Optional[str] = None
    response_schema: Optional[Dict[str, Any]] = None
    tools: List[ToolDeclaration] = field(default_factory=list)

    @property
    def wants_json(self) -> bool:
        return self.response_mime_type == "application/json"


@dataclass
class GenerateRequest:
    """A generation request addressed to a specific model."""
    model: str
    contents: ContentInput
    config: GenerationConfig = field(default_factory=GenerationConfig)


@dataclass
class UsageMetadata:
    """Token usage reported by a backend."""
    prompt_tokens: int = 0
    candidates_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Candidate:
    """One generated candidate."""
    content: Content = field(default_factory=lambda: Content(role=Role.MODEL))
    index: int = 0
    finish_reason: Optional[str] = None


@dataclass
class GenerateResponse:
    """A full response, or one streamed chunk of one."""
    candidates: List[Candidate] = field(default_factory=list)
    usage: Optional[UsageMetadata] = None
    model_version: Optional[str] = None

    @property
    def parts(self) -> List[Part]:
        """Parts of every candidate in order."""
        return [p for c in self.candidates for p in c.content.parts]

    @property
    def text(self) -> str:
        return "".join(c.content.text for c in self.candidates)

    @property
    def function_calls(self) -> List[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call is not None]


# A streamed chunk has the same shape as a full response.
ResponseChunk = GenerateResponse


@dataclass
class CountTokensRequest:
    model: str
    contents: ContentInput


@dataclass
class CountTokensResponse:
    total_tokens: int


@dataclass
class EmbedRequest:
    model: str
    contents: ContentInput


@dataclass
class EmbedResponse:
    embeddings: List[List[float]] = field(default_factory=list)

    @property
    def values(self) -> List[float]:
        """The first embedding vector."""
        return self.embeddings[0] if self.embeddings else []
