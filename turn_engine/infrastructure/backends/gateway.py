"""
LLM gateway adapter - chat-completions style backend without native Gemini semantics.

Contents are flattened to plain-text chat messages. Tool calls come back either
as native ``tool_invocations`` or inline in the text, in which case the
non-streamed path runs them through the function call extractor. Streamed text
is passed through untouched for the turn controller to extract.
"""

from __future__ import annotations
import json
import math
import secrets
from typing import Any, AsyncIterator, Dict, List, Optional

from ...domain.errors import ConfigurationError
from ...domain.models.content import (
    Candidate,
    Content,
    ContentInput,
    CountTokensRequest,
    CountTokensResponse,
    EmbedRequest,
    EmbedResponse,
    FunctionCall,
    GenerateRequest,
    GenerateResponse,
    Part,
    Role,
    ToolDeclaration,
    UsageMetadata,
    normalize_contents,
)
from ...domain.services.function_call_extractor import FunctionCallExtractor
from ...domain.services.model_catalog import DEFAULT_GATEWAY_EMBEDDING_MODEL
from .base import HttpContentGenerator


GATEWAY_MAX_OUTPUT_TOKENS = 8192
GATEWAY_DEFAULT_TEMPERATURE = 0.7
CHARS_PER_TOKEN = 4

JSON_MODE_SYSTEM_PREFIX = (
    "JSON_MODE: You are operating in strict JSON response mode. You MUST respond with "
    "ONLY a valid JSON object. No explanations, no markdown, no text outside the JSON object."
)
JSON_MODE_SYSTEM_SUFFIX = (
    "MANDATORY JSON FORMAT: Your response must be a single JSON object that starts with { "
    "and ends with }."
)
JSON_MODE_USER_TEMPLATE = (
    "\n\nJSON_ONLY_MODE: Respond with raw JSON only. Do not add conversational text, "
    "explanations, markdown or code fences. The response must start with {{ and end with }}.\n\n"
    "REQUIRED SCHEMA:\n{schema}\n"
)

# Gateway argument name -> tool argument name, per tool
TOOL_PARAMETER_ALIASES: Dict[str, Dict[str, str]] = {
    "read_file": {"file_path": "absolute_path"},
}


def map_tool_parameters(tool_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
    """Rename gateway argument names to the names the tool expects."""
    mapped = dict(args)
    for source, target in TOOL_PARAMETER_ALIASES.get(tool_name, {}).items():
        if source in mapped:
            mapped[target] = mapped.pop(source)
    return mapped


def normalize_parameter_schema(schema: Any) -> Any:
    """Deep copy of a JSON schema with every string ``type`` lower-cased."""
    if isinstance(schema, list):
        return [normalize_parameter_schema(item) for item in schema]
    if isinstance(schema, dict):
        out: Dict[str, Any] = {}
        for key, value in schema.items():
            if key == "type" and isinstance(value, str):
                out[key] = value.lower()
            else:
                out[key] = normalize_parameter_schema(value)
        return out
    return schema


def convert_tools(tools: List[ToolDeclaration]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": normalize_parameter_schema(tool.parameters),
            },
        }
        for tool in tools
    ]


def content_to_text(content: Content) -> str:
    """Plain-text rendering of a content; function calls are rendered inline as JSON."""
    pieces: List[str] = []
    for part in content.parts:
        if part.function_call is not None:
            pieces.append(json.dumps(part.to_dict(), ensure_ascii=False))
        elif part.text:
            pieces.append(part.text)
    return " ".join(pieces)


def contents_to_text(contents: ContentInput) -> str:
    return "\n".join(content_to_text(c) for c in normalize_contents(contents))


def function_call_part(name: str, args: Dict[str, Any], call_id: Optional[str]) -> Part:
    return Part(function_call=FunctionCall(name=name, args=map_tool_parameters(name, args), id=call_id))


class GatewayContentGenerator(HttpContentGenerator):
    """``gateway`` strategy."""

    def __init__(self, config, session, **kwargs):
        super().__init__(config, session, **kwargs)
        self._base_url = self._settings.gateway_base_url.rstrip("/")
        self._usage = UsageMetadata()

    def _validate(self) -> None:
        if not self._settings.gateway_base_url:
            raise ConfigurationError("GATEWAY_BASE_URL is required for gateway auth")
        if self._token_provider is None:
            raise ConfigurationError("gateway auth requires a token provider")

    @property
    def usage(self) -> UsageMetadata:
        """Usage most recently reported by the gateway."""
        return self._usage

    async def _auth_headers(self) -> Dict[str, str]:
        headers = await self._bearer_headers()
        headers["x-client-trace-id"] = secrets.token_hex(8)
        return headers

    def _build_messages(self, request: GenerateRequest) -> List[Dict[str, str]]:
        config = request.config
        messages: List[Dict[str, str]] = []

        if config.system_instruction is not None:
            system_text = contents_to_text(config.system_instruction)
            if config.wants_json:
                system_text = f"{JSON_MODE_SYSTEM_PREFIX}\n\n{system_text}\n\n{JSON_MODE_SYSTEM_SUFFIX}"
            messages.append({"role": "system", "content": system_text})

        contents = normalize_contents(request.contents)
        for i, content in enumerate(contents):
            role = "assistant" if content.role is Role.MODEL else "user"
            text = content_to_text(content)
            is_last = i == len(contents) - 1
            if config.wants_json and config.response_schema and is_last and role == "user":
                text += JSON_MODE_USER_TEMPLATE.format(schema=json.dumps(config.response_schema, indent=2))
            messages.append({"role": role, "content": text})

        return messages

    def _build_body(self, request: GenerateRequest) -> Dict[str, Any]:
        config = request.config
        generation_settings: Dict[str, Any] = {
            "max_tokens": config.max_output_tokens or GATEWAY_MAX_OUTPUT_TOKENS,
            "temperature": config.temperature if config.temperature is not None else GATEWAY_DEFAULT_TEMPERATURE,
        }
        if config.stop_sequences:
            generation_settings["stop_sequences"] = list(config.stop_sequences)

        body: Dict[str, Any] = {
            "model": request.model,
            "messages": self._build_messages(request),
            "generation_settings": generation_settings,
            "system_prompt_strategy": "use_model_parameter",
        }
        tools = convert_tools(config.tools)
        if tools:
            body["tools"] = tools
            body["tool_config"] = {"mode": "auto", "parallel_calls": True}
        return body

    def _track_usage(self, data: Dict[str, Any]) -> UsageMetadata:
        details = data.get("generation_details") or {}
        usage = (details.get("parameters") or {}).get("usage")
        if isinstance(usage, dict):
            self._usage = UsageMetadata(
                prompt_tokens=usage.get("inputTokens", self._usage.prompt_tokens),
                candidates_tokens=usage.get("outputTokens", self._usage.candidates_tokens),
                total_tokens=usage.get("totalTokens", self._usage.total_tokens),
            )
        return UsageMetadata(
            prompt_tokens=self._usage.prompt_tokens,
            candidates_tokens=self._usage.candidates_tokens,
            total_tokens=self._usage.total_tokens,
        )

    @staticmethod
    def _generations(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        details = data.get("generation_details") or {}
        return [g for g in details.get("generations") or [] if isinstance(g, dict)]

    def _tool_invocation_parts(self, invocations: List[Dict[str, Any]]) -> List[Part]:
        parts: List[Part] = []
        for invocation in invocations:
            function = invocation.get("function") or {}
            name = function.get("name") or ""
            raw_args = function.get("arguments") or "{}"
            try:
                args = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
            except (ValueError, TypeError) as e:
                self._logger.error(f"Failed to parse tool arguments for {name}: {e}")
                parts.append(Part(text=f"Error: Failed to parse tool call {name}"))
                continue
            if not isinstance(args, dict):
                args = {}
            parts.append(function_call_part(name, args, invocation.get("id")))
        return parts

    def _generation_to_candidate(self, generation: Dict[str, Any], index: int) -> Candidate:
        invocations = generation.get("tool_invocations") or []
        if invocations:
            parts = self._tool_invocation_parts(invocations)
        else:
            parts = []
            for segment in FunctionCallExtractor.extract(generation.get("content") or ""):
                if segment.call is not None:
                    parts.append(function_call_part(segment.call.name, segment.call.args, segment.call.id))
                elif segment.text and segment.text.strip():
                    parts.append(Part(text=segment.text))
        return Candidate(content=Content(role=Role.MODEL, parts=parts), index=index)

    async def generate(self, request: GenerateRequest, prompt_id: str) -> GenerateResponse:
        data = await self._post_json(f"{self._base_url}/chat/generations", self._build_body(request))
        usage = self._track_usage(data)
        candidates = [self._generation_to_candidate(g, i) for i, g in enumerate(self._generations(data))]
        return GenerateResponse(candidates=candidates, usage=usage, model_version=request.model)

    async def generate_stream(self, request: GenerateRequest, prompt_id: str) -> AsyncIterator[GenerateResponse]:
        url = f"{self._base_url}/chat/generations/stream"
        async for data in self._stream_sse(url, self._build_body(request)):
            usage = self._track_usage(data)
            candidates: List[Candidate] = []
            for i, generation in enumerate(self._generations(data)):
                invocations = generation.get("tool_invocations") or []
                if invocations:
                    parts = self._tool_invocation_parts(invocations)
                elif generation.get("content"):
                    parts = [Part(text=generation["content"])]
                else:
                    continue
                candidates.append(Candidate(content=Content(role=Role.MODEL, parts=parts), index=i))
            yield GenerateResponse(candidates=candidates, usage=usage, model_version=request.model)

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """No native counting: estimated at one token per four characters."""
        total_chars = sum(len(content_to_text(c)) for c in normalize_contents(request.contents))
        return CountTokensResponse(total_tokens=math.ceil(total_chars / CHARS_PER_TOKEN))

    async def embed(self, request: EmbedRequest) -> EmbedResponse:
        body = {
            "input": [content_to_text(c) for c in normalize_contents(request.contents)],
            "model": request.model or DEFAULT_GATEWAY_EMBEDDING_MODEL,
        }
        data = await self._post_json(f"{self._base_url}/embeddings", body)
        embeddings: List[List[float]] = []
        for item in data.get("embeddings") or []:
            if isinstance(item, dict):
                embeddings.append(list(item.get("values") or item.get("embedding") or []))
        return EmbedResponse(embeddings=embeddings)
