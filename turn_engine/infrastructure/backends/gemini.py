"""
Gemini API adapter - API-key and Vertex AI content generation over REST.
"""

from __future__ import annotations
from typing import Any, AsyncIterator, Dict, List

from ...domain.errors import ConfigurationError
from ...domain.models.content import (
    Candidate,
    Content,
    CountTokensRequest,
    CountTokensResponse,
    EmbedRequest,
    EmbedResponse,
    GenerateRequest,
    GenerateResponse,
    GenerationConfig,
    Role,
    UsageMetadata,
    normalize_contents,
)
from .base import HttpContentGenerator


GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
VERTEX_EXPRESS_BASE_URL = "https://aiplatform.googleapis.com/v1/publishers/google"
VERTEX_PROJECT_BASE_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google"
)


def generation_config_to_dict(config: GenerationConfig) -> Dict[str, Any]:
    """camelCase ``generationConfig`` block; unset options are omitted."""
    out: Dict[str, Any] = {}
    if config.temperature is not None:
        out["temperature"] = config.temperature
    if config.max_output_tokens is not None:
        out["maxOutputTokens"] = config.max_output_tokens
    if config.stop_sequences:
        out["stopSequences"] = list(config.stop_sequences)
    if config.response_mime_type:
        out["responseMimeType"] = config.response_mime_type
    if config.response_schema is not None:
        out["responseSchema"] = config.response_schema
    return out


def build_gemini_body(request: GenerateRequest) -> Dict[str, Any]:
    """Translate a request into the Gemini ``generateContent`` body."""
    body: Dict[str, Any] = {
        "contents": [c.to_dict() for c in normalize_contents(request.contents)],
    }
    config = request.config
    if config.system_instruction is not None:
        system_parts = [p.to_dict() for c in normalize_contents(config.system_instruction) for p in c.parts]
        body["systemInstruction"] = {"role": Role.USER.value, "parts": system_parts}
    generation_config = generation_config_to_dict(config)
    if generation_config:
        body["generationConfig"] = generation_config
    if config.tools:
        body["tools"] = [{"functionDeclarations": [t.to_dict() for t in config.tools]}]
    return body


def parse_gemini_response(data: Dict[str, Any]) -> GenerateResponse:
    """Parse a Gemini response (or streamed chunk) body."""
    candidates: List[Candidate] = []
    for i, raw in enumerate(data.get("candidates") or []):
        if not isinstance(raw, dict):
            continue
        content_data = raw.get("content") or {}
        content = Content.from_dict({"role": content_data.get("role", "model"), "parts": content_data.get("parts")})
        candidates.append(Candidate(
            content=content,
            index=raw.get("index", i),
            finish_reason=raw.get("finishReason"),
        ))

    usage = None
    usage_data = data.get("usageMetadata")
    if isinstance(usage_data, dict):
        usage = UsageMetadata(
            prompt_tokens=usage_data.get("promptTokenCount", 0),
            candidates_tokens=usage_data.get("candidatesTokenCount", 0),
            total_tokens=usage_data.get("totalTokenCount", 0),
        )

    return GenerateResponse(candidates=candidates, usage=usage, model_version=data.get("modelVersion"))


class GeminiApiContentGenerator(HttpContentGenerator):
    """Gemini Developer API (``gemini-api-key``) and Vertex AI (``vertex-ai``)."""

    def _validate(self) -> None:
        self._base_url = self._resolve_base_url()

    def _resolve_base_url(self) -> str:
        if not self._config.use_vertex:
            if not self._config.api_key:
                raise ConfigurationError("An API key is required for the Gemini API")
            return GEMINI_API_BASE_URL

        if self._config.api_key:
            return VERTEX_EXPRESS_BASE_URL

        project = self._settings.google_cloud_project
        location = self._settings.google_cloud_location
        if not (project and location):
            raise ConfigurationError(
                "Vertex AI without an API key requires GOOGLE_CLOUD_PROJECT and GOOGLE_CLOUD_LOCATION"
            )
        if self._token_provider is None:
            raise ConfigurationError("Vertex AI without an API key requires a token provider")
        return VERTEX_PROJECT_BASE_URL.format(project=project, location=location)

    def _url(self, model: str, method: str) -> str:
        return f"{self._base_url}/models/{model}:{method}"

    async def _auth_headers(self) -> Dict[str, str]:
        if self._config.api_key:
            return {"x-goog-api-key": self._config.api_key}
        return await self._bearer_headers()

    async def generate(self, request: GenerateRequest, prompt_id: str) -> GenerateResponse:
        data = await self._post_json(self._url(request.model, "generateContent"), build_gemini_body(request))
        return parse_gemini_response(data)

    async def generate_stream(self, request: GenerateRequest, prompt_id: str) -> AsyncIterator[GenerateResponse]:
        url = self._url(request.model, "streamGenerateContent") + "?alt=sse"
        async for data in self._stream_sse(url, build_gemini_body(request)):
            yield parse_gemini_response(data)

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        body = {"contents": [c.to_dict() for c in normalize_contents(request.contents)]}
        data = await self._post_json(self._url(request.model, "countTokens"), body)
        return CountTokensResponse(total_tokens=int(data.get("totalTokens", 0)))

    async def embed(self, request: EmbedRequest) -> EmbedResponse:
        embeddings: List[List[float]] = []
        for content in normalize_contents(request.contents):
            body = {"content": {"parts": [p.to_dict() for p in content.parts]}}
            data = await self._post_json(self._url(request.model, "embedContent"), body)
            embedding = data.get("embedding") or {}
            embeddings.append(list(embedding.get("values") or []))
        return EmbedResponse(embeddings=embeddings)
