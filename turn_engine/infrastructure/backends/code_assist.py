"""
Code Assist adapter - OAuth and Cloud Shell content generation.

Requests reuse the Gemini body wrapped in a Code Assist envelope; responses
arrive wrapped in ``{"response": {...}}``.
"""

from __future__ import annotations
from typing import Any, AsyncIterator, Dict

from ...domain.errors import BackendError, ConfigurationError
from ...domain.models.content import (
    CountTokensRequest,
    CountTokensResponse,
    EmbedRequest,
    EmbedResponse,
    GenerateRequest,
    GenerateResponse,
    normalize_contents,
)
from .base import HttpContentGenerator
from .gemini import build_gemini_body, parse_gemini_response


CODE_ASSIST_API_VERSION = "v1internal"


class CodeAssistContentGenerator(HttpContentGenerator):
    """``oauth-personal`` and ``cloud-shell`` strategy."""

    def __init__(self, config, session, **kwargs):
        super().__init__(config, session, **kwargs)
        self._endpoint = self._settings.code_assist_endpoint.rstrip("/")
        self._project = self._settings.google_cloud_project

    def _validate(self) -> None:
        if self._token_provider is None:
            raise ConfigurationError(f"{self._config.auth_kind.value} auth requires a token provider")

    def _url(self, method: str) -> str:
        return f"{self._endpoint}/{CODE_ASSIST_API_VERSION}:{method}"

    async def _auth_headers(self) -> Dict[str, str]:
        return await self._bearer_headers()

    def _envelope(self, request: GenerateRequest, prompt_id: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": request.model,
            "user_prompt_id": prompt_id,
            "request": build_gemini_body(request),
        }
        if self._project:
            body["project"] = self._project
        return body

    @staticmethod
    def _unwrap(data: Dict[str, Any]) -> GenerateResponse:
        inner = data.get("response")
        return parse_gemini_response(inner if isinstance(inner, dict) else {})

    async def generate(self, request: GenerateRequest, prompt_id: str) -> GenerateResponse:
        data = await self._post_json(self._url("generateContent"), self._envelope(request, prompt_id))
        return self._unwrap(data)

    async def generate_stream(self, request: GenerateRequest, prompt_id: str) -> AsyncIterator[GenerateResponse]:
        url = self._url("streamGenerateContent") + "?alt=sse"
        async for data in self._stream_sse(url, self._envelope(request, prompt_id)):
            yield self._unwrap(data)

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        body = {
            "request": {
                "model": f"models/{request.model}",
                "contents": [c.to_dict() for c in normalize_contents(request.contents)],
            }
        }
        data = await self._post_json(self._url("countTokens"), body)
        return CountTokensResponse(total_tokens=int(data.get("totalTokens", 0)))

    async def embed(self, request: EmbedRequest) -> EmbedResponse:
        raise BackendError("Embeddings are not supported by the Code Assist backend", status=501)
