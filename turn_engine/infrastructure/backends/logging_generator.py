"""
Logging content generator - decorator recording request and response summaries.
"""

from __future__ import annotations
import logging
import time
from typing import AsyncIterator, Optional

from ...domain.interfaces.content_generator import ContentGenerator
from ...domain.models.content import (
    CountTokensRequest,
    CountTokensResponse,
    EmbedRequest,
    EmbedResponse,
    GenerateRequest,
    GenerateResponse,
    normalize_contents,
)
from ...utils import truncate_text


class LoggingContentGenerator:
    """Wraps any ContentGenerator; errors are logged and re-raised unchanged."""

    def __init__(self, wrapped: ContentGenerator, logger: Optional[logging.Logger] = None):
        self._wrapped = wrapped
        self._logger = logger or logging.getLogger(__name__)

    @property
    def wrapped(self) -> ContentGenerator:
        return self._wrapped

    def _log_request(self, request: GenerateRequest, prompt_id: str, streaming: bool) -> None:
        contents = normalize_contents(request.contents)
        kind = "stream" if streaming else "generate"
        self._logger.debug(
            f"{kind} request - model: {request.model}, prompt_id: {prompt_id}, contents: {len(contents)}"
        )

    def _log_response(self, response: GenerateResponse, started: float) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        usage = response.usage
        tokens = usage.total_tokens if usage else "n/a"
        self._logger.info(
            f"Response in {duration_ms:.0f}ms - tokens: {tokens}, "
            f"calls: {len(response.function_calls)}, text: {truncate_text(response.text, 80)!r}"
        )

    def _log_error(self, error: Exception, started: float) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        self._logger.error(f"Request failed after {duration_ms:.0f}ms: {error}")

    async def generate(self, request: GenerateRequest, prompt_id: str) -> GenerateResponse:
        self._log_request(request, prompt_id, streaming=False)
        started = time.monotonic()
        try:
            response = await self._wrapped.generate(request, prompt_id)
        except Exception as e:
            self._log_error(e, started)
            raise
        self._log_response(response, started)
        return response

    async def generate_stream(self, request: GenerateRequest, prompt_id: str) -> AsyncIterator[GenerateResponse]:
        self._log_request(request, prompt_id, streaming=True)
        started = time.monotonic()
        chunks = 0
        try:
            async for chunk in self._wrapped.generate_stream(request, prompt_id):
                chunks += 1
                yield chunk
        except Exception as e:
            self._log_error(e, started)
            raise
        duration_ms = (time.monotonic() - started) * 1000
        self._logger.info(f"Stream completed in {duration_ms:.0f}ms - chunks: {chunks}")

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        try:
            return await self._wrapped.count_tokens(request)
        except Exception as e:
            self._logger.error(f"count_tokens failed: {e}")
            raise

    async def embed(self, request: EmbedRequest) -> EmbedResponse:
        try:
            return await self._wrapped.embed(request)
        except Exception as e:
            self._logger.error(f"embed failed: {e}")
            raise

    async def aclose(self) -> None:
        await self._wrapped.aclose()
