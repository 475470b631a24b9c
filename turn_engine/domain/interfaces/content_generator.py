"""
Content generator protocol interface.
Defines the contract every backend strategy implements.
"""

from __future__ import annotations
from typing import Protocol, AsyncIterator, Awaitable, Callable

from ..models.content import (
    CountTokensRequest,
    CountTokensResponse,
    EmbedRequest,
    EmbedResponse,
    GenerateRequest,
    GenerateResponse,
)
from ..models.events import ToolCallRequestEvent


class ContentGenerator(Protocol):
    """Protocol for backend implementations."""

    async def generate(self, request: GenerateRequest, prompt_id: str) -> GenerateResponse:
        """Send a non-streamed generation request."""
        ...

    def generate_stream(self, request: GenerateRequest, prompt_id: str) -> AsyncIterator[GenerateResponse]:
        """Send a streamed generation request.

        The returned iterator is lazy, single-pass and not restartable.
        """
        ...

    async def count_tokens(self, request: CountTokensRequest) -> CountTokensResponse:
        """Count (or deterministically estimate) prompt tokens."""
        ...

    async def embed(self, request: EmbedRequest) -> EmbedResponse:
        """Embed request contents."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


# Awaited for ASK_USER decisions; True approves the call.
ConfirmationHandler = Callable[[ToolCallRequestEvent], Awaitable[bool]]
