"""
Turn controller - Application service driving one model turn.
Coordinates the backend stream, retry and fallback, call extraction and policy.
"""

from __future__ import annotations
import asyncio
import dataclasses
import logging
import secrets
import time
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from ..domain.errors import BackendError, FallbackIntentError, TurnAbortedError, TurnStoppedError
from ..domain.interfaces.content_generator import ConfirmationHandler, ContentGenerator
from ..domain.models.content import GenerateRequest, GenerateResponse
from ..domain.models.events import (
    ContentEvent,
    ErrorEvent,
    StreamEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
    ToolCallResponseEvent,
)
from ..domain.models.policy import PolicyDecision
from ..domain.models.session import FallbackOutcome, Session
from ..domain.models.tool import ParsedCall, Segment
from ..domain.services.fallback_handler import handle_fallback
from ..domain.services.function_call_extractor import FunctionCallExtractor
from ..domain.services.policy_engine import PolicyEngine
from ..infrastructure.config.policy_loader import build_policy_engine
from ..infrastructure.config.settings import AppSettings, get_settings
from ..infrastructure.retry import RetryConfig, extract_status_code, retry_with_backoff, run_until_aborted
from ..utils import parse_thought


def generate_call_id(name: str) -> str:
    return f"{name}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def error_event(error: BaseException) -> ErrorEvent:
    message = error.message if isinstance(error, BackendError) else str(error)
    return ErrorEvent(message=message or error.__class__.__name__, status=extract_status_code(error))


class TurnController:
    """Runs a single turn and yields its ordered event stream."""

    def __init__(
        self,
        content_generator: ContentGenerator,
        policy_engine: PolicyEngine,
        session: Session,
        *,
        retry_config: Optional[RetryConfig] = None,
        confirmation_handler: Optional[ConfirmationHandler] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self._content_generator = content_generator
        self._policy_engine = policy_engine
        self._session = session
        self._retry_config = retry_config or RetryConfig()
        self._confirmation_handler = confirmation_handler
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)
        self._current_model = session.effective_model()

    @classmethod
    def from_settings(
        cls,
        content_generator: ContentGenerator,
        session: Session,
        settings: Optional[AppSettings] = None,
        **kwargs: Any,
    ) -> TurnController:
        """Build a controller whose retry and policy come from ``settings``."""
        settings = settings or get_settings()
        return cls(
            content_generator,
            build_policy_engine(settings.policy),
            session,
            retry_config=RetryConfig.from_settings(settings.retry),
            **kwargs,
        )

    @property
    def session(self) -> Session:
        return self._session

    async def run(
        self,
        request: GenerateRequest,
        prompt_id: str,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one turn.

        The retry covers opening the stream and its first chunk only, so no
        content is ever emitted twice. Failures after that end the turn with a
        single Error event.
        """
        abort_signal = abort_signal or asyncio.Event()
        extractor = FunctionCallExtractor()
        stream = None

        try:
            try:
                stream, chunk = await retry_with_backoff(
                    lambda: self._open_stream(request, prompt_id),
                    config=self._retry_config,
                    on_quota_error=self._on_quota_error,
                    sleep=self._sleep,
                    abort_signal=abort_signal,
                    logger=self._logger,
                )
            except FallbackIntentError:
                raise
            except TurnAbortedError:
                self._logger.info(f"Turn {prompt_id} aborted before streaming")
                return
            except TurnStoppedError as e:
                self._logger.info(f"Turn {prompt_id} stopped: {e}")
                if not abort_signal.is_set():
                    yield ErrorEvent(message=str(e), status=extract_status_code(e.cause) if e.cause else None)
                return
            except Exception as e:
                self._logger.error(f"Turn {prompt_id} failed before streaming: {e}")
                if not abort_signal.is_set():
                    yield error_event(e)
                return

            try:
                while chunk is not None:
                    async for event in self._chunk_events(chunk, extractor, prompt_id, abort_signal):
                        if abort_signal.is_set():
                            return
                        yield event
                    if abort_signal.is_set():
                        return
                    try:
                        chunk = await run_until_aborted(stream.__anext__(), abort_signal)
                    except StopAsyncIteration:
                        chunk = None

                async for event in self._segment_events(extractor.flush_segments(), prompt_id, abort_signal):
                    if abort_signal.is_set():
                        return
                    yield event
            except FallbackIntentError:
                raise
            except TurnAbortedError:
                self._logger.info(f"Turn {prompt_id} aborted mid-stream")
            except Exception as e:
                self._logger.error(f"Turn {prompt_id} failed mid-stream: {e}")
                if not abort_signal.is_set():
                    yield error_event(e)
        finally:
            if stream is not None:
                await stream.aclose()

    async def _open_stream(self, request: GenerateRequest, prompt_id: str) -> Tuple[Any, Optional[GenerateResponse]]:
        self._current_model = self._session.effective_model()
        attempt = dataclasses.replace(request, model=self._current_model)
        stream = self._content_generator.generate_stream(attempt, prompt_id)
        try:
            first = await stream.__anext__()
        except StopAsyncIteration:
            return stream, None
        except BaseException:
            await stream.aclose()
            raise
        return stream, first

    async def _on_quota_error(self, error: BaseException) -> FallbackOutcome:
        return await handle_fallback(self._session, self._current_model, error)

    async def _chunk_events(
        self,
        chunk: GenerateResponse,
        extractor: FunctionCallExtractor,
        prompt_id: str,
        abort_signal: asyncio.Event,
    ) -> AsyncIterator[StreamEvent]:
        for part in chunk.parts:
            if part.thought:
                thought = parse_thought(part.text or "")
                yield ThoughtEvent(subject=thought["subject"], description=thought["description"])
            elif part.function_call is not None:
                fc = part.function_call
                async for event in self._call_events(ParsedCall(fc.name, fc.args, fc.id), prompt_id, abort_signal):
                    yield event
            elif part.text:
                async for event in self._segment_events(extractor.feed_segments(part.text), prompt_id, abort_signal):
                    yield event

    async def _segment_events(self, segments: List[Segment], prompt_id: str, abort_signal: asyncio.Event) -> AsyncIterator[StreamEvent]:
        for segment in segments:
            if segment.call is not None:
                async for event in self._call_events(segment.call, prompt_id, abort_signal):
                    yield event
            elif segment.text:
                yield ContentEvent(text=segment.text)

    async def _call_events(self, call: ParsedCall, prompt_id: str, abort_signal: asyncio.Event) -> AsyncIterator[StreamEvent]:
        call_id = call.id or generate_call_id(call.name)
        decision = self._policy_engine.check(call)

        if decision is PolicyDecision.DENY:
            self._logger.info(f"Tool call {call.name} denied by policy")
            yield ToolCallResponseEvent(call_id=call_id, name=call.name,
                                        error=f"Tool call '{call.name}' was denied by policy.")
            return

        request = ToolCallRequestEvent(call_id=call_id, name=call.name, args=call.args,
                                       prompt_id=prompt_id, decision=decision)
        if decision is PolicyDecision.ALLOW or self._confirmation_handler is None:
            yield request
            return

        approved = await self._await_confirmation(request, abort_signal)
        if approved is None:
            return
        if approved:
            yield dataclasses.replace(request, decision=PolicyDecision.ALLOW)
        else:
            yield ToolCallResponseEvent(call_id=call_id, name=call.name,
                                        error=f"Tool call '{call.name}' was rejected by the user.")

    async def _await_confirmation(self, request: ToolCallRequestEvent, abort_signal: asyncio.Event) -> Optional[bool]:
        """Await the confirmation handler; None when the turn was aborted first."""
        try:
            approved = await run_until_aborted(self._confirmation_handler(request), abort_signal)
        except TurnAbortedError:
            self._logger.info(f"Confirmation for {request.name} abandoned after abort")
            return None
        return bool(approved)
