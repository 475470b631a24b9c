"""
Retry logic - Infrastructure component for handling backend request failures.
Implements exponential backoff with jitter and the quota fallback hook.
"""

from __future__ import annotations
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, List, Optional, TypeVar
from dataclasses import dataclass, field

import httpx
from pydantic import ValidationError

from ..domain.errors import AuthenticationRequiredError, TurnAbortedError, TurnStoppedError
from ..domain.models.session import FallbackOutcome
from ..domain.services.quota_errors import is_quota_error
from .config.settings import RetrySettings


T = TypeVar("T")

QuotaErrorHandler = Callable[[BaseException], Awaitable[FallbackOutcome]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 5
    base_delay: float = 5.0
    max_delay: float = 30.0
    jitter: float = 0.3
    # HTTP 429 rate limit and 5xx server errors
    retryable_status_codes: List[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryConfig:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base,
            max_delay=settings.max_delay,
            jitter=settings.jitter_max,
            retryable_status_codes=list(settings.retryable_status_codes),
        )

    @classmethod
    def from_env(cls, logger: Optional[logging.Logger] = None) -> RetryConfig:
        """Load retry configuration from the CLI_* environment variables."""
        try:
            return cls.from_settings(RetrySettings())
        except ValidationError:
            (logger or logging.getLogger(__name__)).warning("Failed to parse retry config from env, using defaults")
            return cls()


def extract_status_code(exception: BaseException) -> Optional[int]:
    """Extract HTTP status code from exception if available."""
    for attr_name in ['status', 'status_code', 'code']:
        value = getattr(exception, attr_name, None)
        if value is None:
            continue
        try:
            return int(value)
        except (ValueError, TypeError):
            continue

    response = getattr(exception, 'response', None)
    if response is not None and getattr(response, 'status_code', None) is not None:
        try:
            return int(response.status_code)
        except (ValueError, TypeError):
            pass

    return None


def is_retryable(exception: BaseException, config: RetryConfig) -> bool:
    """Determine if the exception warrants a backoff retry."""
    code = extract_status_code(exception)
    if code is not None:
        return code in config.retryable_status_codes

    retryable_exceptions = (
        ConnectionError,
        TimeoutError,
        httpx.TransportError,
    )
    return isinstance(exception, retryable_exceptions)


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Exponential backoff for a 1-based attempt, plus jitter."""
    delay = min(config.base_delay * (2 ** (attempt - 1)), config.max_delay)
    # Jitter prevents a thundering herd of synchronized retries
    return delay + random.uniform(0, config.jitter * delay)


async def run_until_aborted(awaitable: Awaitable[T], abort_signal: Optional[asyncio.Event]) -> T:
    """Await ``awaitable`` unless ``abort_signal`` fires first.

    On abort the pending work is cancelled and awaited before
    TurnAbortedError is raised, so its cleanup has already run.
    """
    if abort_signal is None:
        return await awaitable
    if abort_signal.is_set():
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        raise TurnAbortedError("Turn aborted")

    work = asyncio.ensure_future(awaitable)
    aborted = asyncio.ensure_future(abort_signal.wait())
    try:
        done, _ = await asyncio.wait({work, aborted}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, aborted):
            if not task.done():
                task.cancel()
        await asyncio.gather(work, aborted, return_exceptions=True)

    if work in done:
        return work.result()
    raise TurnAbortedError("Turn aborted")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    config: Optional[RetryConfig] = None,
    on_quota_error: Optional[QuotaErrorHandler] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    abort_signal: Optional[asyncio.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> T:
    """Run ``operation`` with exponential backoff.

    Quota errors go to ``on_quota_error`` first: RETRY restarts the attempt
    count and retries at once, STOP and AUTH end the turn, NOT_APPLICABLE
    surfaces the error unchanged. Once ``abort_signal`` is set no further
    attempt or backoff wait starts and TurnAbortedError is raised; an
    in-flight attempt or wait is cancelled.
    """
    config = config or RetryConfig()
    logger = logger or logging.getLogger(__name__)
    attempt = 0

    while True:
        attempt += 1
        try:
            return await run_until_aborted(operation(), abort_signal)
        except (asyncio.CancelledError, TurnAbortedError):
            raise
        except Exception as e:
            if abort_signal is not None and abort_signal.is_set():
                logger.debug(f"Attempt {attempt} failed after abort: {e}")
                raise TurnAbortedError("Turn aborted") from e

            if is_quota_error(e):
                outcome = FallbackOutcome.NOT_APPLICABLE
                if on_quota_error is not None:
                    outcome = await on_quota_error(e)
                if outcome is FallbackOutcome.RETRY:
                    logger.info("Quota exhausted; retrying with the fallback model")
                    attempt = 0
                    continue
                if outcome is FallbackOutcome.STOP:
                    raise TurnStoppedError("Request stopped after quota was exhausted; fallback model will be used for the next request.", cause=e) from e
                if outcome is FallbackOutcome.AUTH:
                    raise AuthenticationRequiredError("Request stopped; re-authentication requested.", cause=e) from e
                raise

            if attempt >= config.max_attempts or not is_retryable(e, config):
                if attempt > 1:
                    logger.error(f"Final attempt {attempt} failed: {e}")
                raise

            total_delay = compute_delay(attempt, config)
            logger.debug(f"Attempt {attempt} failed: {e}. Retrying in {total_delay:.2f}s...")
            await run_until_aborted(sleep(total_delay), abort_signal)
