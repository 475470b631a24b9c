"""
Fallback handler - decides whether a quota failure switches the session to
the fallback model.
"""

from __future__ import annotations
import logging
from typing import Optional

from ..errors import FallbackIntentError
from ..models.content import AuthKind
from ..models.session import FallbackEvent, FallbackIntent, FallbackOutcome, Session


logger = logging.getLogger(__name__)

# Only this backend offers a cheaper fallback model.
FALLBACK_AUTH_KIND = AuthKind.OAUTH_PERSONAL


def _coerce_intent(intent: object) -> Optional[FallbackIntent]:
    if intent is None:
        return None
    if isinstance(intent, FallbackIntent):
        return intent
    try:
        return FallbackIntent(intent)
    except ValueError:
        raise FallbackIntentError(
            f'Unexpected fallback intent received from fallback model handler: "{intent}"'
        ) from None


async def handle_fallback(session: Session, failed_model: str, error: BaseException) -> FallbackOutcome:
    """Consult the session's fallback handler after a quota error.

    Returns NOT_APPLICABLE when the backend has no fallback, the failing model
    already is the fallback model, or no handler is registered.
    """
    if session.auth_kind is not FALLBACK_AUTH_KIND:
        return FallbackOutcome.NOT_APPLICABLE

    fallback_model = session.fallback_model()
    if failed_model == fallback_model:
        return FallbackOutcome.NOT_APPLICABLE

    handler = session.fallback_model_handler
    if not callable(handler):
        return FallbackOutcome.NOT_APPLICABLE

    try:
        raw_intent = await handler(failed_model, fallback_model, error)
    except Exception as handler_error:
        logger.error(f"Fallback UI handler failed: {handler_error}")
        return FallbackOutcome.NOT_APPLICABLE

    intent = _coerce_intent(raw_intent)
    if intent is None:
        return FallbackOutcome.NOT_APPLICABLE

    if intent is FallbackIntent.RETRY:
        # The next retry attempt picks up the fallback model
        activate_fallback_mode(session)
        return FallbackOutcome.RETRY
    if intent is FallbackIntent.STOP:
        activate_fallback_mode(session)
        return FallbackOutcome.STOP
    return FallbackOutcome.AUTH


def activate_fallback_mode(session: Session) -> None:
    """Latch fallback mode; telemetry fires only on the first transition."""
    if not session.set_fallback_mode(True):
        return
    hook = session.telemetry_hook
    if hook is None:
        return
    try:
        hook(FallbackEvent(auth_kind=session.auth_kind))
    except Exception as e:
        logger.warning(f"Fallback telemetry hook failed: {e}")
