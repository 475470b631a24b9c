"""
Content generator factory - selects the backend strategy for a session's auth kind.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Type

import httpx

from ...domain.errors import UnsupportedAuthKindError
from ...domain.interfaces.content_generator import ContentGenerator
from ...domain.models.content import AuthKind, BackendConfig
from ...domain.models.session import Session
from ..config.settings import AppSettings, get_settings
from ..installation import InstallationManager
from .base import HttpContentGenerator, TokenProvider
from .code_assist import CodeAssistContentGenerator
from .gateway import GatewayContentGenerator
from .gemini import GeminiApiContentGenerator
from .logging_generator import LoggingContentGenerator


logger = logging.getLogger(__name__)

STRATEGIES: Dict[AuthKind, Type[HttpContentGenerator]] = {
    AuthKind.API_KEY: GeminiApiContentGenerator,
    AuthKind.VERTEX_AI: GeminiApiContentGenerator,
    AuthKind.OAUTH_PERSONAL: CodeAssistContentGenerator,
    AuthKind.CLOUD_SHELL: CodeAssistContentGenerator,
    AuthKind.GATEWAY: GatewayContentGenerator,
}

_missing = set(AuthKind) - set(STRATEGIES)
if _missing:
    raise RuntimeError(f"No content generator strategy for: {sorted(k.value for k in _missing)}")


def _resolve_auth_kind(value: Any) -> AuthKind:
    if isinstance(value, AuthKind):
        return value
    try:
        return AuthKind(value)
    except ValueError:
        raise UnsupportedAuthKindError(value) from None


def create_content_generator(
    config: BackendConfig,
    session: Session,
    *,
    token_provider: Optional[TokenProvider] = None,
    settings: Optional[AppSettings] = None,
    installation: Optional[InstallationManager] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ContentGenerator:
    """Build the logging-wrapped strategy for ``config.auth_kind``.

    Raises UnsupportedAuthKindError, or ConfigurationError when the chosen
    strategy is missing credentials.
    """
    auth_kind = _resolve_auth_kind(config.auth_kind)
    strategy = STRATEGIES.get(auth_kind)
    if strategy is None:
        raise UnsupportedAuthKindError(auth_kind.value)

    settings = settings or get_settings()
    if installation is None and session.usage_statistics_enabled and (config.api_key or "").strip():
        installation = InstallationManager(settings.state_dir)

    generator = strategy(
        config,
        session,
        settings=settings.backend,
        installation=installation,
        token_provider=token_provider,
        transport=transport,
    )
    logger.debug(f"Created {strategy.__name__} for {auth_kind.value}")
    return LoggingContentGenerator(generator)
