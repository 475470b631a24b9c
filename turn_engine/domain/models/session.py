"""
Session domain models - per-session state consulted by retry and fallback.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from enum import Enum
import logging
import uuid

from .content import AuthKind, BackendConfig


logger = logging.getLogger(__name__)


class FallbackIntent(Enum):
    """What the user chose when offered the fallback model."""
    RETRY = "retry"
    STOP = "stop"
    AUTH = "auth"


class FallbackOutcome(Enum):
    """Result of consulting the fallback handler, as seen by the retry loop."""
    RETRY = "retry"
    STOP = "stop"
    AUTH = "auth"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class FallbackEvent:
    """Telemetry payload for the first switch into fallback mode."""
    auth_kind: AuthKind
    event_name: str = "flash_fallback"


# (failed_model, fallback_model, error) -> intent (or None when the UI declines to answer)
FallbackModelHandler = Callable[[str, str, BaseException], Awaitable[Optional[object]]]
TelemetryHook = Callable[[FallbackEvent], None]


@dataclass
class FallbackState:
    """Active model plus the one-way fallback latch."""
    active_model: str
    is_in_fallback_mode: bool = False


@dataclass
class Session:
    """Long-lived per-session object owned by the host.

    Sessions never share state; each owns its fallback latch.
    """
    backend: BackendConfig
    fallback: FallbackState = None  # type: ignore[assignment]
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    non_interactive: bool = False
    usage_statistics_enabled: bool = True
    fallback_model_handler: Optional[FallbackModelHandler] = None
    telemetry_hook: Optional[TelemetryHook] = None

    def __post_init__(self):
        if self.fallback is None:
            self.fallback = FallbackState(active_model=self.backend.model)

    @property
    def auth_kind(self) -> AuthKind:
        return self.backend.auth_kind

    def is_in_fallback_mode(self) -> bool:
        return self.fallback.is_in_fallback_mode

    def set_fallback_mode(self, active: bool) -> bool:
        """Latch fallback mode on. Returns True only on the first transition.

        Clearing the latch is reserved for ``reset()``.
        """
        if not active or self.fallback.is_in_fallback_mode:
            return False
        self.fallback.is_in_fallback_mode = True
        logger.info(f"Session {self.session_id} switched to fallback mode")
        return True

    def fallback_model(self) -> str:
        from ..services.model_catalog import fallback_model_for
        return fallback_model_for(self.auth_kind)

    def effective_model(self) -> str:
        """Model the next request should use."""
        if self.fallback.is_in_fallback_mode:
            return self.fallback_model()
        return self.fallback.active_model

    def set_model(self, model: str) -> None:
        """Change the active model without touching the latch."""
        self.fallback.active_model = model

    def reset(self) -> None:
        """Explicit session reset: the only way to leave fallback mode."""
        self.fallback = FallbackState(active_model=self.backend.model)
