"""
Domain errors - exception hierarchy shared by every layer of the turn engine.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class TurnEngineError(Exception):
    """Base class for all turn engine errors."""


class ConfigurationError(TurnEngineError):
    """Fatal configuration problem, raised synchronously at construction."""


class UnsupportedAuthKindError(ConfigurationError):
    """No backend strategy exists for the requested auth kind."""

    def __init__(self, auth_kind: Any):
        super().__init__(f"Error creating content generator: Unsupported auth kind: {auth_kind}")
        self.auth_kind = auth_kind


class PolicyConfigError(ConfigurationError):
    """A policy rule could not be constructed from configuration."""


class BackendError(TurnEngineError):
    """Transport or vendor error raised by a backend adapter."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details or {}

    @property
    def status_code(self) -> Optional[int]:
        """Alias used by retry status-code extraction."""
        return self.status


class FallbackIntentError(TurnEngineError):
    """The fallback handler returned an intent the engine does not understand."""


class TurnStoppedError(TurnEngineError):
    """The turn was terminated after the user chose to stop on a quota failure."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class AuthenticationRequiredError(TurnStoppedError):
    """The turn was terminated so the caller can re-authenticate."""


class TurnAbortedError(TurnEngineError):
    """The caller's abort signal fired while the turn was waiting."""
