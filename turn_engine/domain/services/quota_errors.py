"""
Quota error detection - classifies backend failures for fallback eligibility.

Plain substring checks are used instead of regular expressions on vendor
messages.
"""

from __future__ import annotations
from typing import Any, Optional

from ..errors import BackendError


QUOTA_EXCEEDED_MARKER = "Quota exceeded for quota metric"
PRO_QUOTA_PREFIX = "Quota exceeded for quota metric 'Gemini"
PRO_QUOTA_SUFFIX = "Pro Requests'"


def _error_message(error: Any) -> Optional[str]:
    """Best-effort extraction of a vendor error message."""
    if isinstance(error, str):
        return error

    if isinstance(error, BackendError):
        return error.message

    if isinstance(error, dict):
        inner = error.get("error")
        if isinstance(inner, dict) and isinstance(inner.get("message"), str):
            return inner["message"]
        if isinstance(error.get("message"), str):
            return error["message"]
        return None

    # httpx-style errors carrying a response body
    response = getattr(error, "response", None)
    if response is not None:
        try:
            data = response.json()
        except Exception:
            data = getattr(response, "text", None)
        nested = _error_message(data) if data is not None else None
        if nested:
            return nested

    if isinstance(error, BaseException):
        return str(error)
    return None


def is_pro_quota_exceeded_error(error: Any) -> bool:
    """Quota exhaustion of the premium model tier."""
    message = _error_message(error) or ""
    return PRO_QUOTA_PREFIX in message and PRO_QUOTA_SUFFIX in message


def is_generic_quota_exceeded_error(error: Any) -> bool:
    message = _error_message(error) or ""
    return QUOTA_EXCEEDED_MARKER in message


def is_quota_error(error: Any) -> bool:
    """Quota or capacity failure that may be answered with a fallback model."""
    return is_pro_quota_exceeded_error(error) or is_generic_quota_exceeded_error(error)
