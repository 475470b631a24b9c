"""Domain interfaces package - Protocols for ports."""

from .content_generator import ContentGenerator, ConfirmationHandler

__all__ = [
    "ContentGenerator",
    "ConfirmationHandler",
]
