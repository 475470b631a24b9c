"""
Utility functions for the turn engine.
"""

import logging
import sys
from typing import Dict


def setup_logging(level: str = "INFO", fmt: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s') -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    # Reduce noise from third-party libraries unless debugging
    if level.upper() != "DEBUG":
        for name in ("httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.WARNING)


def truncate_text(text: str, max_length: int = 100) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= max_length:
        return text
    return text[:max_length-3] + "..."


THOUGHT_DELIMITER = "**"


def parse_thought(raw_text: str) -> Dict[str, str]:
    """Split a thought into a ``**subject**`` and the remaining description.

    Without a complete delimited subject the whole text is the description.
    """
    start = raw_text.find(THOUGHT_DELIMITER)
    if start == -1:
        return {"subject": "", "description": raw_text.strip()}

    end = raw_text.find(THOUGHT_DELIMITER, start + len(THOUGHT_DELIMITER))
    if end == -1:
        return {"subject": "", "description": raw_text.strip()}

    subject = raw_text[start + len(THOUGHT_DELIMITER):end].strip()
    description = (raw_text[:start] + raw_text[end + len(THOUGHT_DELIMITER):]).strip()
    return {"subject": subject, "description": description}


def setup_logging_from_settings(settings=None) -> None:
    """Apply ``log_level`` and ``log_format`` from the application settings."""
    from .infrastructure.config.settings import get_settings
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
