"""
Installation id - a stable per-machine identifier kept under the state directory.
"""

from __future__ import annotations
import logging
import os
import uuid
from typing import Optional


INSTALLATION_ID_FILENAME = "installation_id"
# Returned when the id file can be neither read nor written
EPHEMERAL_INSTALLATION_ID = "123456789"


class InstallationManager:
    """Reads, or creates on first use, the installation id file."""

    def __init__(self, state_dir: str = "~/.turn-engine", logger: Optional[logging.Logger] = None):
        self._state_dir = os.path.expanduser(state_dir)
        self._logger = logger or logging.getLogger(__name__)
        self._cached: Optional[str] = None

    @property
    def path(self) -> str:
        return os.path.join(self._state_dir, INSTALLATION_ID_FILENAME)

    def _read(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            value = f.read().strip()
        return value or None

    def _write(self, installation_id: str) -> None:
        os.makedirs(self._state_dir, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(installation_id)

    def get_installation_id(self) -> str:
        if self._cached:
            return self._cached
        try:
            installation_id = self._read()
            if installation_id is None:
                installation_id = str(uuid.uuid4())
                self._write(installation_id)
                self._logger.debug(f"Created installation id at {self.path}")
        except OSError as e:
            self._logger.error(f"Error accessing installation ID file: {e}")
            return EPHEMERAL_INSTALLATION_ID
        self._cached = installation_id
        return installation_id
