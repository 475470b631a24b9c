"""
HTTP backend base - shared transport plumbing for every content generator strategy.
Handles the httpx client, common headers, server-sent events and error mapping.
"""

from __future__ import annotations
import json
import logging
import platform
import sys
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import httpx

from ... import __version__
from ...domain.errors import BackendError
from ...domain.models.content import BackendConfig
from ...domain.models.session import Session
from ..config.settings import BackendSettings
from ..installation import InstallationManager


# Returns a fresh bearer token for OAuth-style backends
TokenProvider = Callable[[], Awaitable[str]]

INSTALLATION_ID_HEADER = "x-gemini-api-privileged-user-id"


def user_agent() -> str:
    """``TurnEngine/<version> (<platform>; <arch>)``"""
    return f"TurnEngine/{__version__} ({sys.platform}; {platform.machine() or 'unknown'})"


def split_sse_events(lines: List[str]) -> List[str]:
    """Group raw SSE lines into ``data:`` payload strings.

    A blank line ends an event; comment lines starting with ``:`` are skipped.
    """
    events: List[str] = []
    buffer: List[str] = []
    for line in lines:
        if not line.strip():
            if buffer:
                events.append("\n".join(buffer))
                buffer = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            buffer.append(line[5:].lstrip())
        elif not line.startswith(("event:", "id:", "retry:")):
            buffer.append(line.strip())
    if buffer:
        events.append("\n".join(buffer))
    return events


def error_from_response(response: httpx.Response) -> BackendError:
    """Map a failed HTTP response to a BackendError with the vendor message."""
    details: Dict[str, Any] = {}
    message: Optional[str] = None
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, list) and data and isinstance(data[0], dict):
        data = data[0]
    if isinstance(data, dict):
        details = data
        inner = data.get("error")
        if isinstance(inner, dict) and isinstance(inner.get("message"), str):
            message = inner["message"]
        elif isinstance(inner, str):
            message = inner
        elif isinstance(data.get("message"), str):
            message = data["message"]

    if not message:
        message = response.text.strip() or response.reason_phrase or "Request failed"

    return BackendError(message, status=response.status_code, details=details)


class HttpContentGenerator:
    """Base class for HTTP strategies; subclasses implement the ContentGenerator protocol."""

    def __init__(
        self,
        config: BackendConfig,
        session: Session,
        *,
        settings: Optional[BackendSettings] = None,
        installation: Optional[InstallationManager] = None,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._session = session
        self._settings = settings or BackendSettings()
        self._installation = installation
        self._token_provider = token_provider
        self._logger = logger or logging.getLogger(self.__class__.__module__)
        # Must run before the client is created
        self._validate()

        timeout = httpx.Timeout(self._settings.read_timeout_s, connect=self._settings.connect_timeout_s)
        # An explicit transport is used as-is; a proxy mount would bypass it
        proxy = None if transport is not None else (config.proxy or self._settings.proxy)
        self._client = httpx.AsyncClient(
            proxy=proxy,
            timeout=timeout,
            headers=self._base_headers(),
            transport=transport,
        )

    @property
    def config(self) -> BackendConfig:
        return self._config

    def _validate(self) -> None:
        """Raise ConfigurationError when the strategy cannot run with this config."""

    def _base_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": user_agent(),
            "Content-Type": "application/json",
        }
        api_key = (self._config.api_key or "").strip()
        if self._session.usage_statistics_enabled and api_key and self._installation is not None:
            headers[INSTALLATION_ID_HEADER] = self._installation.get_installation_id()
        return headers

    async def _auth_headers(self) -> Dict[str, str]:
        """Per-request credentials; overridden by each strategy."""
        return {}

    async def _bearer_headers(self) -> Dict[str, str]:
        if self._token_provider is None:
            return {}
        token = await self._token_provider()
        return {"Authorization": f"Bearer {token}"}

    async def _post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = await self._auth_headers()
        self._logger.debug(f"POST {url}")
        response = await self._client.post(url, json=body, headers=headers)
        if response.status_code >= 400:
            raise error_from_response(response)
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON in response: {e}", status=response.status_code) from e
        return data if isinstance(data, dict) else {"data": data}

    async def _stream_sse(self, url: str, body: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """POST and yield each decoded SSE JSON payload as it arrives."""
        headers = await self._auth_headers()
        self._logger.debug(f"POST (stream) {url}")
        async with self._client.stream("POST", url, json=body, headers=headers) as response:
            if response.status_code >= 400:
                await response.aread()
                raise error_from_response(response)

            pending: List[str] = []
            async for line in response.aiter_lines():
                pending.append(line)
                if line.strip():
                    continue
                for payload in split_sse_events(pending):
                    data = self._decode_event(payload)
                    if data is not None:
                        yield data
                pending = []

            for payload in split_sse_events(pending):
                data = self._decode_event(payload)
                if data is not None:
                    yield data

    def _decode_event(self, payload: str) -> Optional[Dict[str, Any]]:
        if not payload or payload == "[DONE]":
            return None
        try:
            data = json.loads(payload)
        except ValueError:
            self._logger.warning(f"Failed to parse SSE JSON from data: {payload[:100]!r}")
            return None
        return data if isinstance(data, dict) else None

    async def aclose(self) -> None:
        await self._client.aclose()
