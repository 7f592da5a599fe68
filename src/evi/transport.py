"""Streaming transport to the EVI chat endpoint.

The transport moves text frames in both directions and owns nothing beyond the
socket: it never looks inside a frame. Parsing lives in ``evi.messages``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidStatus, WebSocketException
from websockets.protocol import State

from config.settings import Settings, get_settings
from evi.credentials import Credentials, build_chat_url, redact_url
from evi.errors import ConnectError, SendError, TransportError

LOGGER = logging.getLogger(__name__)

MAX_FRAME_BYTES = 16 * 1024 * 1024


class StreamConnection(Protocol):
    """One open bidirectional stream. Owned by exactly one session."""

    @property
    def is_open(self) -> bool:  # pragma: no cover - protocol stub
        ...

    async def send(self, frame: str) -> None:  # pragma: no cover - protocol stub
        ...

    def frames(self) -> AsyncIterator[str]:  # pragma: no cover - protocol stub
        ...

    async def close(self) -> None:  # pragma: no cover - protocol stub
        ...


class BaseTransport(ABC):
    """Abstract factory for streaming connections."""

    @abstractmethod
    async def connect(
        self,
        endpoint: str,
        credentials: Credentials,
        *,
        verbose_transcription: bool = True,
    ) -> StreamConnection:
        """Open a connection or raise ``ConnectError``."""


class WebSocketConnection:
    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws
        self._close_requested = False

    @property
    def is_open(self) -> bool:
        return not self._close_requested and self._ws.state is State.OPEN

    async def send(self, frame: str) -> None:
        if not self.is_open:
            raise SendError("EVI connection is not open")
        try:
            await self._ws.send(frame)
        except ConnectionClosed as exc:
            raise SendError(f"EVI connection closed during send: {exc}") from exc

    async def frames(self) -> AsyncIterator[str]:
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosedError as exc:
            if self._close_requested:
                return
            raise TransportError(f"EVI connection closed abnormally: {exc}") from exc

    async def close(self) -> None:
        if self._close_requested:
            return
        self._close_requested = True
        await self._ws.close()


class WebSocketTransport(BaseTransport):
    """Opens EVI chat sockets with the ``websockets`` asyncio client."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._open_timeout = settings.hume_open_timeout_seconds
        self._close_timeout = settings.hume_close_timeout_seconds
        self._ping_interval = settings.hume_ping_interval_seconds or None

    async def connect(
        self,
        endpoint: str,
        credentials: Credentials,
        *,
        verbose_transcription: bool = True,
    ) -> WebSocketConnection:
        url = build_chat_url(endpoint, credentials, verbose_transcription=verbose_transcription)
        LOGGER.info("Connecting to EVI: %s", redact_url(url))

        try:
            ws = await connect(
                url,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_interval,
                max_size=MAX_FRAME_BYTES,
            )
        except InvalidStatus as exc:
            raise ConnectError(f"EVI rejected the handshake (HTTP {exc.response.status_code})") from exc
        except asyncio.TimeoutError as exc:
            raise ConnectError(f"Timed out after {self._open_timeout}s connecting to EVI") from exc
        except (OSError, WebSocketException) as exc:
            raise ConnectError(f"Could not connect to EVI: {exc}") from exc

        return WebSocketConnection(ws)
