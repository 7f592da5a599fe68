"""Per-call EVI conversation lifecycle.

A conversation moves initializing -> active -> terminated, or initializing ->
failed when the socket cannot be opened. Teardown is shared by three paths
(peer close, transport error, explicit end) and runs exactly once per session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from config.settings import Settings, get_settings
from evi.credentials import Credentials, mask_secret, resolve_credentials
from evi.dispatcher import FrameDispatcher
from evi.errors import (
    ConnectError,
    DuplicateSessionError,
    InitError,
    NoActiveSessionError,
    NotInitializedError,
    SendError,
    TransportError,
    TransportNotReadyError,
)
from evi.messages import encode_audio_input, encode_user_input
from evi.registry import SessionRegistry
from evi.session import (
    AudioCallback,
    ConnectionInfo,
    ConversationCallbacks,
    ErrorCallback,
    InterruptionCallback,
    Session,
    TranscriptCallback,
)
from evi.stats import ServiceStats, ServiceStatsSnapshot
from evi.transport import BaseTransport, StreamConnection, WebSocketTransport

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationHandle:
    """What ``start_conversation`` hands back to the caller."""

    call_id: str
    config_id: str | None
    service: EVIService

    async def send_audio(self, data: str) -> None:
        await self.service.send_audio(self.call_id, data)

    async def send_text(self, text: str) -> None:
        await self.service.send_text(self.call_id, text)

    async def end(self) -> None:
        await self.service.end_conversation(self.call_id)

    def info(self) -> ConnectionInfo | None:
        return self.service.get_connection_info(self.call_id)


class EVIService:
    """Bridges call legs to EVI chats, one websocket per call."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: BaseTransport | None = None,
        registry: SessionRegistry | None = None,
        stats: ServiceStats | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport or WebSocketTransport(self._settings)
        self._registry = registry or SessionRegistry()
        self._stats = stats or ServiceStats()
        self._dispatcher = FrameDispatcher(self._stats)
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def initialize(self) -> dict[str, Any]:
        self._initialized = False
        credentials = resolve_credentials(self._settings)

        LOGGER.info("Initializing EVI service...")
        LOGGER.info("API key: %s", mask_secret(credentials.api_key))
        LOGGER.info("Configuration id: %s", credentials.config_id or "default (none specified)")

        try:
            await self.test_connection()
        except InitError:
            LOGGER.error("EVI service failed to initialize")
            raise

        self._initialized = True
        LOGGER.info("EVI service initialized")
        return {
            "success": True,
            "message": "EVI service initialized",
            "config": {
                "has_config_id": credentials.config_id is not None,
                "config_id": credentials.config_id,
                "api_key_present": True,
            },
        }

    async def test_connection(self, skip_actual_connection: bool = False) -> dict[str, Any]:
        """Check that EVI accepts our credentials.

        With ``skip_actual_connection`` only the presence of credentials is
        checked, so routine status polling does not open engine chats.
        """

        credentials = resolve_credentials(self._settings)
        if skip_actual_connection:
            return {
                "success": True,
                "message": "Credentials available",
                "has_api_key": True,
                "has_config_id": credentials.config_id is not None,
            }

        timeout = self._settings.hume_probe_timeout_seconds
        try:
            connection = await asyncio.wait_for(self._connect(credentials), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise InitError(f"Connection test timed out after {timeout}s") from exc
        except ConnectError as exc:
            raise InitError(f"Connection test failed: {exc.detail}") from exc

        await connection.close()
        LOGGER.info("EVI connection test successful")
        return {"success": True}

    async def start_conversation(
        self,
        call_id: str,
        on_audio: AudioCallback | None = None,
        on_transcript: TranscriptCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_interruption: InterruptionCallback | None = None,
    ) -> ConversationHandle:
        if not self._initialized:
            raise NotInitializedError()
        if call_id in self._registry:
            raise DuplicateSessionError(f"Conversation already active for call {call_id}")

        credentials = resolve_credentials(self._settings)
        LOGGER.info(
            "Starting EVI conversation for call %s with %s",
            call_id,
            f"custom config {credentials.config_id}" if credentials.config_id else "default configuration",
        )

        try:
            connection = await self._connect(credentials)
        except ConnectError:
            LOGGER.error("EVI conversation for call %s failed to connect", call_id)
            raise

        session = Session(
            call_id=call_id,
            connection=connection,
            callbacks=ConversationCallbacks(
                on_audio=on_audio,
                on_transcript=on_transcript,
                on_error=on_error,
                on_interruption=on_interruption,
            ),
            config_id=credentials.config_id,
        )
        try:
            await self._registry.register(call_id, session)
        except DuplicateSessionError:
            # Lost a race with a concurrent start for the same call.
            await connection.close()
            raise

        session.activate()
        self._stats.session_started()
        session.reader_task = asyncio.create_task(self._pump(session), name=f"evi-reader-{call_id}")
        LOGGER.info("EVI conversation started for call %s", call_id)
        return ConversationHandle(call_id=call_id, config_id=credentials.config_id, service=self)

    async def send_audio(self, call_id: str, data: str) -> None:
        session = self._require_open_session(call_id)
        await self._send(session, encode_audio_input(data))
        session.audio_input_count += 1

    async def send_text(self, call_id: str, text: str) -> None:
        session = self._require_open_session(call_id)
        await self._send(session, encode_user_input(text))

    async def end_conversation(self, call_id: str) -> None:
        session = self._registry.get(call_id)
        if session is None:
            return
        await self._teardown(session, reason="ended by request")

    def get_stats(self) -> ServiceStatsSnapshot:
        return self._stats.snapshot(active_connections=len(self._registry), initialized=self._initialized)

    def get_connection_info(self, call_id: str) -> ConnectionInfo | None:
        session = self._registry.get(call_id)
        if session is None:
            return None
        return session.snapshot()

    async def shutdown(self) -> None:
        for call_id in self._registry.call_ids():
            await self.end_conversation(call_id)
        self._initialized = False

    async def _connect(self, credentials: Credentials) -> StreamConnection:
        return await self._transport.connect(
            self._settings.hume_evi_url,
            credentials,
            verbose_transcription=self._settings.hume_verbose_transcription,
        )

    def _require_open_session(self, call_id: str) -> Session:
        session = self._registry.get(call_id)
        if session is None or not session.is_active:
            raise NoActiveSessionError(f"No active EVI conversation for call {call_id}")
        if not session.connection.is_open:
            raise TransportNotReadyError(f"EVI connection not ready for call {call_id}")
        return session

    async def _send(self, session: Session, frame: str) -> None:
        try:
            await session.connection.send(frame)
        except SendError as exc:
            raise TransportNotReadyError(f"EVI connection not ready for call {session.call_id}") from exc

    async def _pump(self, session: Session) -> None:
        reason = "closed by peer"
        failed = False
        try:
            async for raw in session.connection.frames():
                await self._dispatcher.dispatch(session, raw)
        except TransportError as exc:
            reason, failed = "transport error", True
            LOGGER.error("EVI connection error for call %s: %s", session.call_id, exc)
            self._stats.error_observed()
            await self._dispatcher.report_error(session, exc)
        except Exception as exc:
            reason, failed = "reader error", True
            LOGGER.exception("EVI reader for call %s stopped unexpectedly", session.call_id)
            self._stats.error_observed()
            await self._dispatcher.report_error(session, exc)
        finally:
            await self._teardown(session, reason=reason, failed=failed)

    async def _teardown(self, session: Session, *, reason: str, failed: bool = False) -> bool:
        if not session.deactivate(failed=failed):
            return False

        LOGGER.info("Ending EVI conversation for call %s (%s)", session.call_id, reason)
        await self._registry.remove(session.call_id, session)
        self._stats.session_ended()

        reader = session.reader_task
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()

        try:
            await session.connection.close()
        except Exception:
            LOGGER.exception("Error closing EVI connection for call %s", session.call_id)
        return True
