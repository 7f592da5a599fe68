"""Routes inbound EVI frames to a session's callbacks."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from evi.errors import EngineError, MalformedFrameError
from evi.messages import (
    AssistantEnd,
    AssistantMessage,
    AudioOutput,
    ChatMetadata,
    ErrorEvent,
    InboundEvent,
    TranscriptEvent,
    UnknownEvent,
    UserInterruption,
    UserMessage,
    parse_frame,
)
from evi.session import Session
from evi.stats import ServiceStats

LOGGER = logging.getLogger(__name__)


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback. A missing callback is a no-op."""

    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class FrameDispatcher:
    """Parses one frame at a time and applies it to its session.

    Each session's reader task calls ``dispatch`` sequentially, so a session's
    frames are handled in arrival order. Nothing raised here escapes: a bad
    frame or a failing callback is reported and the next frame is processed.
    """

    def __init__(self, stats: ServiceStats) -> None:
        self._stats = stats

    async def dispatch(self, session: Session, raw: str | bytes) -> InboundEvent | None:
        try:
            event = parse_frame(raw)
        except MalformedFrameError as exc:
            LOGGER.warning("Dropping malformed EVI frame for call %s: %s", session.call_id, exc)
            await self.report_error(session, exc)
            return None

        try:
            await self._apply(session, event)
        except Exception as exc:
            LOGGER.exception("Callback failed for call %s on '%s'", session.call_id, event.type)
            await self.report_error(session, exc)
        return event

    async def report_error(self, session: Session, exc: Exception) -> None:
        try:
            await invoke_callback(session.callbacks.on_error, exc)
        except Exception:
            LOGGER.exception("Error callback failed for call %s", session.call_id)

    async def _apply(self, session: Session, event: InboundEvent) -> None:
        call_id = session.call_id
        callbacks = session.callbacks

        if isinstance(event, ChatMetadata):
            if session.record_metadata(event.chat_id, event.chat_group_id):
                LOGGER.info(
                    "EVI chat metadata for call %s: chat_id=%s chat_group_id=%s",
                    call_id,
                    event.chat_id,
                    event.chat_group_id,
                )
            else:
                LOGGER.warning(
                    "Ignoring repeated chat metadata for call %s (chat_id=%s, keeping %s)",
                    call_id,
                    event.chat_id,
                    session.chat_id,
                )

        elif isinstance(event, AudioOutput):
            session.audio_output_count += 1
            self._stats.audio_relayed()
            await invoke_callback(callbacks.on_audio, event.data)

        elif isinstance(event, (UserMessage, AssistantMessage)):
            transcript = TranscriptEvent.from_message(event)
            LOGGER.info(
                "%s transcript (%s)%s: %r",
                transcript.role.capitalize(),
                call_id,
                " [interim]" if transcript.interim else "",
                transcript.content,
            )
            session.transcript_count += 1
            await invoke_callback(callbacks.on_transcript, transcript)

        elif isinstance(event, UserInterruption):
            # The engine stops its own output on barge-in; observers only get notified.
            LOGGER.info("User interruption detected for call %s", call_id)
            await invoke_callback(callbacks.on_interruption)

        elif isinstance(event, AssistantEnd):
            LOGGER.debug("Assistant turn complete for call %s", call_id)

        elif isinstance(event, ErrorEvent):
            LOGGER.error("EVI error for call %s: %s (code=%s)", call_id, event.message, event.code)
            self._stats.error_observed()
            await self.report_error(
                session,
                EngineError(event.message or None, code=event.code, slug=event.slug),
            )

        elif isinstance(event, UnknownEvent):
            LOGGER.debug("Unhandled EVI message for call %s: %s", call_id, event.type)
