"""Twilio Media Streams <-> EVI bridge.

Twilio delivers call audio over a websocket as base64 payloads. Payloads are
forwarded to EVI untouched and EVI audio is sent back the same way; no
transcoding happens here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from evi.errors import EVIError, NoActiveSessionError, TransportNotReadyError
from evi.messages import TranscriptEvent
from evi.service import EVIService

LOGGER = logging.getLogger(__name__)

SendJson = Callable[[dict[str, Any]], Awaitable[None]]


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    return json.loads(text)


def build_media_message(stream_sid: str, payload: str) -> dict[str, Any]:
    return {"event": "media", "streamSid": stream_sid, "media": {"payload": payload}}


def build_clear_message(stream_sid: str) -> dict[str, Any]:
    return {"event": "clear", "streamSid": stream_sid}


class TwilioMediaBridge:
    """Drives one EVI conversation from one Twilio media stream.

    Note: The conversation is keyed by the Twilio CallSid, so a call can only
    have one media stream bridged at a time.
    """

    def __init__(self, service: EVIService, send_json: SendJson, *, call_sid: str | None = None) -> None:
        self._service = service
        self._send_json = send_json
        self.call_sid = call_sid
        self.stream_sid: str | None = None
        self.transcripts: list[TranscriptEvent] = []
        self.dropped_media = 0
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def handle_event(self, message: dict[str, Any]) -> None:
        event = str(message.get("event") or "")
        if event == "start":
            await self._handle_start(message)
        elif event == "media":
            await self._handle_media(message)
        elif event == "stop":
            LOGGER.info("Media stream stopped for call %s", self.call_sid)
            await self.close()
        else:
            LOGGER.debug("Media stream event '%s' for call %s", event, self.call_sid)

    async def close(self) -> None:
        if not self._started or not self.call_sid:
            return
        self._started = False
        await self._service.end_conversation(self.call_sid)

    async def _handle_start(self, message: dict[str, Any]) -> None:
        start = message.get("start") or {}
        self.stream_sid = str(message.get("streamSid") or start.get("streamSid") or "") or None
        self.call_sid = str(start.get("callSid") or "") or self.call_sid
        if not self.call_sid:
            LOGGER.warning("Media stream start without CallSid; not bridging to EVI")
            return

        LOGGER.info("Media stream started: call=%s stream=%s", self.call_sid, self.stream_sid)
        try:
            await self._service.start_conversation(
                self.call_sid,
                on_audio=self._forward_audio,
                on_transcript=self._record_transcript,
                on_error=self._report_error,
                on_interruption=self._clear_playback,
            )
        except EVIError as exc:
            # The call stays up without the assistant.
            LOGGER.error("Could not start EVI conversation for call %s: %s", self.call_sid, exc)
            return
        self._started = True

    async def _handle_media(self, message: dict[str, Any]) -> None:
        media = message.get("media") or {}
        if media.get("track") and media.get("track") != "inbound":
            return
        payload = media.get("payload")
        if not self._started or not isinstance(payload, str) or not payload:
            return

        try:
            await self._service.send_audio(self.call_sid, payload)
        except (NoActiveSessionError, TransportNotReadyError) as exc:
            if not self.dropped_media:
                LOGGER.warning("Dropping caller audio for call %s: %s", self.call_sid, exc)
            self.dropped_media += 1

    async def _forward_audio(self, payload: str) -> None:
        if not self.stream_sid:
            return
        await self._send_json(build_media_message(self.stream_sid, payload))

    async def _clear_playback(self) -> None:
        if not self.stream_sid:
            return
        await self._send_json(build_clear_message(self.stream_sid))

    def _record_transcript(self, event: TranscriptEvent) -> None:
        if not event.interim:
            self.transcripts.append(event)

    def _report_error(self, exc: Exception) -> None:
        LOGGER.warning("EVI reported an error for call %s: %s", self.call_sid, exc)
