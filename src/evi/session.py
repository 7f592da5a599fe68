from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel

from evi.messages import TranscriptEvent
from evi.transport import StreamConnection

AudioCallback = Callable[[str], Union[Awaitable[Any], Any]]
TranscriptCallback = Callable[[TranscriptEvent], Union[Awaitable[Any], Any]]
ErrorCallback = Callable[[Exception], Union[Awaitable[Any], Any]]
InterruptionCallback = Callable[[], Union[Awaitable[Any], Any]]


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    TERMINATED = "terminated"
    FAILED = "failed"


@dataclass(slots=True)
class ConversationCallbacks:
    """Where a session delivers engine output. Every hook is optional."""

    on_audio: AudioCallback | None = None
    on_transcript: TranscriptCallback | None = None
    on_error: ErrorCallback | None = None
    on_interruption: InterruptionCallback | None = None


class ConnectionInfo(BaseModel):
    call_id: str
    start_time: datetime
    duration_seconds: float
    audio_input_count: int
    audio_output_count: int
    transcript_count: int
    is_active: bool
    state: SessionState
    chat_id: str | None = None
    chat_group_id: str | None = None
    config_id: str | None = None


@dataclass
class Session:
    """One live bridge between a call and an EVI chat."""

    call_id: str
    connection: StreamConnection
    callbacks: ConversationCallbacks = field(default_factory=ConversationCallbacks)
    config_id: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    audio_input_count: int = 0
    audio_output_count: int = 0
    transcript_count: int = 0
    is_active: bool = True
    state: SessionState = SessionState.INITIALIZING
    chat_id: str | None = None
    chat_group_id: str | None = None
    reader_task: asyncio.Task | None = None
    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    def record_metadata(self, chat_id: str, chat_group_id: str) -> bool:
        """Store engine chat ids. Only the first call has any effect."""

        if self.chat_id is not None:
            return False
        self.chat_id = chat_id
        self.chat_group_id = chat_group_id
        return True

    def activate(self) -> None:
        if self.is_active:
            self.state = SessionState.ACTIVE

    def deactivate(self, *, failed: bool = False) -> bool:
        """Mark the session terminated, or failed when the transport broke.

        Returns True for the first caller only.
        """

        if not self.is_active:
            return False
        self.is_active = False
        self.state = SessionState.FAILED if failed else SessionState.TERMINATED
        return True

    @property
    def duration_seconds(self) -> float:
        return max(0.0, time.monotonic() - self._started_monotonic)

    def snapshot(self) -> ConnectionInfo:
        return ConnectionInfo(
            call_id=self.call_id,
            start_time=self.started_at,
            duration_seconds=self.duration_seconds,
            audio_input_count=self.audio_input_count,
            audio_output_count=self.audio_output_count,
            transcript_count=self.transcript_count,
            is_active=self.is_active,
            state=self.state,
            chat_id=self.chat_id,
            chat_group_id=self.chat_group_id,
            config_id=self.config_id,
        )
