"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from evi.stats import ServiceStatsSnapshot


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    stats: ServiceStatsSnapshot


class StatsResponse(BaseModel):
    success: bool = True
    stats: ServiceStatsSnapshot


class SendTextRequest(BaseModel):
    text: str = Field(min_length=1, description="Text injected as user input into the EVI chat.")


class ConversationStatusResponse(BaseModel):
    call_id: str
    status: str


class TranscriptMessage(BaseModel):
    speaker: str
    message: str
    event_type: str
    timestamp: datetime | None = None


class ChatTranscriptResponse(BaseModel):
    chat_id: str
    transcript: str
    messages: list[TranscriptMessage]
    total_events: int
    total_messages: int
