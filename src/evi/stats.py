from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel


class ServiceStatsSnapshot(BaseModel):
    total_conversations: int
    active_conversations: int
    total_audio_messages: int
    errors: int
    active_connections: int
    initialized: bool


@dataclass
class ServiceStats:
    """Process-wide diagnostics counters. Best effort, never used for control flow."""

    total_conversations: int = 0
    active_conversations: int = 0
    total_audio_messages: int = 0
    errors: int = 0

    def session_started(self) -> None:
        self.total_conversations += 1
        self.active_conversations += 1

    def session_ended(self) -> None:
        self.active_conversations = max(0, self.active_conversations - 1)

    def audio_relayed(self) -> None:
        self.total_audio_messages += 1

    def error_observed(self) -> None:
        self.errors += 1

    def snapshot(self, *, active_connections: int, initialized: bool) -> ServiceStatsSnapshot:
        return ServiceStatsSnapshot(
            total_conversations=self.total_conversations,
            active_conversations=self.active_conversations,
            total_audio_messages=self.total_audio_messages,
            errors=self.errors,
            active_connections=active_connections,
            initialized=initialized,
        )
