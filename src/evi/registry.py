from __future__ import annotations

import asyncio

from evi.errors import DuplicateSessionError
from evi.session import Session


class SessionRegistry:
    """In-memory map of call id to live session.

    Note: This is a single-process registry. Sessions hold open sockets, so it
    cannot be moved to a shared store; route a call's media to the process
    that started its conversation.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}

    async def register(self, call_id: str, session: Session) -> None:
        async with self._lock:
            if call_id in self._sessions:
                raise DuplicateSessionError(f"Conversation already active for call {call_id}")
            self._sessions[call_id] = session

    def get(self, call_id: str) -> Session | None:
        return self._sessions.get(call_id)

    lookup = get

    async def remove(self, call_id: str, session: Session | None = None) -> Session | None:
        """Drop ``call_id``. With ``session`` given, only that exact session is removed."""

        async with self._lock:
            current = self._sessions.get(call_id)
            if current is None:
                return None
            if session is not None and current is not session:
                return None
            del self._sessions[call_id]
            return current

    def call_ids(self) -> list[str]:
        return list(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
