"""Client for the EVI chat history REST API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from config.settings import Settings, get_settings
from evi.credentials import resolve_credentials
from evi.errors import ChatHistoryError

LOGGER = logging.getLogger(__name__)

MESSAGE_EVENT_TYPES = {"USER_MESSAGE": "user_message", "AGENT_MESSAGE": "assistant_message"}


def _event_time(event: dict[str, Any]) -> datetime | None:
    timestamp = event.get("timestamp")
    if isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    if isinstance(timestamp, str):
        try:
            return datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _speaker(event: dict[str, Any]) -> str:
    return "user" if event.get("role") == "USER" else "assistant"


def message_events(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [event for event in events if event.get("type") in MESSAGE_EVENT_TYPES]


def build_transcript(events: list[dict[str, Any]]) -> str:
    lines = []
    for event in message_events(events):
        when = _event_time(event)
        stamp = when.strftime("%Y-%m-%d %H:%M:%S") if when else "?"
        role = "User" if _speaker(event) == "user" else "Assistant"
        lines.append(f"[{stamp}] {role}: {event.get('message_text') or ''}")
    return "\n".join(lines)


def extract_transcript_rows(events: list[dict[str, Any]], call_id: str) -> list[dict[str, Any]]:
    return [
        {
            "call_id": call_id,
            "speaker": _speaker(event),
            "message": event.get("message_text") or "",
            "timestamp": _event_time(event),
            "event_type": MESSAGE_EVENT_TYPES[event["type"]],
        }
        for event in message_events(events)
    ]


class ChatHistoryClient:
    """Reads past EVI chats by chat id or chat group id."""

    def __init__(self, settings: Settings | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = settings or get_settings()
        credentials = resolve_credentials(settings)
        self._base_url = settings.hume_api_base_url.rstrip("/")
        self._timeout = settings.hume_http_timeout_seconds
        self._headers = {"X-Hume-Api-Key": credentials.api_key, "Content-Type": "application/json"}
        self._transport = transport

    async def get_chat_events(
        self,
        chat_id: str,
        *,
        page_number: int = 0,
        page_size: int = 100,
        ascending_order: bool = False,
    ) -> dict[str, Any]:
        return await self._get(
            f"/chats/{chat_id}",
            page_number=page_number,
            page_size=page_size,
            ascending_order=ascending_order,
        )

    async def get_chat_group_events(
        self,
        chat_group_id: str,
        *,
        page_number: int = 0,
        page_size: int = 100,
        ascending_order: bool = False,
    ) -> dict[str, Any]:
        return await self._get(
            f"/chat_groups/{chat_group_id}/events",
            page_number=page_number,
            page_size=page_size,
            ascending_order=ascending_order,
        )

    async def list_chats(self, *, page_number: int = 0, page_size: int = 10, ascending_order: bool = False) -> dict[str, Any]:
        return await self._get("/chats", page_number=page_number, page_size=page_size, ascending_order=ascending_order)

    async def list_chat_groups(
        self, *, page_number: int = 0, page_size: int = 10, ascending_order: bool = False
    ) -> dict[str, Any]:
        return await self._get(
            "/chat_groups", page_number=page_number, page_size=page_size, ascending_order=ascending_order
        )

    async def get_conversation(self, chat_id: str, call_id: str) -> dict[str, Any]:
        """Fetch a whole chat in chronological order and shape it for the caller."""

        page = await self.get_chat_events(chat_id, page_size=1000, ascending_order=True)
        events = page.get("events_page") or []
        rows = extract_transcript_rows(events, call_id)
        return {
            "chat_id": chat_id,
            "call_id": call_id,
            "transcript": build_transcript(events),
            "messages": rows,
            "total_events": len(events),
            "total_messages": len(rows),
        }

    async def _get(self, path: str, **params: Any) -> dict[str, Any]:
        query = {key: str(value).lower() if isinstance(value, bool) else value for key, value in params.items()}
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(path, params=query)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                LOGGER.error("EVI chat history request %s failed: %s", path, exc)
                raise ChatHistoryError(f"Failed to fetch {path}: {exc}") from exc
        return response.json()
