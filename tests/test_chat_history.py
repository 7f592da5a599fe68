from __future__ import annotations

import asyncio

import httpx
import pytest

from config.settings import Settings
from evi.chat_history import ChatHistoryClient, build_transcript, extract_transcript_rows
from evi.errors import ChatHistoryError, InitError

EVENTS = [
    {"type": "SYSTEM_PROMPT", "role": "SYSTEM", "message_text": "be nice", "timestamp": 1700000000000},
    {"type": "USER_MESSAGE", "role": "USER", "message_text": "Hi there", "timestamp": 1700000001000},
    {"type": "AGENT_MESSAGE", "role": "AGENT", "message_text": "Hello!", "timestamp": 1700000002000},
    {"type": "USER_INTERRUPTION", "role": "USER", "timestamp": 1700000003000},
]


def _settings() -> Settings:
    return Settings(_env_file=None, hume_api_key="key-1", hume_api_base_url="https://api.example.test/v0/evi")


def test_build_transcript_keeps_only_messages():
    transcript = build_transcript(EVENTS)
    lines = transcript.splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("User: Hi there")
    assert lines[1].endswith("Assistant: Hello!")
    assert lines[0].startswith("[2023-11-14 22:13:21]")


def test_extract_transcript_rows():
    rows = extract_transcript_rows(EVENTS, "call-1")
    assert [(r["speaker"], r["message"], r["event_type"]) for r in rows] == [
        ("user", "Hi there", "user_message"),
        ("assistant", "Hello!", "assistant_message"),
    ]
    assert all(r["call_id"] == "call-1" for r in rows)


def test_get_conversation_requests_chronological_page():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "chat-1", "events_page": EVENTS})

    client = ChatHistoryClient(_settings(), transport=httpx.MockTransport(handler))
    conversation = asyncio.run(client.get_conversation("chat-1", "call-1"))

    request = seen[0]
    assert request.url.path == "/v0/evi/chats/chat-1"
    assert request.url.params["ascending_order"] == "true"
    assert request.url.params["page_size"] == "1000"
    assert request.headers["X-Hume-Api-Key"] == "key-1"

    assert conversation["total_events"] == 4
    assert conversation["total_messages"] == 2
    assert "Assistant: Hello!" in conversation["transcript"]


def test_chat_group_events_path():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"events_page": []})

    client = ChatHistoryClient(_settings(), transport=httpx.MockTransport(handler))
    asyncio.run(client.get_chat_group_events("grp-1", page_number=2))

    assert seen[0].url.path == "/v0/evi/chat_groups/grp-1/events"
    assert seen[0].url.params["page_number"] == "2"
    assert seen[0].url.params["ascending_order"] == "false"


def test_http_failure_raises_chat_history_error():
    client = ChatHistoryClient(_settings(), transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    with pytest.raises(ChatHistoryError):
        asyncio.run(client.list_chats())


def test_client_requires_api_key():
    with pytest.raises(InitError):
        ChatHistoryClient(Settings(_env_file=None, hume_api_key=None))
