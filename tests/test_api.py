from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from evi.errors import ConnectError
from evi.session import ConnectionInfo, SessionState


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_stats_shape(client):
    response = client.get("/api/evi/stats")
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["stats"] == {
        "total_conversations": 0,
        "active_conversations": 0,
        "total_audio_messages": 0,
        "errors": 0,
        "active_connections": 0,
        "initialized": True,
    }


def test_connection_test_skip_does_not_open_socket(client, transport):
    connects_before = len(transport.connect_calls)
    response = client.get("/api/evi/test", params={"skip_connection": "true"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["message"] == "Credentials available"
    assert len(transport.connect_calls) == connects_before


def test_connection_test_real_probe(client, transport):
    connects_before = len(transport.connect_calls)
    response = client.get("/api/evi/test")
    assert response.status_code == 200
    assert response.json()["data"] == {"success": True}
    assert len(transport.connect_calls) == connects_before + 1


def test_connection_test_failure_returns_500_with_stats(client, transport):
    transport.fail_with = ConnectError("HTTP 401")
    response = client.get("/api/evi/test")
    assert response.status_code == 500
    payload = response.json()
    assert payload["success"] is False
    assert "HTTP 401" in payload["message"]
    assert payload["stats"]["initialized"] is True


def test_initialize_endpoint(client):
    response = client.post("/api/evi/initialize")
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["config_id"] == "cfg-123"


def test_unknown_conversation_returns_404(client):
    response = client.get("/api/evi/conversations/nope")
    assert response.status_code == 404


def test_send_text_to_unknown_conversation_maps_to_404(client):
    response = client.post("/api/evi/conversations/nope/text", json={"text": "hello"})
    assert response.status_code == 404
    assert "nope" in response.json()["detail"]


def test_send_text_requires_text(client):
    response = client.post("/api/evi/conversations/nope/text", json={"text": ""})
    assert response.status_code == 422


def test_end_unknown_conversation_is_a_no_op(client):
    response = client.delete("/api/evi/conversations/nope")
    assert response.status_code == 200
    assert response.json() == {"call_id": "nope", "status": "ended"}


class FakeService:
    initialized = True

    def get_connection_info(self, call_id: str):
        return ConnectionInfo(
            call_id=call_id,
            start_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            duration_seconds=1.5,
            audio_input_count=10,
            audio_output_count=4,
            transcript_count=2,
            is_active=True,
            state=SessionState.ACTIVE,
            chat_id="abc",
            chat_group_id="grp1",
            config_id="cfg-123",
        )

    async def shutdown(self) -> None:
        return None


def test_conversation_info_returns_snapshot(app):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_evi_service] = lambda: FakeService()
    try:
        with TestClient(app) as client:
            response = client.get("/api/evi/conversations/call-1")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    payload = response.json()
    assert payload["call_id"] == "call-1"
    assert payload["chat_id"] == "abc"
    assert payload["state"] == "active"
    assert payload["audio_output_count"] == 4


class FakeChatHistory:
    async def get_conversation(self, chat_id: str, call_id: str) -> dict:
        return {
            "chat_id": chat_id,
            "call_id": call_id,
            "transcript": "[2024-01-01 00:00:00] User: Hi",
            "messages": [
                {
                    "call_id": call_id,
                    "speaker": "user",
                    "message": "Hi",
                    "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
                    "event_type": "user_message",
                }
            ],
            "total_events": 3,
            "total_messages": 1,
        }


def test_chat_transcript(app, ready_service):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_evi_service] = lambda: ready_service
    app.dependency_overrides[deps.get_chat_history_client] = lambda: FakeChatHistory()
    try:
        with TestClient(app) as client:
            response = client.get("/api/evi/chats/chat-1/transcript")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    payload = response.json()
    assert payload["chat_id"] == "chat-1"
    assert payload["total_messages"] == 1
    assert payload["messages"][0]["speaker"] == "user"
