from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from config.settings import Settings  # noqa: E402
from evi.errors import SendError  # noqa: E402

_CLOSED = object()


class FakeConnection:
    """In-memory stand-in for an EVI websocket."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.close_calls = 0
        self._open = True
        self._inbound: asyncio.Queue = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def sent_messages(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    async def send(self, frame: str) -> None:
        if not self._open:
            raise SendError("connection is not open")
        self.sent.append(frame)

    def feed(self, frame) -> None:
        """Queue an inbound frame. Dicts are JSON-encoded, strings pass through."""

        self._inbound.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def fail(self, exc: Exception) -> None:
        self._inbound.put_nowait(exc)

    def peer_close(self) -> None:
        self._inbound.put_nowait(_CLOSED)

    async def frames(self):
        while True:
            item = await self._inbound.get()
            if item is _CLOSED:
                self._open = False
                return
            if isinstance(item, Exception):
                self._open = False
                raise item
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        if self._open:
            self._open = False
            self._inbound.put_nowait(_CLOSED)


class FakeTransport:
    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.connect_calls: list[dict] = []
        self.fail_with: Exception | None = None
        self.delay: float = 0.0
        self.greeting: list[dict] = []

    async def connect(self, endpoint, credentials, *, verbose_transcription=True):
        self.connect_calls.append(
            {
                "endpoint": endpoint,
                "credentials": credentials,
                "verbose_transcription": verbose_transcription,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        connection = FakeConnection()
        for frame in self.greeting:
            connection.feed(frame)
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


async def settle(rounds: int = 20) -> None:
    """Let reader tasks drain whatever has been fed to them."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def evi_settings() -> Settings:
    return Settings(
        _env_file=None,
        hume_api_key="test-api-key",
        hume_config_id="cfg-123",
        hume_probe_timeout_seconds=0.2,
        evi_initialize_on_startup=False,
    )


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def service(evi_settings, transport):
    from evi.service import EVIService

    return EVIService(evi_settings, transport=transport)


@pytest.fixture()
def ready_service(service):
    asyncio.run(service.initialize())
    return service


@pytest.fixture(scope="session")
def app():
    # Must be set before the app module reads settings.
    os.environ["EVI_INITIALIZE_ON_STARTUP"] = "false"
    os.environ["HUME_API_KEY"] = "test-api-key"

    import importlib

    from config.settings import get_settings

    get_settings.cache_clear()
    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app, ready_service):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_evi_service] = lambda: ready_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()

