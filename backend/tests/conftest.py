"""Shared test fixtures and configuration for backend tests."""
import asyncio
from typing import Any, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from chatapp.config import (
    AppConfig,
    DatabaseSettings,
    RealtimeSettings,
    reset_config,
    set_config,
)
from chatapp.main import app
from chatapp.messages import MessageStore
from chatapp.presence import InMemoryPresenceRegistry
from chatapp.realtime import ConnectionHub, ConnectionLifecycle, TypingCoordinator


class FakeWebSocket:
    """Stand-in for a server-side WebSocket that records what it was sent."""

    def __init__(self, fail: bool = False, stall_on: Iterable[str] = ()) -> None:
        self.accepted = False
        self.fail = fail
        # Event types whose send never completes, like a client that stopped reading.
        self.stall_on = set(stall_on)
        self.sent: List[dict] = []
        self.closed = False
        self.close_code: Optional[int] = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail or self.closed:
            raise RuntimeError("socket is closed")
        if data["type"] in self.stall_on:
            await asyncio.sleep(3600)
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_code = code

    def events(self, event_type: Optional[str] = None) -> List[dict]:
        if event_type is None:
            return list(self.sent)
        return [frame for frame in self.sent if frame["type"] == event_type]

    def last(self, event_type: str) -> dict:
        frames = self.events(event_type)
        assert frames, f"no {event_type} frame was sent"
        return frames[-1]["data"]


@pytest.fixture
def fake_ws():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def registry():
    return InMemoryPresenceRegistry()


@pytest.fixture
def hub(registry):
    return ConnectionHub(registry, send_timeout=1.0)


@pytest.fixture
def typing_coordinator(hub):
    return TypingCoordinator(hub, ttl=0.05)


@pytest.fixture
def lifecycle(hub, registry, typing_coordinator):
    return ConnectionLifecycle(hub, registry, typing_coordinator)


@pytest.fixture
def store():
    """A MessageStore on a fresh in-memory DuckDB."""
    s = MessageStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def test_config():
    """In-memory database and a short typing TTL for app-level tests."""
    config = AppConfig(
        database=DatabaseSettings(path=":memory:"),
        realtime=RealtimeSettings(typing_ttl_seconds=0.2, send_timeout_seconds=1.0),
    )
    set_config(config)
    yield config
    reset_config()


@pytest.fixture
def api_client(test_config):
    """Provide a TestClient with the application lifespan running.

    Entering the client runs startup, so every test gets a fresh registry,
    hub and message store.
    """
    with TestClient(app) as client:
        yield client
