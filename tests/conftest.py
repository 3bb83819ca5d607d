"""
Pytest configuration for pairing service tests: shared fakes and fixtures.

The gateway fakes replay scripted frames; HTTP collaborators are exercised
through httpx.MockTransport so no test touches the network.
"""

import asyncio
import json
import sys
from typing import Any

import httpx
import pytest

from pairing_service.config.settings import Settings
from pairing_service.core.types import WorkerName

TEST_API_KEY = "test-api-key-9f8e7d6c5b4a"

# =============================================================================
# GATEWAY FAKES
# =============================================================================


class ScriptedConnection:
    """Replays frames in order, recording what the session sends.

    With hang=True the connection stays open after the script ends, so only
    the watchdog can finish the session.
    """

    def __init__(self, script: list[Any], hang: bool = False) -> None:
        self.script = script
        self.hang = hang
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0

    async def frames(self):
        for item in self.script:
            yield item if isinstance(item, str) else json.dumps(item)
        if self.hang:
            await asyncio.Event().wait()

    async def send_json(self, data: dict[str, Any]) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.close_calls += 1


class FakeConnector:
    """Hands out a fresh connection per connect() call, or raises."""

    def __init__(self, make_connection=None, error: BaseException | None = None) -> None:
        self._make_connection = make_connection
        self._error = error
        self.urls: list[str] = []
        self.connections: list[ScriptedConnection] = []

    async def connect(self, url: str) -> ScriptedConnection:
        self.urls.append(url)
        if self._error is not None:
            raise self._error
        conn = self._make_connection()
        self.connections.append(conn)
        return conn


def approve_script(payload: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """Frames of a worker that accepts connect (id 1) and approve (id 2)."""
    return [
        {"type": "challenge"},
        {"type": "res", "id": 1, "ok": True, "payload": {"protocol": 3}},
        {"type": "res", "id": 2, "ok": True, "payload": payload or {"paired": True}},
    ]


# =============================================================================
# HTTP FAKES
# =============================================================================


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays a response."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def calls(self) -> int:
        return len(self.requests)

    def json_bodies(self) -> list[Any]:
        return [json.loads(r.content) for r in self.requests]


def directory_response(name: str = "worker-telegram-bot", service_id: str = "svc1") -> httpx.Response:
    return httpx.Response(200, json={"data": {"service": {"id": service_id, "name": name}}})


# =============================================================================
# SHARED FIXTURES
# =============================================================================


@pytest.fixture
def worker() -> WorkerName:
    return WorkerName(
        service_id="svc1",
        name="worker-telegram-bot",
        host="worker-telegram-bot.railway.internal",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_key=TEST_API_KEY,
        directory={"token": "rw-test-token-1234567"},
        gateway={"watchdog_seconds": 0.05},
        orchestrator={"backoff_seconds": 0},
    )


@pytest.fixture
def scripted_connection():
    return ScriptedConnection


@pytest.fixture
def fake_connector():
    return FakeConnector


@pytest.fixture
def recording_handler():
    return RecordingHandler


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable Settings.from_env() could pick up."""
    import os

    for name in list(os.environ):
        if name.startswith("PAIRING_SERVICE_") or name.startswith("RAILWAY_") or name.startswith("TARGET_RAILWAY_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("PORT", raising=False)
    return monkeypatch


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Validate test environment and configure pytest with custom markers."""
    missing = []
    for mod in ("httpx", "aiohttp", "fastapi", "pydantic_settings", "pytest_asyncio"):
        try:
            __import__(mod)
        except ImportError:
            missing.append(mod)

    if missing:
        print(
            "\n"
            + "=" * 70 + "\n"
            " TEST ENVIRONMENT ERROR\n"
            + "=" * 70 + "\n"
            f"\n Missing dependencies: {', '.join(missing)}\n"
            "\n Run: pip install -e '.[dev]'\n"
            + "=" * 70,
            file=sys.stderr,
        )
        raise SystemExit(1)

    config.addinivalue_line(
        "markers", "unit: Fast unit tests with no external dependencies"
    )
    config.addinivalue_line(
        "markers", "integration: Tests wiring the full pipeline through the HTTP interface"
    )
