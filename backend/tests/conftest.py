"""Shared test fixtures and configuration for backend tests."""
import asyncio
from typing import Any, List

import pytest
from fastapi.testclient import TestClient

from chathub.chat.hub import ChatHub, set_hub
from chathub.config import reset_config
from chathub.files.service import FileStorageService
from chathub.main import app


class RecordingChannel:
    """Stand-in for a WebSocket that records every envelope sent to it."""

    def __init__(self) -> None:
        self.sent: List[dict] = []

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def events(self) -> List[str]:
        return [item["event"] for item in self.sent]

    def of(self, event: str) -> List[Any]:
        """Payloads of every ``event`` received, in order."""
        return [item["data"] for item in self.sent if item["event"] == event]

    def last(self, event: str) -> Any:
        payloads = self.of(event)
        assert payloads, f"no {event!r} received (got {self.events()})"
        return payloads[-1]

    def clear(self) -> None:
        self.sent.clear()


class SlowChannel(RecordingChannel):
    """Channel whose earlier sends finish later than its later ones.

    Each send yields to the event loop a decreasing number of times before
    recording, so two fan-outs that overlap arrive out of order.
    """

    def __init__(self, max_delay: int = 30) -> None:
        super().__init__()
        self.max_delay = max_delay
        self._started = 0

    async def send_json(self, data: Any) -> None:
        delay = max(0, self.max_delay - self._started)
        self._started += 1
        for _ in range(delay):
            await asyncio.sleep(0)
        self.sent.append(data)

    def clear(self) -> None:
        super().clear()
        self._started = 0


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temp file: uploads in tmp_path, in-memory DuckDB.

    Also resets the process-wide hub, config and storage singletons so no
    state leaks between tests.
    """
    settings_file = tmp_path / "chathub.settings.yaml"
    settings_file.write_text(
        "uploads:\n"
        f"  upload_dir: '{tmp_path / 'uploads'}'\n"
        "  db_path: ':memory:'\n"
        "  max_file_size_bytes: 1024\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CHATHUB_SETTINGS", str(settings_file))
    reset_config()
    FileStorageService.reset_instance()
    set_hub(None)
    yield
    set_hub(None)
    FileStorageService.reset_instance()
    reset_config()


@pytest.fixture
def hub():
    """A fresh hub with default limits."""
    return ChatHub()


@pytest.fixture
def api_client():
    """TestClient with lifespan running, so every WebSocket shares one event loop."""
    with TestClient(app) as client:
        yield client
