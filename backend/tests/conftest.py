"""
Shared test fixtures and configuration.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOCAL_STORAGE_PATH", "/tmp/aivan_test_data")
os.environ.setdefault("LOCAL_SESSION_PATH", "/tmp/aivan_test_data/device/local_storage.json")

from aivan.storage import LocalStorage  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakePipeline:
    """Stands in for ResponseEnrichmentPipeline in controller and API tests."""

    def __init__(self, reply: str = "Model reply", error: Exception = None, gate: asyncio.Event = None):
        self.reply = reply
        self.error = error
        self.gate = gate
        self.started = asyncio.Event()
        self.calls = []

    async def respond(self, history, text, attachments=None):
        self.calls.append((list(history), text, list(attachments or [])))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return LocalStorage(str(tmp_path / "store"))
