"""Shared fixtures for the keyguard test suite."""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from keyguard.bindings.store import JSONBindingStore
from keyguard.config.settings import get_settings
from keyguard.logging.audit import JSONFormatter, get_audit_logger

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock) -> JSONBindingStore:
    """In-memory binding store sharing the fake clock."""
    return JSONBindingStore(None, clock=clock)


@pytest.fixture
def bindings_json_file(tmp_path):
    """Create a temp device_bindings.json with one active and one banned key."""
    data = {
        "bindings": {
            "key-active-0001": {
                "device_id": "10.0.0.1",
                "type": "ip",
                "first_seen": "2026-01-01T10:00:00+00:00",
                "last_seen": "2026-01-01T11:00:00+00:00",
                "last_ip": "10.0.0.1",
                "banned": False,
                "ban_reason": "",
                "banned_at": None,
            },
            "key-banned-0002": {
                "device_id": "laptop-42",
                "type": "client_id",
                "first_seen": "2026-01-01T10:00:00+00:00",
                "last_seen": "2026-01-01T10:30:00+00:00",
                "last_ip": "10.0.0.2",
                "banned": True,
                "ban_reason": "Concurrent usage detected: different IP within 3.0s",
                "banned_at": "2026-01-01T10:30:03+00:00",
            },
        }
    }
    path = tmp_path / "device_bindings.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(DEVICE_BINDING_ENABLED="true", MANAGEMENT_KEY="mgmt")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def audit_lines():
    """Capture audit log output as formatted JSON strings."""
    logger = get_audit_logger()
    handler = _ListHandler()
    previous_level = logger.level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    formatter = JSONFormatter()

    def _lines() -> list[str]:
        return [formatter.format(r) for r in handler.records]

    yield _lines

    logger.removeHandler(handler)
    logger.setLevel(previous_level)
