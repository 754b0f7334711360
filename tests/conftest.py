"""Shared test fixtures."""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

import docksync.config as config_module
import docksync.main as main_module
import docksync.registry.models  # noqa: F401
from docksync.bluetooth.mock import MockBluetooth
from docksync.registry.manager import DeviceRegistry
from docksync.registry.store import DeviceStore, KeyValueStore


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created.

    StaticPool ensures every session uses the same connection,
    so the in-memory database is shared across the test.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def kv(engine) -> KeyValueStore:
    return KeyValueStore(engine)


@pytest.fixture
def store(kv) -> DeviceStore:
    return DeviceStore(kv)


@pytest.fixture
def adapter() -> MockBluetooth:
    """Mock adapter with no devices; tests add what they need."""
    return MockBluetooth(devices=[])


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 19, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(adapter, store, clock) -> DeviceRegistry:
    return DeviceRegistry(adapter, store, clock=clock)


@pytest.fixture
def client(engine, tmp_path, monkeypatch) -> Generator[TestClient, None, None]:
    """TestClient running the full lifespan against mock adapters."""
    monkeypatch.setattr(config_module, "_ENV_FILE", tmp_path / ".env")
    monkeypatch.setenv("DOCKSYNC_BACKEND", "mock")
    monkeypatch.setenv("DOCKSYNC_DISPLAY_SOURCE", "mock")
    monkeypatch.setenv("DOCKSYNC_REFRESH_INTERVAL", "3600")
    monkeypatch.setenv("DOCKSYNC_DISPLAY_POLL_INTERVAL", "3600")
    monkeypatch.setenv("DOCKSYNC_RETRY_DELAY", "0")
    monkeypatch.setenv("DOCKSYNC_SETTLE_DELAY", "0")
    # Reuse the in-memory engine instead of a file database
    monkeypatch.setattr(main_module, "create_db_engine", lambda _path: engine)

    with TestClient(main_module.app) as c:
        yield c
