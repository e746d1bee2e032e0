"""Shared test fixtures for etwstream."""

from __future__ import annotations

import threading
import time
import uuid
from pathlib import Path
from typing import Any

import pytest

from etwstream.backends.memory import MemoryTraceBackend
from etwstream.config import EtwStreamConfig
from etwstream.events import TraceEvent
from etwstream.observability.collector import BridgeCollector
from etwstream.providers import TraceEventLevel, guid_from_eventsource_name
from etwstream.schema import SchemaCache

PROVIDER = "Contoso-Orders"
PROVIDER_GUID = guid_from_eventsource_name(PROVIDER)


@pytest.fixture
def schema_cache() -> SchemaCache:
    return SchemaCache()


@pytest.fixture
def backend(schema_cache: SchemaCache) -> MemoryTraceBackend:
    """A loopback backend with its own session registry."""
    return MemoryTraceBackend(schema_cache=schema_cache)


@pytest.fixture
def collector() -> BridgeCollector:
    return BridgeCollector()


@pytest.fixture
def config(tmp_path: Path) -> EtwStreamConfig:
    return EtwStreamConfig(root=tmp_path)


def make_event(
    event_name: str = "OrderPlaced",
    event_id: int = 1,
    *,
    provider_guid: uuid.UUID = PROVIDER_GUID,
    level: TraceEventLevel = TraceEventLevel.INFORMATIONAL,
    **payload: Any,
) -> TraceEvent:
    """Create a test TraceEvent."""
    return TraceEvent(
        provider_guid=provider_guid,
        event_name=event_name,
        event_id=event_id,
        level=level,
        payload=payload,
    )


class Recorder:
    """Observer that records every signal and lets tests wait for them."""

    def __init__(self) -> None:
        self.values: list[Any] = []
        self.errors: list[BaseException] = []
        self.completed = 0
        self._cond = threading.Condition()

    def on_next(self, value: Any) -> None:
        with self._cond:
            self.values.append(value)
            self._cond.notify_all()

    def on_error(self, error: BaseException) -> None:
        with self._cond:
            self.errors.append(error)
            self._cond.notify_all()

    def on_completed(self) -> None:
        with self._cond:
            self.completed += 1
            self._cond.notify_all()

    @property
    def terminated(self) -> bool:
        return bool(self.errors) or self.completed > 0

    def wait_for(self, count: int, timeout: float = 2.0) -> bool:
        """Block until at least *count* values arrived."""
        with self._cond:
            return self._cond.wait_for(lambda: len(self.values) >= count, timeout)

    def wait_terminated(self, timeout: float = 2.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self.terminated, timeout)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


def wait_until(predicate: Any, timeout: float = 2.0) -> bool:
    """Poll *predicate* until it is truthy or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return bool(predicate())
