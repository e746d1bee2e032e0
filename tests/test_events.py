"""Tests for etwstream.events — trace records and manifests."""

from __future__ import annotations

import uuid

import pytest

from etwstream.events import (
    MANIFEST_EVENT_ID,
    MANIFEST_EVENT_NAME,
    ProviderManifest,
    TraceEvent,
    is_manifest_event,
)
from etwstream.providers import TraceEventLevel

GUID = uuid.UUID("11111111-2222-3333-4444-555555555555")


class TestTraceEvent:
    """TraceEvent — frozen decoded record."""

    def test_frozen(self) -> None:
        event = TraceEvent(GUID, "Start", 1)
        with pytest.raises(AttributeError):
            event.event_id = 2  # type: ignore[misc]

    def test_payload_is_read_only_copy(self) -> None:
        source = {"x": 1}
        event = TraceEvent(GUID, "Start", 1, payload=source)
        source["x"] = 2
        assert event.payload["x"] == 1
        with pytest.raises(TypeError):
            event.payload["x"] = 3  # type: ignore[index]

    def test_equality_ignores_timestamp(self) -> None:
        a = TraceEvent(GUID, "Start", 1, timestamp_ns=1)
        b = TraceEvent(GUID, "Start", 1, timestamp_ns=2)
        assert a == b

    def test_to_dict(self) -> None:
        event = TraceEvent(GUID, "Start", 1, "Contoso", TraceEventLevel.ERROR, {"x": 1}, 42)
        assert event.to_dict() == {
            "provider_guid": str(GUID),
            "provider_name": "Contoso",
            "event_name": "Start",
            "event_id": 1,
            "level": "ERROR",
            "payload": {"x": 1},
            "timestamp_ns": 42,
        }


class TestManifestDetection:
    """is_manifest_event — schema bookkeeping records."""

    def test_by_name(self) -> None:
        assert is_manifest_event(TraceEvent(GUID, MANIFEST_EVENT_NAME, 7))

    def test_by_id(self) -> None:
        assert is_manifest_event(TraceEvent(GUID, "Other", MANIFEST_EVENT_ID))

    def test_user_event(self) -> None:
        event = TraceEvent(GUID, "Start", 1)
        assert not is_manifest_event(event)
        assert not event.is_manifest

    def test_manifest_as_event(self) -> None:
        manifest = ProviderManifest(GUID, "Contoso", "<manifest/>")
        event = manifest.as_event()
        assert event.is_manifest
        assert event.provider_guid == GUID
        assert event.payload["manifest"] == "<manifest/>"
