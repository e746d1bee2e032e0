"""Trace event model.

``TraceEvent`` is the decoded record a backend delivers on a session's raw
feed.  The bridge only ever looks at ``event_name``, ``event_id`` and
``provider_guid``; ``payload`` is opaque to it.

``ProviderManifest`` is a schema announcement.  Backends raise it on a
channel separate from the ordinary feed, and also deliver the underlying
``ManifestData`` record on the raw feed, where the bridge filters it out.

Thread Safety:
    Both types are frozen and safe to share across threads.

"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from etwstream.providers import TraceEventLevel

MANIFEST_EVENT_NAME = "ManifestData"
MANIFEST_EVENT_ID = 0xFFFE


@dataclass(frozen=True, slots=True)
class TraceEvent:
    """A decoded trace record.

    Attributes:
        provider_guid: GUID of the provider that emitted the event.
        event_name: Event name (``"Task/Opcode"`` style for manifest events).
        event_id: Numeric event ID.
        provider_name: Provider name, if the decoder resolved one.
        level: Level the event was written at.
        payload: Decoded payload fields.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    provider_guid: uuid.UUID
    event_name: str
    event_id: int
    provider_name: str = ""
    level: TraceEventLevel = TraceEventLevel.INFORMATIONAL
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    timestamp_ns: int = field(default_factory=time.monotonic_ns, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.payload, MappingProxyType):
            object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @property
    def is_manifest(self) -> bool:
        """True for schema-announcement records that never reach subscribers."""
        return is_manifest_event(self)

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form, suitable for JSON output."""
        return {
            "provider_guid": str(self.provider_guid),
            "provider_name": self.provider_name,
            "event_name": self.event_name,
            "event_id": self.event_id,
            "level": self.level.name,
            "payload": dict(self.payload),
            "timestamp_ns": self.timestamp_ns,
        }


@dataclass(frozen=True, slots=True)
class ProviderManifest:
    """Decode schema announced by a provider.

    Attributes:
        provider_guid: GUID of the announcing provider (cache key).
        provider_name: Provider name declared by the manifest.
        manifest: Schema text as announced.

    """

    provider_guid: uuid.UUID
    provider_name: str
    manifest: str = ""

    def as_event(self) -> TraceEvent:
        """The raw ``ManifestData`` record carrying this announcement."""
        return TraceEvent(
            provider_guid=self.provider_guid,
            event_name=MANIFEST_EVENT_NAME,
            event_id=MANIFEST_EVENT_ID,
            provider_name=self.provider_name,
            level=TraceEventLevel.ALWAYS,
            payload={"manifest": self.manifest},
        )


def is_manifest_event(event: TraceEvent) -> bool:
    """Whether *event* is internal schema bookkeeping rather than user data."""
    return event.event_name == MANIFEST_EVENT_NAME or event.event_id == MANIFEST_EVENT_ID
