"""Bridge observability — lifecycle events for sessions, workers and streams.

Records:
- **Sessions**: creation, provider enablement, disposal
- **Workers**: pump start and exit (with the pump error, if any)
- **Streams**: connection state transitions, schema cache writes

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from multiple pump threads.

Quick Start:
    >>> from etwstream.observability import BridgeCollector
    >>> collector = BridgeCollector()
    >>> # etwstream.from_trace_event("MyEventSource", collector=collector)
    >>> # collector.log.query(event_type=SessionDisposed)

"""

from etwstream.observability.collector import BridgeCollector
from etwstream.observability.events import (
    BridgeEvent,
    ProviderEnabled,
    SchemaCached,
    SessionCreated,
    SessionDisposed,
    StreamStateChanged,
    WorkerExited,
    WorkerStarted,
    now_ns,
)
from etwstream.observability.log import EventLog

__all__ = [
    "BridgeCollector",
    "BridgeEvent",
    "EventLog",
    "ProviderEnabled",
    "SchemaCached",
    "SessionCreated",
    "SessionDisposed",
    "StreamStateChanged",
    "WorkerExited",
    "WorkerStarted",
    "now_ns",
]
