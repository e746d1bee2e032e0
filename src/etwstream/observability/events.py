"""Lifecycle event model for bridge observability.

Defines the events the bridge records while sessions, workers and streams
move through their lifecycles.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- ``session``: Name of the tracing session the event concerns

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionCreated:
    """A backend session was created.

    Attributes:
        session: Session name.
        backend: Backend class name.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session: str
    backend: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ProviderEnabled:
    """A provider (or kernel keyword set) was enabled on a session.

    Attributes:
        session: Session name.
        provider: Provider GUID, or ``"kernel"``.
        detail: Level name or kernel keyword flags.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session: str
    provider: str
    detail: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SessionDisposed:
    """A session was released.  Recorded once per session."""

    session: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Worker and stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WorkerStarted:
    """A processing worker thread began pumping a session.

    Attributes:
        session: Session name.
        thread_name: Name of the dedicated pump thread.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session: str
    thread_name: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class WorkerExited:
    """A processing worker's pump call returned or raised.

    Attributes:
        session: Session name.
        error: ``repr`` of the pump exception, or None on clean return.
        duration_ms: Time spent inside the pump.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session: str
    error: str | None
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class StreamStateChanged:
    """An EventStream moved between connection states."""

    session: str
    old: str
    new: str
    subscribers: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SchemaCached:
    """A provider manifest was written to the schema cache."""

    session: str
    provider_guid: str
    provider_name: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type BridgeEvent = (
    SessionCreated
    | ProviderEnabled
    | SessionDisposed
    | WorkerStarted
    | WorkerExited
    | StreamStateChanged
    | SchemaCached
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
