"""Bridge collector — records session, worker and stream lifecycle events.

Every bridge component accepts an optional collector.  When one is given,
lifecycle transitions are appended to its ``EventLog``.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe for concurrent use from many pump threads.

"""

from __future__ import annotations

from typing import Any

from etwstream.observability.events import (
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


class BridgeCollector:
    """Lifecycle event recorder for the session-to-stream bridge.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    def record(self, event: Any) -> None:
        """Record an already-built event."""
        self._log.append(event)

    # ----- Session events -----

    def record_session_created(self, session: str, *, backend: str = "") -> None:
        self._log.append(SessionCreated(session=session, backend=backend, timestamp_ns=now_ns()))

    def record_provider_enabled(self, session: str, provider: str, *, detail: str = "") -> None:
        self._log.append(
            ProviderEnabled(
                session=session,
                provider=provider,
                detail=detail,
                timestamp_ns=now_ns(),
            )
        )

    def record_session_disposed(self, session: str) -> None:
        self._log.append(SessionDisposed(session=session, timestamp_ns=now_ns()))

    # ----- Worker events -----

    def record_worker_started(self, session: str, thread_name: str) -> None:
        self._log.append(
            WorkerStarted(session=session, thread_name=thread_name, timestamp_ns=now_ns())
        )

    def record_worker_exited(
        self,
        session: str,
        *,
        error: BaseException | None = None,
        duration_ms: float = 0.0,
    ) -> None:
        """Record the end of a pump call, clean or failed."""
        self._log.append(
            WorkerExited(
                session=session,
                error=repr(error) if error is not None else None,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Stream events -----

    def record_state_change(
        self,
        session: str,
        old: str,
        new: str,
        *,
        subscribers: int = 0,
    ) -> None:
        self._log.append(
            StreamStateChanged(
                session=session,
                old=old,
                new=new,
                subscribers=subscribers,
                timestamp_ns=now_ns(),
            )
        )

    def record_schema_cached(
        self,
        session: str,
        provider_guid: str,
        *,
        provider_name: str = "",
    ) -> None:
        self._log.append(
            SchemaCached(
                session=session,
                provider_guid=provider_guid,
                provider_name=provider_name,
                timestamp_ns=now_ns(),
            )
        )
