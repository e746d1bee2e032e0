"""Host service — process-wide cancellation and subscription ownership.

A long-running host (a daemon, a worker process, the ``etwstream watch``
command) holds one ``EtwStreamService``.  Streams are wired to its
``terminate_token`` and their subscriptions are added to its ``container``;
``complete_service()`` then cancels the token and releases every
subscription in one step::

    service = etwstream.get_service()
    stream = etwstream.from_trace_event("MyEventSource")
    sub = stream.take_until(service.terminate_token).subscribe(print)
    service.container.add(sub)
    ...
    etwstream.complete_service()

The service is created lazily on first access and replaced by the next
``get_service()`` call after it has been completed.
"""

from __future__ import annotations

import threading

from etwstream.cancellation import CancellationToken, CancellationTokenSource
from etwstream.disposables import SubscriptionContainer


class EtwStreamService:
    """A terminate token and a subscription container with one shutdown."""

    __slots__ = ("_completed", "_container", "_lock", "_terminate")

    def __init__(self) -> None:
        self._terminate = CancellationTokenSource()
        self._container = SubscriptionContainer()
        self._completed = False
        self._lock = threading.Lock()

    @property
    def terminate_token(self) -> CancellationToken:
        return self._terminate.token

    @property
    def container(self) -> SubscriptionContainer:
        return self._container

    @property
    def is_completed(self) -> bool:
        return self._completed

    def complete(self) -> None:
        """Cancel the terminate token, then dispose the container.  Idempotent."""
        with self._lock:
            if self._completed:
                return
            self._completed = True
        try:
            self._terminate.cancel()
        finally:
            self._container.dispose()

    def __repr__(self) -> str:
        state = "completed" if self._completed else "running"
        return f"EtwStreamService({state}, subscriptions={len(self._container)})"


_service: EtwStreamService | None = None
_service_lock = threading.Lock()


def get_service() -> EtwStreamService:
    """The current process-wide service, created on first use."""
    global _service  # noqa: PLW0603
    with _service_lock:
        if _service is None or _service.is_completed:
            _service = EtwStreamService()
        return _service


def complete_service() -> None:
    """Complete the current service, if one was ever created."""
    with _service_lock:
        service = _service
    if service is not None:
        service.complete()
