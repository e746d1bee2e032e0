"""EventStream — the ref-counted multicast handle over one tracing session.

An ``EventStream`` is hot: it is built around a session whose pump may
already be running.  Events are only forwarded while at least one observer
is attached.

Connection state machine::

    CONNECTING ──setup ok──> UNCONNECTED ──1st subscribe──> CONNECTED
        │                        │                              │
        │ setup failed           │ pump exit / dispose()        │ last unsubscribe,
        v                        v                              v pump exit, dispose()
    DISPOSED <────────────── DRAINING <─────────────────────────┘

- The 0→1 and 1→0 subscriber transitions happen under one lock, so racing
  subscribes/unsubscribes connect and tear down exactly once.
- Teardown detaches the raw feed, then disposes the session and releases
  the manifest subscription, whether or not the worker ever ran.
- A pump failure is delivered to every current observer as the same
  ``ProcessingFailed`` instance.
- Subscribing to a DRAINING or DISPOSED stream replays the terminal signal.

Thread Safety:
    ``subscribe``, ``Subscription.dispose`` and ``dispose`` may be called
    from any thread.  Observers are called outside the state lock, in source
    order, and never concurrently: ``dispose()`` from another thread waits
    for an in-flight ``on_next`` before completing observers.

"""

from __future__ import annotations

import enum
import itertools
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from etwstream._errors import ProcessingFailed
from etwstream.disposables import Subscription, empty
from etwstream.reactive.observable import Observable
from etwstream.reactive.worker import ProcessingWorker

if TYPE_CHECKING:
    from etwstream.disposables import Disposable
    from etwstream.events import TraceEvent
    from etwstream.observability.collector import BridgeCollector
    from etwstream.reactive.observable import Observer
    from etwstream.reactive.session import SessionHandle

# Maps a raw event to the value observers receive; None drops the event.
type Selector[T] = Callable[[TraceEvent], T | None]


class StreamState(enum.Enum):
    """Connection state of an EventStream."""

    CONNECTING = "connecting"
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    DRAINING = "draining"
    DISPOSED = "disposed"


_TERMINAL = frozenset({StreamState.DRAINING, StreamState.DISPOSED})


class EventStream[T](Observable[T]):
    """Shared stream of one session's events.

    Built by the ``etwstream.listener`` factories; not meant to be
    constructed directly.

    Args:
        session: The session this stream exclusively owns.
        select: Filters and converts raw events.
        collector: Optional lifecycle event recorder.

    """

    def __init__(
        self,
        session: SessionHandle,
        select: Selector[T],
        *,
        collector: BridgeCollector | None = None,
    ) -> None:
        self._session = session
        self._select = select
        self._collector = collector
        self._lock = threading.Lock()
        # Held while calling observers so a terminal signal from another
        # thread waits for an in-flight on_next.
        self._delivery = threading.RLock()
        self._observers: dict[int, Observer[T]] = {}
        self._keys = itertools.count()
        self._state = StreamState.CONNECTING
        self._feed: Subscription | None = None
        self._worker: ProcessingWorker | None = None
        self._manifest_subscription: Disposable | None = None
        self._error: ProcessingFailed | None = None
        self._disposed = threading.Event()

    # ----- Introspection -----

    @property
    def session_name(self) -> str:
        return self._session.name

    @property
    def state(self) -> StreamState:
        with self._lock:
            return self._state

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._observers)

    @property
    def error(self) -> ProcessingFailed | None:
        """The pump failure that ended the stream, if any."""
        return self._error

    @property
    def worker(self) -> ProcessingWorker | None:
        return self._worker

    @property
    def is_disposed(self) -> bool:
        return self._disposed.is_set()

    def wait_disposed(self, timeout: float | None = None) -> bool:
        """Block until the stream reaches DISPOSED."""
        return self._disposed.wait(timeout)

    # ----- Setup (called by the listener factories) -----

    def schedule(self, manifest_subscription: Disposable | None = None, *, eager: bool = True) -> None:
        """Attach the processing worker and leave CONNECTING.

        With *eager* the worker starts pumping now; otherwise the first
        subscriber starts it.
        """
        worker = ProcessingWorker(
            self._session,
            on_exit=self._on_pump_exit,
            manifest_subscription=manifest_subscription,
            collector=self._collector,
        )
        with self._lock:
            if self._state is not StreamState.CONNECTING:
                msg = f"stream for {self.session_name!r} is already scheduled"
                raise RuntimeError(msg)
            self._worker = worker
            self._manifest_subscription = manifest_subscription
            self._set_state(StreamState.UNCONNECTED)
        if eager:
            worker.start()

    # ----- Observable -----

    def _subscribe_core(self, observer: Observer[T]) -> Subscription:
        with self._lock:
            state = self._state
            if state is StreamState.CONNECTING:
                msg = f"stream for {self.session_name!r} is still being set up"
                raise RuntimeError(msg)
            if state not in _TERMINAL:
                key = next(self._keys)
                self._observers[key] = observer
                if state is StreamState.UNCONNECTED:
                    self._feed = self._session.add_event_callback(self._on_event)
                    self._set_state(StreamState.CONNECTED)
                worker = self._worker

        if state in _TERMINAL:
            if self._error is not None:
                observer.on_error(self._error)
            else:
                observer.on_completed()
            return empty()

        if state is StreamState.UNCONNECTED and worker is not None:
            worker.start()
        return Subscription(lambda: self._unsubscribe(key))

    def _unsubscribe(self, key: int) -> None:
        with self._lock:
            if self._observers.pop(key, None) is None:
                return
            if self._observers or self._state is not StreamState.CONNECTED:
                return
            self._set_state(StreamState.DRAINING)
        self._teardown()

    # ----- Teardown -----

    def dispose(self) -> None:
        """Tear the stream down now, completing every attached observer.

        Idempotent.  Disposing a stream that never left CONNECTING moves it
        straight to DISPOSED.
        """
        with self._lock:
            state = self._state
            if state in _TERMINAL:
                return
            observers = tuple(self._observers.values())
            self._observers.clear()
            if state is StreamState.CONNECTING:
                self._set_state(StreamState.DISPOSED)
            else:
                self._set_state(StreamState.DRAINING)

        if state is StreamState.CONNECTING:
            try:
                self._session.dispose()
            finally:
                self._disposed.set()
            return

        try:
            self._signal_terminal(observers, None)
        finally:
            self._teardown()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the pump thread to finish.  True if it has."""
        worker = self._worker
        return worker.join(timeout) if worker is not None else True

    def _on_event(self, raw: TraceEvent) -> None:
        value = self._select(raw)
        if value is None:
            return
        with self._delivery:
            with self._lock:
                observers = tuple(self._observers.values())
            for observer in observers:
                observer.on_next(value)

    def _on_pump_exit(self, error: Exception | None) -> None:
        failure: ProcessingFailed | None = None
        if error is not None:
            msg = f"session {self.session_name!r} failed while processing events: {error}"
            failure = ProcessingFailed(msg, session_name=self.session_name)
            failure.__cause__ = error

        with self._lock:
            if self._state in _TERMINAL:
                return
            self._error = failure
            observers = tuple(self._observers.values())
            self._observers.clear()
            self._set_state(StreamState.DRAINING)

        try:
            self._signal_terminal(observers, failure)
        finally:
            self._teardown()

    def _signal_terminal(
        self,
        observers: tuple[Observer[T], ...],
        failure: ProcessingFailed | None,
    ) -> None:
        with self._delivery:
            for observer in observers:
                if failure is not None:
                    observer.on_error(failure)
                else:
                    observer.on_completed()

    def _teardown(self) -> None:
        with self._lock:
            feed, self._feed = self._feed, None
            manifest_subscription = self._manifest_subscription
        try:
            if feed is not None:
                feed.dispose()
            self._session.dispose()
            if manifest_subscription is not None:
                manifest_subscription.dispose()
        finally:
            with self._lock:
                self._set_state(StreamState.DISPOSED)
            self._disposed.set()

    def _set_state(self, new: StreamState) -> None:
        old, self._state = self._state, new
        if self._collector is not None and old is not new:
            self._collector.record_state_change(
                self.session_name,
                old.value,
                new.value,
                subscribers=len(self._observers),
            )

    def __repr__(self) -> str:
        return (
            f"EventStream({self.session_name!r}, state={self._state.value}, "
            f"subscribers={len(self._observers)})"
        )
