"""Cancellation tokens.

A ``CancellationTokenSource`` owns the right to cancel; the
``CancellationToken`` it hands out lets any number of consumers observe
that cancellation.  Cancelling is idempotent: registered callbacks run
exactly once, on the thread that first calls ``cancel()``.

The core never times out on its own.  A caller who wants a deadline uses
``cancel_after`` on its own source.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from etwstream.disposables import Subscription, empty


class CancellationToken:
    """Observer side of a cancellation source."""

    __slots__ = ("_source",)

    def __init__(self, source: CancellationTokenSource | None) -> None:
        self._source = source

    @classmethod
    def none(cls) -> CancellationToken:
        """A token that is never cancelled."""
        return cls(None)

    @property
    def is_cancellation_requested(self) -> bool:
        return self._source is not None and self._source.is_cancelled

    @property
    def can_be_cancelled(self) -> bool:
        return self._source is not None

    def register(self, callback: Callable[[], None]) -> Subscription:
        """Run *callback* on cancellation.

        If the token is already cancelled the callback runs immediately on
        the calling thread.  Disposing the returned subscription
        unregisters a callback that has not run yet.
        """
        if self._source is None:
            return empty()
        return self._source._register(callback)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled.  Returns False if *timeout* expired first."""
        if self._source is None:
            if timeout is not None:
                threading.Event().wait(timeout)
            return False
        return self._source._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancellation_requested})"


class CancellationTokenSource:
    """Issues a token and cancels it at most once."""

    __slots__ = ("_callbacks", "_event", "_lock", "_next_id", "_timer")

    def __init__(self) -> None:
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._next_id = 0
        self._timer: threading.Timer | None = None

    @property
    def token(self) -> CancellationToken:
        return CancellationToken(self)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation.  Only the first call runs callbacks."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for callback in callbacks:
            callback()

    def cancel_after(self, delay: float) -> None:
        """Cancel once *delay* seconds have elapsed."""
        timer = threading.Timer(delay, self.cancel)
        timer.daemon = True
        with self._lock:
            if self._event.is_set():
                return
            previous, self._timer = self._timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _register(self, callback: Callable[[], None]) -> Subscription:
        with self._lock:
            if not self._event.is_set():
                key = self._next_id
                self._next_id += 1
                self._callbacks[key] = callback
                return Subscription(lambda: self._unregister(key))
        callback()
        return empty()

    def _unregister(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)
