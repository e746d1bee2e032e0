"""Processing worker — pumps one session on a dedicated thread.

The backend's ``process()`` call blocks for the session's whole lifetime,
so each session gets its own daemon thread rather than a pool thread.
When the pump returns or raises, the worker reports the outcome and then,
unconditionally, disposes the session and the manifest subscription.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from etwstream.disposables import empty

if TYPE_CHECKING:
    from etwstream.disposables import Disposable
    from etwstream.observability.collector import BridgeCollector
    from etwstream.reactive.session import SessionHandle

type ExitCallback = Callable[[Exception | None], None]


class ProcessingWorker:
    """Runs ``session.process()`` on a thread of its own.

    Args:
        session: Session to pump.  Borrowed for the duration of the pump.
        on_exit: Called on the pump thread with the pump's exception, or
            None on a clean return, before the session is disposed.
        manifest_subscription: Released together with the session.
        collector: Optional lifecycle event recorder.

    """

    def __init__(
        self,
        session: SessionHandle,
        *,
        on_exit: ExitCallback | None = None,
        manifest_subscription: Disposable | None = None,
        collector: BridgeCollector | None = None,
    ) -> None:
        self._session = session
        self._on_exit = on_exit
        self._manifest_subscription = manifest_subscription or empty()
        self._collector = collector
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def thread_name(self) -> str:
        return f"etwstream-pump:{self._session.name}"

    @property
    def is_started(self) -> bool:
        return self._thread is not None

    @property
    def is_running(self) -> bool:
        """Whether the pump thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the pump thread.  Returns False if it was already started."""
        with self._lock:
            if self._thread is not None:
                return False
            self._thread = threading.Thread(
                target=self._run,
                name=self.thread_name,
                daemon=True,
            )
        self._thread.start()
        if self._collector is not None:
            self._collector.record_worker_started(self._session.name, self.thread_name)
        return True

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the pump thread.  Returns True if it has finished."""
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        error: Exception | None = None
        started = time.perf_counter()
        try:
            try:
                self._session.process()
            except Exception as exc:
                error = exc
            if self._collector is not None:
                self._collector.record_worker_exited(
                    self._session.name,
                    error=error,
                    duration_ms=(time.perf_counter() - started) * 1000,
                )
            if self._on_exit is not None:
                self._on_exit(error)
        finally:
            self._session.dispose()
            self._manifest_subscription.dispose()
