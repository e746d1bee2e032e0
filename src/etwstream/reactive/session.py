"""Session handle — one tracing session's identity, providers and disposal.

Wraps a backend ``TraceSession``: names it uniquely, translates backend
failures into ``SessionCreateFailed``/``ProviderEnableFailed``, and makes
``dispose()`` idempotent and callable from any thread (the stream's
teardown and the pump worker's ``finally`` both call it).
"""

from __future__ import annotations

import threading
import uuid
from typing import TYPE_CHECKING, Self

from etwstream._errors import ProviderEnableFailed, SessionCreateFailed
from etwstream.disposables import Subscription
from etwstream.providers import KernelKeywords

if TYPE_CHECKING:
    from etwstream._types import EventCallback, ManifestCallback
    from etwstream.backends import TraceBackend, TraceSession, TraceSource
    from etwstream.observability.collector import BridgeCollector
    from etwstream.providers import ProviderSpec


def make_session_name(prefix: str) -> str:
    """A session name unique to this process run: ``<prefix>.<uuid4>``."""
    return f"{prefix}.{uuid.uuid4()}"


class SessionHandle:
    """Owns one backend session until ``dispose()``.

    Args:
        session: The backend session.
        collector: Optional lifecycle event recorder.

    """

    __slots__ = ("_collector", "_disposed", "_lock", "_session")

    def __init__(self, session: TraceSession, *, collector: BridgeCollector | None = None) -> None:
        self._session = session
        self._collector = collector
        self._disposed = False
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        backend: TraceBackend,
        prefix: str,
        *,
        collector: BridgeCollector | None = None,
    ) -> SessionHandle:
        """Create a freshly named session on *backend*.

        Raises:
            SessionCreateFailed: If the backend refuses the session.

        """
        name = make_session_name(prefix)
        try:
            session = backend.create_session(name)
        except Exception as exc:
            msg = f"could not create session {name!r}: {exc}"
            raise SessionCreateFailed(msg, session_name=name) from exc
        if collector is not None:
            collector.record_session_created(name, backend=type(backend).__name__)
        return cls(session, collector=collector)

    @property
    def name(self) -> str:
        return self._session.name

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def source(self) -> TraceSource:
        """The backend source, handed to typed parsers."""
        return self._session.source

    def enable_provider(self, spec: ProviderSpec) -> None:
        """Enable *spec* on the session.

        Raises:
            ProviderEnableFailed: Unknown provider, malformed GUID, backend
                conflict, or the session is already disposed.

        """
        self._check_live()
        try:
            guid = spec.guid
            self._session.enable_provider(guid, spec.level, spec.match_any_keywords)
        except Exception as exc:
            msg = f"could not enable provider {spec} on {self.name!r}: {exc}"
            raise ProviderEnableFailed(msg, session_name=self.name) from exc
        if self._collector is not None:
            self._collector.record_provider_enabled(self.name, str(guid), detail=spec.level.name)

    def enable_kernel_provider(
        self,
        flags: KernelKeywords,
        stack_capture: KernelKeywords = KernelKeywords.NONE,
    ) -> None:
        """Enable the kernel provider with *flags*.

        Raises:
            ProviderEnableFailed: If the backend rejects the flags.

        """
        self._check_live()
        try:
            self._session.enable_kernel_provider(flags, stack_capture)
        except Exception as exc:
            msg = f"could not enable kernel provider ({flags!r}) on {self.name!r}: {exc}"
            raise ProviderEnableFailed(msg, session_name=self.name) from exc
        if self._collector is not None:
            self._collector.record_provider_enabled(self.name, "kernel", detail=repr(flags))

    def add_event_callback(self, callback: EventCallback) -> Subscription:
        """Attach *callback* to the raw feed."""
        return Subscription(self._session.source.add_event_callback(callback))

    def add_manifest_callback(self, callback: ManifestCallback) -> Subscription:
        """Attach *callback* to the manifest-announcement channel."""
        return Subscription(self._session.source.add_manifest_callback(callback))

    def process(self) -> None:
        """Run the backend's blocking pump until the session stops."""
        self._session.source.process()

    def dispose(self) -> None:
        """Release the backend session.  Only the first call does anything."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self._session.dispose()
        if self._collector is not None:
            self._collector.record_session_disposed(self.name)

    def _check_live(self) -> None:
        if self._disposed:
            msg = f"session {self.name!r} is already disposed"
            raise ProviderEnableFailed(msg, session_name=self.name)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "live"
        return f"SessionHandle({self.name!r}, {state})"
