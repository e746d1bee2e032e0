"""In-process loopback backend.

Sessions live in a registry owned by the backend instance.  Producers push
events with ``publish()`` and schema announcements with ``announce()``;
each session queues what its enabled providers accept and delivers it from
its ``process()`` call, in order, on the pump thread.

The decoder side reads the schema cache: an event published without a
provider name gets the name from the provider's cached manifest, if one has
been announced.

Thread Safety:
    Producers, pumps and ``dispose()`` may run on different threads.  The
    session registry and each session's provider table are locked; the
    delivery queue is a ``queue.SimpleQueue``.

"""

from __future__ import annotations

import dataclasses
import queue
import threading
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING

from etwstream.backends._base import CallbackSource, ProviderTable
from etwstream.events import ProviderManifest, TraceEvent
from etwstream.providers import KernelKeywords, TraceEventLevel
from etwstream.schema import SchemaCache, default_schema_cache

if TYPE_CHECKING:
    from etwstream.backends import TraceSession

_STOP = object()


@dataclasses.dataclass(frozen=True, slots=True)
class _Failure:
    error: Exception


class MemoryTraceSource(CallbackSource):
    """Delivers a memory session's queue to its callbacks."""

    def __init__(self, session: MemoryTraceSession, schema_cache: SchemaCache) -> None:
        super().__init__()
        self._session = session
        self._schema_cache = schema_cache
        self._stopped = False

    def process(self) -> None:
        """Deliver queued items until the session is disposed.

        Raises:
            Exception: Whatever was injected with ``MemoryTraceBackend.fail``,
                or whatever a callback raised.

        """
        while not self._stopped:
            item = self._session._queue.get()
            if item is _STOP:
                self._stopped = True
            elif isinstance(item, _Failure):
                raise item.error
            elif isinstance(item, ProviderManifest):
                self._deliver_manifest(item)
                self._deliver_event(item.as_event())
            else:
                self._deliver_event(self._decode(item))

    def _decode(self, event: TraceEvent) -> TraceEvent:
        if event.provider_name:
            return event
        manifest = self._schema_cache.get(event.provider_guid)
        if manifest is None:
            return event
        return dataclasses.replace(event, provider_name=manifest.provider_name)


class MemoryTraceSession:
    """A loopback session.  Created through ``MemoryTraceBackend.create_session``."""

    def __init__(self, backend: MemoryTraceBackend, name: str) -> None:
        self._backend = backend
        self._name = name
        self._queue: queue.SimpleQueue[object] = queue.SimpleQueue()
        self._providers = ProviderTable()
        self._disposed = False
        self._lock = threading.Lock()
        self._source = MemoryTraceSource(self, backend.schema_cache)

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> MemoryTraceSource:
        return self._source

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def enabled_providers(self) -> frozenset[uuid.UUID]:
        return self._providers.guids()

    def enable_provider(
        self,
        provider_guid: uuid.UUID,
        level: TraceEventLevel,
        match_any_keywords: int,
    ) -> None:
        known = self._backend.known_providers
        if known is not None and provider_guid not in known:
            msg = f"provider {provider_guid} is not registered"
            raise LookupError(msg)
        self._check_live()
        self._providers.enable(provider_guid, level, match_any_keywords)

    def enable_kernel_provider(
        self,
        flags: KernelKeywords,
        stack_capture: KernelKeywords,
    ) -> None:
        self._check_live()
        self._providers.enable_kernel(flags)

    def emit(self, event: TraceEvent) -> bool:
        """Queue *event* if the session is live and accepts it."""
        if self._disposed or not self._providers.accepts(event):
            return False
        self._queue.put(event)
        return True

    def announce(self, manifest: ProviderManifest) -> bool:
        """Queue a manifest announcement from an enabled provider."""
        if self._disposed or not self._providers.announces(manifest):
            return False
        self._queue.put(manifest)
        return True

    def fail(self, error: Exception) -> None:
        """Make the running ``process()`` call raise *error*."""
        self._queue.put(_Failure(error))

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self._queue.put(_STOP)
        self._backend._release(self._name)

    def _check_live(self) -> None:
        if self._disposed:
            msg = f"session {self._name!r} is disposed"
            raise RuntimeError(msg)


class MemoryTraceBackend:
    """Loopback backend with its own session registry.

    Args:
        known_providers: If given, enabling any other provider GUID fails.
        schema_cache: Cache the decoder reads provider names from.

    """

    def __init__(
        self,
        *,
        known_providers: Iterable[uuid.UUID] | None = None,
        schema_cache: SchemaCache | None = None,
    ) -> None:
        self.known_providers = frozenset(known_providers) if known_providers is not None else None
        self.schema_cache = schema_cache if schema_cache is not None else default_schema_cache()
        self._sessions: dict[str, MemoryTraceSession] = {}
        self._lock = threading.Lock()

    # ----- TraceBackend protocol -----

    def create_session(self, name: str) -> MemoryTraceSession:
        with self._lock:
            if name in self._sessions:
                msg = f"session {name!r} already exists"
                raise FileExistsError(msg)
            session = MemoryTraceSession(self, name)
            self._sessions[name] = session
            return session

    def active_session_names(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def get_active_session(self, name: str) -> TraceSession | None:
        with self._lock:
            return self._sessions.get(name)

    # ----- Producer side -----

    def publish(self, event: TraceEvent) -> int:
        """Offer *event* to every live session.  Returns how many queued it."""
        return sum(session.emit(event) for session in self._snapshot())

    def announce(self, manifest: ProviderManifest) -> int:
        """Announce a provider manifest to every session that enabled it."""
        return sum(session.announce(manifest) for session in self._snapshot())

    def fail(self, name: str, error: Exception) -> None:
        """Inject a processing failure into the named session."""
        with self._lock:
            session = self._sessions[name]
        session.fail(error)

    def _snapshot(self) -> tuple[MemoryTraceSession, ...]:
        with self._lock:
            return tuple(self._sessions.values())

    def _release(self, name: str) -> None:
        with self._lock:
            self._sessions.pop(name, None)


_default_backend: MemoryTraceBackend | None = None
_default_lock = threading.Lock()


def default_backend() -> MemoryTraceBackend:
    """The process-wide loopback backend."""
    global _default_backend  # noqa: PLW0603
    with _default_lock:
        if _default_backend is None:
            _default_backend = MemoryTraceBackend()
        return _default_backend
