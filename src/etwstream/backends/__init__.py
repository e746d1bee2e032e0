"""Tracing backends — the collaborator the bridge drives.

A backend creates named sessions and enumerates the ones still active.  A
session enables providers and exposes a source; the source delivers
decoded events and manifest announcements to registered callbacks,
synchronously, from inside its blocking ``process()`` call.

The bridge relies on two backend guarantees:

- ``TraceSession.dispose()`` is safe to call any number of times, from any
  thread.
- ``TraceSource.process()`` returns only after the session is disposed (or
  stopped by the backend), or raises.

Built-in backends:

    memory      In-process loopback; producers call ``publish()``/``announce()``
    file        Tails a JSON-lines event file using watchfiles

"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from etwstream._errors import UnknownBackendError

if TYPE_CHECKING:
    from etwstream._types import EventCallback, ManifestCallback, Unregister
    from etwstream.config import EtwStreamConfig
    from etwstream.providers import KernelKeywords, TraceEventLevel


class TraceSource(Protocol):
    """Event delivery side of a session."""

    def add_event_callback(self, callback: EventCallback) -> Unregister: ...

    def add_manifest_callback(self, callback: ManifestCallback) -> Unregister: ...

    def process(self) -> None:
        """Pump events to callbacks until the session is disposed."""
        ...


class TraceSession(Protocol):
    """A named realtime tracing session."""

    @property
    def name(self) -> str: ...

    @property
    def source(self) -> TraceSource: ...

    def enable_provider(
        self,
        provider_guid: uuid.UUID,
        level: TraceEventLevel,
        match_any_keywords: int,
    ) -> None: ...

    def enable_kernel_provider(
        self,
        flags: KernelKeywords,
        stack_capture: KernelKeywords,
    ) -> None: ...

    def dispose(self) -> None: ...


class TraceBackend(Protocol):
    """Creates and enumerates tracing sessions."""

    def create_session(self, name: str) -> TraceSession: ...

    def active_session_names(self) -> list[str]: ...

    def get_active_session(self, name: str) -> TraceSession | None: ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

type BackendFactory = Callable[[EtwStreamConfig], TraceBackend]

_BACKENDS: dict[str, BackendFactory] = {}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Make *factory* available as ``get_backend(name, ...)``."""
    _BACKENDS[name] = factory


def available_backends() -> tuple[str, ...]:
    return tuple(sorted(_BACKENDS))


def get_backend(name: str, config: EtwStreamConfig) -> TraceBackend:
    """Instantiate the backend registered under *name*.

    Raises:
        UnknownBackendError: If nothing is registered under *name*.

    """
    try:
        factory = _BACKENDS[name]
    except KeyError:
        msg = f"unknown backend {name!r} (available: {', '.join(available_backends())})"
        raise UnknownBackendError(msg) from None
    return factory(config)


def _memory_factory(config: EtwStreamConfig) -> TraceBackend:
    from etwstream.backends.memory import default_backend

    return default_backend()


def _file_factory(config: EtwStreamConfig) -> TraceBackend:
    from etwstream.backends.file import FileTraceBackend

    return FileTraceBackend(config.trace_path)


register_backend("memory", _memory_factory)
register_backend("file", _file_factory)
