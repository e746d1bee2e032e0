"""Stream factories — realtime tracing sessions as EventStreams.

One factory per event source flavor::

    from_trace_event("MyEventSource", "2e5dba47-...")   # dynamic TraceEvents
    from_parser("clr") / from_parser(MyParser)           # typed records
    from_clr_trace_event()                               # .NET runtime events
    from_kernel_trace_event(KernelKeywords.PROCESS)      # kernel events

Every factory sets its session up synchronously, so a failure to create
the session or enable a provider is raised to the caller after everything
already acquired (session, manifest subscription) has been released, and
no worker is started.  On success the pump worker is scheduled and a
ref-counted ``EventStream`` is returned: all subscribers share the one
session, and the last unsubscribe disposes it.

``clear_all_active_sessions`` disposes sessions left behind by earlier runs
that used the same name prefix.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any

from etwstream.backends import get_backend
from etwstream.config import EtwStreamConfig
from etwstream.disposables import empty
from etwstream.events import TraceEvent, is_manifest_event
from etwstream.parsers import default_registry
from etwstream.providers import (
    CLR_PROVIDER_GUID,
    KERNEL_PROVIDER_GUID,
    KernelKeywords,
    ProviderSpec,
    TraceEventLevel,
)
from etwstream.reactive.session import SessionHandle
from etwstream.reactive.stream import EventStream
from etwstream.schema import SchemaCache, default_schema_cache

if TYPE_CHECKING:
    from etwstream.backends import TraceBackend
    from etwstream.events import ProviderManifest
    from etwstream.observability.collector import BridgeCollector
    from etwstream.reactive.stream import Selector


def _backend_for(config: EtwStreamConfig, backend: TraceBackend | None) -> TraceBackend:
    return backend if backend is not None else get_backend(config.backend, config)


def _schema_writer(
    cache: SchemaCache,
    session_name: str,
    collector: BridgeCollector | None,
) -> Callable[[ProviderManifest], None]:
    def write(manifest: ProviderManifest) -> None:
        cache.put(manifest)
        if collector is not None:
            collector.record_schema_cached(
                session_name,
                str(manifest.provider_guid),
                provider_name=manifest.provider_name,
            )

    return write


def _open_stream[T](
    flavor: str,
    enable: Callable[[SessionHandle], None],
    build_select: Callable[[SessionHandle], Selector[T]],
    *,
    config: EtwStreamConfig | None,
    backend: TraceBackend | None,
    collector: BridgeCollector | None,
    schema_cache: SchemaCache | None = None,
    register_manifest: bool = False,
    enable_before_observe: bool = False,
) -> EventStream[T]:
    """Run the setup sequence shared by every flavor.

    1. create a uniquely named session
    2. subscribe the schema cache to manifest announcements
    3. build the filtered stream (kernel sessions enable providers first)
    4. enable providers
    5. schedule the pump worker

    Anything acquired is released in reverse order if a step raises.
    """
    config = config or EtwStreamConfig()
    backend = _backend_for(config, backend)

    with ExitStack() as cleanup:
        session = SessionHandle.create(
            backend,
            config.session_prefix_for(flavor),
            collector=collector,
        )
        cleanup.callback(session.dispose)

        manifest_subscription = empty()
        if register_manifest:
            cache = schema_cache if schema_cache is not None else default_schema_cache()
            manifest_subscription = session.add_manifest_callback(
                _schema_writer(cache, session.name, collector)
            )
            cleanup.callback(manifest_subscription.dispose)

        if enable_before_observe:
            enable(session)
        stream = EventStream(session, build_select(session), collector=collector)
        cleanup.callback(stream.dispose)
        if not enable_before_observe:
            enable(session)

        stream.schedule(manifest_subscription, eager=config.eager_start)
        cleanup.pop_all()

    return stream


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


def _user_events(event: TraceEvent) -> TraceEvent | None:
    return None if is_manifest_event(event) else event


def _provider_events(
    provider_guid: uuid.UUID,
    event_type: type | None = None,
) -> Callable[[TraceEvent], TraceEvent | None]:
    def select(event: TraceEvent) -> TraceEvent | None:
        if event.provider_guid != provider_guid or is_manifest_event(event):
            return None
        if event_type is not None and not isinstance(event, event_type):
            return None
        return event

    return select


# ---------------------------------------------------------------------------
# Public factories
# ---------------------------------------------------------------------------


def from_trace_event(
    *providers: ProviderSpec | str | uuid.UUID,
    level: TraceEventLevel | None = None,
    config: EtwStreamConfig | None = None,
    backend: TraceBackend | None = None,
    collector: BridgeCollector | None = None,
    schema_cache: SchemaCache | None = None,
) -> EventStream[TraceEvent]:
    """Observe providers given by EventSource name, GUID, or ProviderSpec.

    Bare names and GUIDs are enabled at *level* (default: the configured
    ``default_level``).  Manifest announcements from the providers are
    written to *schema_cache* (default: the process-wide cache) before
    any provider is enabled.

    Raises:
        ValueError: If no provider is given.
        SessionCreateFailed: If the session cannot be created.
        ProviderEnableFailed: If a provider cannot be enabled.

    """
    if not providers:
        msg = "from_trace_event() needs at least one provider"
        raise ValueError(msg)
    config = config or EtwStreamConfig()
    default_level = level if level is not None else config.default_level
    specs = [ProviderSpec.of(p, default_level) for p in providers]

    def enable(session: SessionHandle) -> None:
        for spec in specs:
            session.enable_provider(spec)

    return _open_stream(
        "FromTraceEvent",
        enable,
        lambda session: _user_events,
        config=config,
        backend=backend,
        collector=collector,
        schema_cache=schema_cache,
        register_manifest=True,
    )


def from_parser(
    parser: str | type,
    *,
    event_type: type | None = None,
    config: EtwStreamConfig | None = None,
    backend: TraceBackend | None = None,
    collector: BridgeCollector | None = None,
) -> EventStream[Any]:
    """Observe the provider a typed parser decodes.

    *parser* is a registry key or a parser class.  The stream carries what
    ``parser.parse`` returns, restricted to instances of *event_type* when
    one is given.

    Raises:
        UnknownParserError: If *parser* is an unregistered key.
        SessionCreateFailed: If the session cannot be created.
        ProviderEnableFailed: If the parser's provider cannot be enabled.

    """
    factory = default_registry().resolve(parser)
    built: dict[str, Any] = {}

    def build_select(session: SessionHandle) -> Callable[[TraceEvent], Any]:
        instance, guid = factory(session.source)
        built["guid"] = guid

        def select(event: TraceEvent) -> Any:
            if is_manifest_event(event):
                return None
            value = instance.parse(event)
            if value is None or (event_type is not None and not isinstance(value, event_type)):
                return None
            return value

        return select

    def enable(session: SessionHandle) -> None:
        if built["guid"] == KERNEL_PROVIDER_GUID:
            session.enable_kernel_provider(KernelKeywords.DEFAULT)
        else:
            session.enable_provider(ProviderSpec(built["guid"], TraceEventLevel.VERBOSE))

    return _open_stream(
        "FromTraceEventWithParser",
        enable,
        build_select,
        config=config,
        backend=backend,
        collector=collector,
    )


def from_clr_trace_event(
    *,
    config: EtwStreamConfig | None = None,
    backend: TraceBackend | None = None,
    collector: BridgeCollector | None = None,
) -> EventStream[TraceEvent]:
    """Observe .NET runtime (CLR) events."""

    def enable(session: SessionHandle) -> None:
        session.enable_provider(ProviderSpec(CLR_PROVIDER_GUID, TraceEventLevel.VERBOSE))

    return _open_stream(
        "FromClrTraceEvent",
        enable,
        lambda session: _provider_events(CLR_PROVIDER_GUID),
        config=config,
        backend=backend,
        collector=collector,
    )


def from_kernel_trace_event(
    flags: KernelKeywords,
    stack_capture: KernelKeywords = KernelKeywords.NONE,
    *,
    event_type: type | None = None,
    config: EtwStreamConfig | None = None,
    backend: TraceBackend | None = None,
    collector: BridgeCollector | None = None,
) -> EventStream[TraceEvent]:
    """Observe kernel events selected by keyword *flags*.

    The kernel provider is enabled before the stream is built.  With
    *event_type*, only events that are instances of it are delivered.
    """

    def enable(session: SessionHandle) -> None:
        session.enable_kernel_provider(flags, stack_capture)

    return _open_stream(
        "FromKernelTraceEvent",
        enable,
        lambda session: _provider_events(KERNEL_PROVIDER_GUID, event_type),
        config=config,
        backend=backend,
        collector=collector,
        enable_before_observe=True,
    )


def active_sessions(
    prefix: str | None = None,
    *,
    config: EtwStreamConfig | None = None,
    backend: TraceBackend | None = None,
) -> list[str]:
    """Names of active sessions created with this bridge's naming prefix."""
    config = config or EtwStreamConfig()
    backend = _backend_for(config, backend)
    prefix = prefix if prefix is not None else config.session_prefix
    return [name for name in backend.active_session_names() if name.startswith(prefix)]


def clear_all_active_sessions(
    prefix: str | None = None,
    *,
    config: EtwStreamConfig | None = None,
    backend: TraceBackend | None = None,
) -> int:
    """Dispose every active session whose name starts with *prefix*.

    Returns:
        Number of sessions disposed.

    """
    config = config or EtwStreamConfig()
    backend = _backend_for(config, backend)
    count = 0
    for name in active_sessions(prefix, config=config, backend=backend):
        session = backend.get_active_session(name)
        if session is None:
            continue
        session.dispose()
        count += 1
    return count
