"""Tests for etwstream.listener — stream factories and session housekeeping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest

from etwstream._errors import ProviderEnableFailed, SessionCreateFailed, UnknownParserError
from etwstream.backends.memory import MemoryTraceBackend, MemoryTraceSession
from etwstream.events import TraceEvent
from etwstream.listener import (
    active_sessions,
    clear_all_active_sessions,
    from_clr_trace_event,
    from_kernel_trace_event,
    from_parser,
    from_trace_event,
)
from etwstream.observability.collector import BridgeCollector
from etwstream.observability.events import (
    SessionDisposed,
    StreamStateChanged,
    WorkerStarted,
)
from etwstream.providers import (
    CLR_PROVIDER_GUID,
    KERNEL_PROVIDER_GUID,
    KernelKeywords,
    ProviderSpec,
    TraceEventLevel,
)

from conftest import PROVIDER, PROVIDER_GUID, Recorder, make_event


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _RecordingBackend(MemoryTraceBackend):
    """Keeps every session it created, including released ones."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.created: list[MemoryTraceSession] = []

    def create_session(self, name: str) -> MemoryTraceSession:
        session = super().create_session(name)
        self.created.append(session)
        return session


class _NoKernelBackend(_RecordingBackend):
    def create_session(self, name: str) -> MemoryTraceSession:
        session = super().create_session(name)

        def refuse(flags: KernelKeywords, stack_capture: KernelKeywords) -> None:
            msg = "kernel logger already in use"
            raise PermissionError(msg)

        session.enable_kernel_provider = refuse  # type: ignore[method-assign]
        return session


class _FullBackend(MemoryTraceBackend):
    def create_session(self, name: str) -> MemoryTraceSession:
        msg = "too many sessions"
        raise OSError(msg)


@dataclass(frozen=True, slots=True)
class OrderPlaced:
    order_id: int


@dataclass(frozen=True, slots=True)
class OrderShipped:
    order_id: int


class OrderParser:
    provider_guid = PROVIDER_GUID

    def __init__(self, source: object) -> None:
        self.source = source

    def parse(self, event: TraceEvent) -> OrderPlaced | OrderShipped | None:
        if event.event_name == "OrderPlaced":
            return OrderPlaced(event.payload["order_id"])
        if event.event_name == "OrderShipped":
            return OrderShipped(event.payload["order_id"])
        return None


# ---------------------------------------------------------------------------
# Setup failures
# ---------------------------------------------------------------------------


class TestSetupFailure:
    """Failures while opening a stream leave nothing behind."""

    def test_enable_failure_releases_everything(self, collector: BridgeCollector) -> None:
        backend = _RecordingBackend(known_providers=[PROVIDER_GUID])
        with pytest.raises(ProviderEnableFailed):
            from_trace_event(PROVIDER, "Unknown-Provider", backend=backend, collector=collector)

        assert backend.active_session_names() == []
        (session,) = backend.created
        assert session.is_disposed
        assert session.source.callback_count == 0
        assert collector.log.query(event_type=WorkerStarted) == []
        assert len(collector.log.query(event_type=SessionDisposed)) == 1

    def test_create_failure(self, collector: BridgeCollector) -> None:
        with pytest.raises(SessionCreateFailed, match="too many sessions"):
            from_trace_event(PROVIDER, backend=_FullBackend(), collector=collector)
        assert collector.log.query(event_type=WorkerStarted) == []

    def test_no_providers(self, backend: MemoryTraceBackend) -> None:
        with pytest.raises(ValueError, match="at least one provider"):
            from_trace_event(backend=backend)
        assert backend.active_session_names() == []

    def test_unknown_parser_key(self, backend: MemoryTraceBackend) -> None:
        with pytest.raises(UnknownParserError):
            from_parser("no-such-parser", backend=backend)
        assert backend.active_session_names() == []


# ---------------------------------------------------------------------------
# Flavors
# ---------------------------------------------------------------------------


class TestFromTraceEvent:
    """from_trace_event — providers by name, GUID or spec."""

    def test_session_naming(self, backend: MemoryTraceBackend) -> None:
        stream = from_trace_event(PROVIDER, backend=backend)
        assert stream.session_name.startswith("ObservableEventListenerFromTraceEventSession.")
        stream.dispose()

    def test_several_providers(self, backend: MemoryTraceBackend, recorder: Recorder) -> None:
        other = ProviderSpec("Contoso-Billing", TraceEventLevel.ERROR)
        stream = from_trace_event(PROVIDER, other, backend=backend)
        with stream.subscribe(observer=recorder):
            backend.publish(make_event("Invoiced", 1, provider_guid=other.guid,
                                       level=TraceEventLevel.ERROR))
            backend.publish(make_event("OrderPlaced", 2))
            assert recorder.wait_for(2)
        assert [e.event_name for e in recorder.values] == ["Invoiced", "OrderPlaced"]


class TestFromParser:
    """from_parser — typed records from a parser."""

    def test_parser_class(self, backend: MemoryTraceBackend, recorder: Recorder) -> None:
        stream = from_parser(OrderParser, backend=backend)
        assert "FromTraceEventWithParserSession." in stream.session_name
        with stream.subscribe(observer=recorder):
            backend.publish(make_event("Heartbeat", 9))
            backend.publish(make_event("OrderPlaced", 1, order_id=7))
            backend.publish(make_event("OrderShipped", 2, order_id=7))
            assert recorder.wait_for(2)
        assert recorder.values == [OrderPlaced(7), OrderShipped(7)]

    def test_event_type_filter(self, backend: MemoryTraceBackend, recorder: Recorder) -> None:
        stream = from_parser(OrderParser, event_type=OrderShipped, backend=backend)
        with stream.subscribe(observer=recorder):
            backend.publish(make_event("OrderPlaced", 1, order_id=1))
            backend.publish(make_event("OrderShipped", 2, order_id=1))
            assert recorder.wait_for(1)
        assert recorder.values == [OrderShipped(1)]

    def test_registered_key(self, backend: MemoryTraceBackend, recorder: Recorder) -> None:
        stream = from_parser("clr", backend=backend)
        with stream.subscribe(observer=recorder):
            backend.publish(make_event("GC/Start", 1, provider_guid=CLR_PROVIDER_GUID))
            assert recorder.wait_for(1)
        assert recorder.values[0].provider_guid == CLR_PROVIDER_GUID


class TestFromClrTraceEvent:
    def test_only_clr_events(self, backend: MemoryTraceBackend, recorder: Recorder) -> None:
        stream = from_clr_trace_event(backend=backend)
        assert "FromClrTraceEventSession." in stream.session_name
        with stream.subscribe(observer=recorder):
            backend.publish(make_event("OrderPlaced", 1))
            backend.publish(make_event("GC/Start", 1, provider_guid=CLR_PROVIDER_GUID))
            assert recorder.wait_for(1)
        assert [e.event_name for e in recorder.values] == ["GC/Start"]


class TestFromKernelTraceEvent:
    """from_kernel_trace_event — kernel provider enabled before the stream exists."""

    def test_only_kernel_events(self, backend: MemoryTraceBackend, recorder: Recorder) -> None:
        stream = from_kernel_trace_event(KernelKeywords.PROCESS, backend=backend)
        assert "FromKernelTraceEventSession." in stream.session_name
        with stream.subscribe(observer=recorder):
            backend.publish(make_event("Process/Start", 1, provider_guid=KERNEL_PROVIDER_GUID))
            backend.publish(make_event("OrderPlaced", 2))
            backend.publish(make_event("Process/Stop", 2, provider_guid=KERNEL_PROVIDER_GUID))
            assert recorder.wait_for(2)
        assert [e.event_name for e in recorder.values] == ["Process/Start", "Process/Stop"]

    def test_enable_failure_before_stream_is_built(self, collector: BridgeCollector) -> None:
        backend = _NoKernelBackend()
        with pytest.raises(ProviderEnableFailed, match="kernel logger already in use"):
            from_kernel_trace_event(KernelKeywords.PROCESS, backend=backend, collector=collector)

        assert backend.active_session_names() == []
        assert backend.created[0].is_disposed
        # No stream was ever constructed, so no state transition was recorded.
        assert collector.log.query(event_type=StreamStateChanged) == []

    def test_provider_enable_failure_after_stream_is_built(self, collector: BridgeCollector) -> None:
        backend = _RecordingBackend(known_providers=[])
        with pytest.raises(ProviderEnableFailed):
            from_trace_event(PROVIDER, backend=backend, collector=collector)
        changes = collector.log.query(event_type=StreamStateChanged)
        assert [(c.old, c.new) for c in changes] == [("connecting", "disposed")]


# ---------------------------------------------------------------------------
# Housekeeping
# ---------------------------------------------------------------------------


class TestClearAllActiveSessions:
    """clear_all_active_sessions — dispose leftovers by prefix."""

    def test_clears_matching_sessions(self, backend: MemoryTraceBackend) -> None:
        first = from_trace_event(PROVIDER, backend=backend)
        second = from_clr_trace_event(backend=backend)
        foreign = backend.create_session("SomeOtherTool.1")
        watcher = Recorder()
        first.subscribe(observer=watcher)

        assert len(active_sessions(backend=backend)) == 2
        assert clear_all_active_sessions(backend=backend) == 2

        assert backend.active_session_names() == ["SomeOtherTool.1"]
        assert first.wait_disposed(2.0)
        assert second.wait_disposed(2.0)
        assert watcher.wait_terminated()
        assert watcher.completed == 1
        foreign.dispose()

    def test_custom_prefix(self, backend: MemoryTraceBackend) -> None:
        backend.create_session("Leftover.a")
        backend.create_session("Leftover.b")
        assert clear_all_active_sessions("Leftover", backend=backend) == 2
        assert clear_all_active_sessions("Leftover", backend=backend) == 0

    def test_nothing_to_clear(self, backend: MemoryTraceBackend) -> None:
        assert clear_all_active_sessions(backend=backend) == 0
