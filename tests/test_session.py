"""Tests for etwstream.reactive.session — the session handle."""

from __future__ import annotations

import uuid

import pytest

from etwstream._errors import ProviderEnableFailed, SessionCreateFailed
from etwstream.backends.memory import MemoryTraceBackend
from etwstream.observability.collector import BridgeCollector
from etwstream.observability.events import ProviderEnabled, SessionCreated, SessionDisposed
from etwstream.providers import KernelKeywords, ProviderSpec
from etwstream.reactive.session import SessionHandle, make_session_name


class _RefusingBackend(MemoryTraceBackend):
    def create_session(self, name: str):  # type: ignore[override]
        msg = "access denied"
        raise PermissionError(msg)


class TestMakeSessionName:
    def test_prefix_and_uniqueness(self) -> None:
        a = make_session_name("ObservableEventListenerFromTraceEventSession")
        b = make_session_name("ObservableEventListenerFromTraceEventSession")
        assert a.startswith("ObservableEventListenerFromTraceEventSession.")
        assert a != b
        uuid.UUID(a.rsplit(".", 1)[1])


class TestSessionHandleCreate:
    """SessionHandle.create — naming and failure translation."""

    def test_registers_active_session(self, backend: MemoryTraceBackend) -> None:
        handle = SessionHandle.create(backend, "Test")
        assert handle.name in backend.active_session_names()
        handle.dispose()

    def test_backend_refusal(self) -> None:
        with pytest.raises(SessionCreateFailed, match="access denied") as info:
            SessionHandle.create(_RefusingBackend(), "Test")
        assert isinstance(info.value.__cause__, PermissionError)
        assert info.value.session_name is not None
        assert info.value.session_name.startswith("Test.")

    def test_records_creation(
        self, backend: MemoryTraceBackend, collector: BridgeCollector,
    ) -> None:
        handle = SessionHandle.create(backend, "Test", collector=collector)
        created = collector.log.query(event_type=SessionCreated)
        assert [e.session for e in created] == [handle.name]
        handle.dispose()


class TestSessionHandleProviders:
    """enable_provider / enable_kernel_provider."""

    def test_enable_provider(self, backend: MemoryTraceBackend) -> None:
        with SessionHandle.create(backend, "Test") as handle:
            handle.enable_provider(ProviderSpec("Contoso-Orders"))
            session = backend.get_active_session(handle.name)
            assert ProviderSpec("Contoso-Orders").guid in session.enabled_providers  # type: ignore[union-attr]

    def test_unknown_provider(self) -> None:
        backend = MemoryTraceBackend(known_providers=[])
        with SessionHandle.create(backend, "Test") as handle:
            with pytest.raises(ProviderEnableFailed) as info:
                handle.enable_provider(ProviderSpec("Contoso-Orders"))
            assert isinstance(info.value.__cause__, LookupError)
            assert info.value.session_name == handle.name

    def test_empty_provider_name(self, backend: MemoryTraceBackend) -> None:
        with SessionHandle.create(backend, "Test") as handle:
            with pytest.raises(ProviderEnableFailed):
                handle.enable_provider(ProviderSpec(""))

    def test_enable_after_dispose(self, backend: MemoryTraceBackend) -> None:
        handle = SessionHandle.create(backend, "Test")
        handle.dispose()
        with pytest.raises(ProviderEnableFailed, match="already disposed"):
            handle.enable_provider(ProviderSpec("Contoso-Orders"))
        with pytest.raises(ProviderEnableFailed):
            handle.enable_kernel_provider(KernelKeywords.PROCESS)

    def test_records_enablement(
        self, backend: MemoryTraceBackend, collector: BridgeCollector,
    ) -> None:
        with SessionHandle.create(backend, "Test", collector=collector) as handle:
            handle.enable_provider(ProviderSpec("Contoso-Orders"))
            handle.enable_kernel_provider(KernelKeywords.PROCESS)
        enabled = collector.log.query(event_type=ProviderEnabled)
        assert len(enabled) == 2
        assert enabled[0].provider == "kernel"  # most recent first


class TestSessionHandleDispose:
    """dispose — idempotent release."""

    def test_idempotent(
        self, backend: MemoryTraceBackend, collector: BridgeCollector,
    ) -> None:
        handle = SessionHandle.create(backend, "Test", collector=collector)
        handle.dispose()
        handle.dispose()
        assert handle.is_disposed
        assert handle.name not in backend.active_session_names()
        assert len(collector.log.query(event_type=SessionDisposed)) == 1

    def test_callbacks_unregister(self, backend: MemoryTraceBackend) -> None:
        with SessionHandle.create(backend, "Test") as handle:
            sub = handle.add_event_callback(lambda e: None)
            manifest_sub = handle.add_manifest_callback(lambda m: None)
            assert handle.source.callback_count == 2  # type: ignore[attr-defined]
            sub.dispose()
            manifest_sub.dispose()
            assert handle.source.callback_count == 0  # type: ignore[attr-defined]

    def test_repr(self, backend: MemoryTraceBackend) -> None:
        handle = SessionHandle.create(backend, "Test")
        assert "live" in repr(handle)
        handle.dispose()
        assert "disposed" in repr(handle)
