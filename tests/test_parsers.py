"""Tests for etwstream.parsers and the backend registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from etwstream._errors import UnknownBackendError, UnknownParserError
from etwstream.backends import available_backends, get_backend
from etwstream.backends.file import FileTraceBackend
from etwstream.backends.memory import default_backend
from etwstream.config import EtwStreamConfig
from etwstream.parsers import (
    ClrTraceEventParser,
    KernelTraceEventParser,
    ParserRegistry,
    class_factory,
    default_registry,
    register_parser,
)
from etwstream.providers import CLR_PROVIDER_GUID, KERNEL_PROVIDER_GUID

from conftest import PROVIDER_GUID, make_event


class TestParserRegistry:
    """ParserRegistry — keys to parser factories."""

    def test_builtins_registered(self) -> None:
        keys = default_registry().keys()
        assert "clr" in keys
        assert "kernel" in keys

    def test_resolve_builtin(self) -> None:
        parser, guid = default_registry().resolve("kernel")(source=None)  # type: ignore[arg-type]
        assert isinstance(parser, KernelTraceEventParser)
        assert guid == KERNEL_PROVIDER_GUID

    def test_unknown_key(self) -> None:
        with pytest.raises(UnknownParserError, match="no parser registered"):
            ParserRegistry().resolve("missing")

    def test_class_without_guid(self) -> None:
        class NoGuid:
            def parse(self, event: object) -> None:
                return None

        with pytest.raises(UnknownParserError, match="provider_guid"):
            class_factory(NoGuid)

    def test_register_decorator(self) -> None:
        @register_parser("contoso-orders-test")
        class OrdersParser:
            provider_guid = PROVIDER_GUID

            def __init__(self, source: object) -> None:
                pass

            def parse(self, event: object) -> object:
                return event

        parser, guid = default_registry().resolve("contoso-orders-test")(None)  # type: ignore[arg-type]
        assert isinstance(parser, OrdersParser)
        assert guid == PROVIDER_GUID

    def test_builtin_parse_filters_provider(self) -> None:
        parser = ClrTraceEventParser(None)  # type: ignore[arg-type]
        clr_event = make_event(provider_guid=CLR_PROVIDER_GUID)
        assert parser.parse(clr_event) is clr_event
        assert parser.parse(make_event()) is None


class TestBackendRegistry:
    """get_backend — backends by configured name."""

    def test_available(self) -> None:
        assert available_backends() == ("file", "memory")

    def test_memory(self, config: EtwStreamConfig) -> None:
        assert get_backend("memory", config) is default_backend()

    def test_file(self, tmp_path: Path) -> None:
        config = EtwStreamConfig(root=tmp_path, backend="file", trace_file=tmp_path / "e.jsonl")
        backend = get_backend("file", config)
        assert isinstance(backend, FileTraceBackend)
        assert backend.path == (tmp_path / "e.jsonl").resolve()

    def test_unknown(self, config: EtwStreamConfig) -> None:
        with pytest.raises(UnknownBackendError, match="available: file, memory"):
            get_backend("etw", config)
