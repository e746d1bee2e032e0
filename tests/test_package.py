"""Tests for etwstream package exports and metadata."""

import pytest

import etwstream


class TestPackageMetadata:
    """Package-level exports and metadata."""

    def test_version_string(self) -> None:
        assert isinstance(etwstream.__version__, str)
        assert "0.1.0" in etwstream.__version__

    def test_free_threading_declaration(self) -> None:
        assert etwstream._Py_mod_gil == 0

    def test_all_exports_resolvable(self) -> None:
        for name in etwstream.__all__:
            assert getattr(etwstream, name) is not None

    def test_factory_is_listener_function(self) -> None:
        from etwstream.listener import from_trace_event

        assert etwstream.from_trace_event is from_trace_event

    def test_invalid_attribute_raises(self) -> None:
        with pytest.raises(AttributeError, match="no attribute"):
            etwstream.nonexistent_thing  # type: ignore[attr-defined]  # noqa: B018
