"""Typed parsers — turn raw trace events into provider-specific records.

A parser is built for one session's source and knows the GUID of the
provider it decodes.  Parsers are looked up in a registry that maps a key
(a string, or the parser class itself) to a factory::

    factory(source) -> (parser, provider_guid)

Any class with a ``provider_guid`` class attribute, a one-argument
constructor taking the source, and a ``parse(event)`` method can be used
directly, registered or not.  Registering it under a string key makes it
available to ``etwstream watch --parser KEY``.

Example::

    @register_parser("my-source")
    class MySourceParser:
        provider_guid = guid_from_eventsource_name("MySource")

        def __init__(self, source): ...

        def parse(self, event):
            if event.event_name == "Request":
                return Request(**event.payload)
            return None

"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from etwstream._errors import UnknownParserError
from etwstream.providers import CLR_PROVIDER_GUID, KERNEL_PROVIDER_GUID

if TYPE_CHECKING:
    from etwstream.backends import TraceSource
    from etwstream.events import TraceEvent


class TraceEventParser[T](Protocol):
    """Decodes raw events of one provider into ``T``; None drops the event."""

    provider_guid: ClassVar[uuid.UUID]

    def parse(self, event: TraceEvent) -> T | None: ...


type ParserFactory = Callable[[TraceSource], tuple[TraceEventParser[Any], uuid.UUID]]


def class_factory(parser_type: type) -> ParserFactory:
    """Factory for a parser class following the constructor convention."""
    try:
        guid = parser_type.provider_guid
    except AttributeError:
        msg = f"{parser_type.__qualname__} has no provider_guid attribute"
        raise UnknownParserError(msg) from None

    def factory(source: TraceSource) -> tuple[TraceEventParser[Any], uuid.UUID]:
        return parser_type(source), guid

    return factory


class ParserRegistry:
    """Parser factories keyed by name.

    Thread Safety:
        Registration and lookup are protected by a ``threading.Lock``.

    """

    __slots__ = ("_factories", "_lock")

    def __init__(self) -> None:
        self._factories: dict[str, ParserFactory] = {}
        self._lock = threading.Lock()

    def register(self, key: str, factory: ParserFactory) -> None:
        with self._lock:
            self._factories[key] = factory

    def register_class(self, parser_type: type, key: str | None = None) -> None:
        self.register(key or parser_type.__name__, class_factory(parser_type))

    def resolve(self, key: str | type) -> ParserFactory:
        """Look up the factory for *key*.

        Classes are accepted without registration.

        Raises:
            UnknownParserError: If *key* is an unregistered string.

        """
        if isinstance(key, type):
            return class_factory(key)
        with self._lock:
            factory = self._factories.get(key)
        if factory is None:
            msg = f"no parser registered as {key!r} (known: {', '.join(self.keys())})"
            raise UnknownParserError(msg)
        return factory

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)


_registry = ParserRegistry()


def default_registry() -> ParserRegistry:
    return _registry


def register_parser[P: type](key: str) -> Callable[[P], P]:
    """Class decorator registering a parser class under *key*."""

    def decorate(parser_type: P) -> P:
        _registry.register_class(parser_type, key)
        return parser_type

    return decorate


# ---------------------------------------------------------------------------
# Built-in parsers
# ---------------------------------------------------------------------------


class _ProviderParser:
    provider_guid: ClassVar[uuid.UUID]

    def __init__(self, source: TraceSource) -> None:
        self.source = source

    def parse(self, event: TraceEvent) -> TraceEvent | None:
        if event.provider_guid != self.provider_guid:
            return None
        return event


@register_parser("clr")
class ClrTraceEventParser(_ProviderParser):
    """Events of the .NET runtime provider."""

    provider_guid = CLR_PROVIDER_GUID


@register_parser("kernel")
class KernelTraceEventParser(_ProviderParser):
    """Events of the kernel provider."""

    provider_guid = KERNEL_PROVIDER_GUID
