"""etwstream — realtime trace sessions as observable event streams.

Turns a realtime tracing session into a hot, shared push stream.  Every
subscriber of a stream shares one session and one pump thread; the session
lives exactly as long as somebody is listening.

Quick start::

    import etwstream

    stream = etwstream.from_trace_event("MyCompany-MyEventSource")
    with stream.subscribe(print):
        ...

Four flavors::

    etwstream.from_trace_event("MyEventSource")            # dynamic events
    etwstream.from_parser("clr")                           # typed parser
    etwstream.from_clr_trace_event()                       # .NET runtime
    etwstream.from_kernel_trace_event(KernelKeywords.PROCESS)

Cancellation and batching::

    source = etwstream.CancellationTokenSource()
    batches = stream.take_until(source.token).buffer(1.0, 1000)

Host lifecycle::

    service = etwstream.get_service()
    service.container.add(batches.subscribe(handle))
    etwstream.complete_service()

"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from etwstream.cancellation import CancellationToken, CancellationTokenSource
    from etwstream.config import EtwStreamConfig
    from etwstream.disposables import Subscription, SubscriptionContainer
    from etwstream.events import ProviderManifest, TraceEvent
    from etwstream.listener import (
        clear_all_active_sessions,
        from_clr_trace_event,
        from_kernel_trace_event,
        from_parser,
        from_trace_event,
    )
    from etwstream.providers import KernelKeywords, ProviderSpec, TraceEventLevel
    from etwstream.reactive.stream import EventStream
    from etwstream.service import complete_service, get_service

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0"
__all__ = [
    "CancellationToken",
    "CancellationTokenSource",
    "EtwStreamConfig",
    "EventStream",
    "KernelKeywords",
    "ProviderManifest",
    "ProviderSpec",
    "Subscription",
    "SubscriptionContainer",
    "TraceEvent",
    "TraceEventLevel",
    "__version__",
    "clear_all_active_sessions",
    "complete_service",
    "from_clr_trace_event",
    "from_kernel_trace_event",
    "from_parser",
    "from_trace_event",
    "get_service",
]

_LAZY: dict[str, str] = {
    "CancellationToken": "etwstream.cancellation",
    "CancellationTokenSource": "etwstream.cancellation",
    "EtwStreamConfig": "etwstream.config",
    "EventStream": "etwstream.reactive.stream",
    "KernelKeywords": "etwstream.providers",
    "ProviderManifest": "etwstream.events",
    "ProviderSpec": "etwstream.providers",
    "Subscription": "etwstream.disposables",
    "SubscriptionContainer": "etwstream.disposables",
    "TraceEvent": "etwstream.events",
    "TraceEventLevel": "etwstream.providers",
    "clear_all_active_sessions": "etwstream.listener",
    "complete_service": "etwstream.service",
    "from_clr_trace_event": "etwstream.listener",
    "from_kernel_trace_event": "etwstream.listener",
    "from_parser": "etwstream.listener",
    "from_trace_event": "etwstream.listener",
    "get_service": "etwstream.service",
}


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import etwstream`` fast; the session machinery is only loaded
    when a factory is first used.
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_name), name)
