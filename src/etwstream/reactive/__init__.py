"""Reactive core — session handle, pump worker, shared stream and operators.

    SessionHandle ──> ProcessingWorker (pump thread)
          │
          └──> EventStream ──take_until/buffer──> subscribers

"""

from etwstream.reactive.observable import CallbackObserver, Observable, Observer
from etwstream.reactive.operators import buffer, take_until, to_async_iterator, to_iterator
from etwstream.reactive.session import SessionHandle, make_session_name
from etwstream.reactive.stream import EventStream, Selector, StreamState
from etwstream.reactive.worker import ProcessingWorker

__all__ = [
    "CallbackObserver",
    "EventStream",
    "Observable",
    "Observer",
    "ProcessingWorker",
    "Selector",
    "SessionHandle",
    "StreamState",
    "buffer",
    "make_session_name",
    "take_until",
    "to_async_iterator",
    "to_iterator",
]
