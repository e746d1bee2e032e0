"""Observable core — observers and the push-stream base class.

Every stream in etwstream (the session-backed ``EventStream`` as well as the
``take_until``/``buffer`` combinators) is an ``Observable``: ``subscribe()``
attaches an observer and returns a ``Subscription`` whose ``dispose()``
detaches it.

An observer receives zero or more ``on_next`` calls followed by at most one
terminal call, ``on_error`` or ``on_completed``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from etwstream.cancellation import CancellationToken
    from etwstream.disposables import Subscription


class Observer[T](Protocol):
    """Receives a stream's signals."""

    def on_next(self, value: T) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_completed(self) -> None: ...


class CallbackObserver[T]:
    """Observer built from plain callables.  Missing callbacks are no-ops."""

    __slots__ = ("_on_completed", "_on_error", "_on_next")

    def __init__(
        self,
        on_next: Callable[[T], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
    ) -> None:
        self._on_next = on_next
        self._on_error = on_error
        self._on_completed = on_completed

    def on_next(self, value: T) -> None:
        if self._on_next is not None:
            self._on_next(value)

    def on_error(self, error: BaseException) -> None:
        if self._on_error is not None:
            self._on_error(error)

    def on_completed(self) -> None:
        if self._on_completed is not None:
            self._on_completed()


class Observable[T]:
    """Base class for push streams.

    Subclasses implement ``_subscribe_core``.  The operator methods are thin
    wrappers over ``etwstream.reactive.operators``.
    """

    def subscribe(
        self,
        on_next: Callable[[T], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
        *,
        observer: Observer[T] | None = None,
    ) -> Subscription:
        """Attach an observer (or callbacks) and return its subscription."""
        if observer is None:
            observer = CallbackObserver(on_next, on_error, on_completed)
        return self._subscribe_core(observer)

    def _subscribe_core(self, observer: Observer[T]) -> Subscription:
        raise NotImplementedError

    # ----- Operators -----

    def take_until(self, token: CancellationToken) -> Observable[T]:
        from etwstream.reactive.operators import take_until

        return take_until(self, token)

    def buffer(
        self,
        timespan: float,
        count: int,
        token: CancellationToken | None = None,
    ) -> Observable[list[T]]:
        from etwstream.reactive.operators import buffer

        return buffer(self, timespan, count, token)

    def __iter__(self) -> Iterator[T]:
        from etwstream.reactive.operators import to_iterator

        return to_iterator(self)

    def __aiter__(self) -> AsyncIterator[T]:
        from etwstream.reactive.operators import to_async_iterator

        return to_async_iterator(self)
