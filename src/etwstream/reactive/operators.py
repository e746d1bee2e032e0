"""Stream combinators — cancellation, batching and iteration.

None of these own the session behind a stream: they only subscribe to it,
and disposing their subscription releases exactly that subscription.

- ``take_until(stream, token)`` — forward until the token fires, then complete
- ``buffer(stream, timespan, count, token)`` — bounded batches, flushed by
  size or by the time elapsed since a batch's first element
- ``to_iterator(stream)`` — blocking, lazy iteration from any thread
- ``to_async_iterator(stream)`` — asyncio iteration; the pump thread hands
  values to the event loop with ``call_soon_threadsafe``
"""

from __future__ import annotations

import asyncio
import queue
import threading
from typing import TYPE_CHECKING

from etwstream.disposables import Subscription, empty
from etwstream.reactive.observable import CallbackObserver, Observable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterator

    from etwstream.cancellation import CancellationToken
    from etwstream.reactive.observable import Observer


# ---------------------------------------------------------------------------
# take_until
# ---------------------------------------------------------------------------


class _TakeUntil[T](Observable[T]):
    def __init__(self, source: Observable[T], token: CancellationToken) -> None:
        self._source = source
        self._token = token

    def _subscribe_core(self, observer: Observer[T]) -> Subscription:
        # Held while forwarding, so completion from the cancelling thread
        # never overlaps an on_next still running on the pump thread.
        lock = threading.RLock()
        done = False
        upstream: Subscription | None = None

        def finish(signal: Callable[[], None]) -> bool:
            nonlocal done
            with lock:
                if done:
                    return False
                done = True
                signal()
            return True

        def on_next(value: T) -> None:
            with lock:
                if not done:
                    observer.on_next(value)

        def on_error(error: BaseException) -> None:
            if finish(lambda: observer.on_error(error)):
                registration.dispose()

        def on_completed() -> None:
            if finish(observer.on_completed):
                registration.dispose()

        def on_cancel() -> None:
            if finish(observer.on_completed) and upstream is not None:
                upstream.dispose()

        registration = self._token.register(on_cancel)
        if done:
            return empty()

        upstream = self._source.subscribe(observer=CallbackObserver(on_next, on_error, on_completed))
        if done:
            # cancelled or terminated while subscribing
            upstream.dispose()

        def unsubscribe() -> None:
            nonlocal done
            with lock:
                done = True
            registration.dispose()
            upstream.dispose()

        return Subscription(unsubscribe)


def take_until[T](source: Observable[T], token: CancellationToken) -> Observable[T]:
    """Forward *source* until *token* is cancelled, then complete.

    Cancelling more than once has no further effect.  If the token is
    already cancelled, subscribers complete immediately.
    """
    return _TakeUntil(source, token)


# ---------------------------------------------------------------------------
# buffer
# ---------------------------------------------------------------------------


class _Buffer[T](Observable[list[T]]):
    def __init__(self, source: Observable[T], timespan: float, count: int) -> None:
        if timespan <= 0:
            msg = f"timespan must be positive, got {timespan!r}"
            raise ValueError(msg)
        if count < 1:
            msg = f"count must be at least 1, got {count!r}"
            raise ValueError(msg)
        self._source = source
        self._timespan = timespan
        self._count = count

    def _subscribe_core(self, observer: Observer[list[T]]) -> Subscription:
        # Held while emitting so batches reach the observer in order even
        # when the timer thread and the pump thread flush concurrently.
        lock = threading.RLock()
        items: list[T] = []
        generation = 0
        timer: threading.Timer | None = None
        stopped = False

        def take() -> list[T]:
            nonlocal items, generation, timer
            batch, items = items, []
            generation += 1
            if timer is not None:
                timer.cancel()
                timer = None
            return batch

        def on_timer(expected: int) -> None:
            with lock:
                if stopped or generation != expected or not items:
                    return
                observer.on_next(take())

        def on_next(value: T) -> None:
            nonlocal timer
            with lock:
                if stopped:
                    return
                items.append(value)
                if len(items) >= self._count:
                    observer.on_next(take())
                elif timer is None:
                    timer = threading.Timer(self._timespan, on_timer, args=(generation,))
                    timer.daemon = True
                    timer.start()

        def on_error(error: BaseException) -> None:
            nonlocal stopped
            with lock:
                if stopped:
                    return
                stopped = True
                take()
                observer.on_error(error)

        def on_completed() -> None:
            nonlocal stopped
            with lock:
                if stopped:
                    return
                stopped = True
                batch = take()
                if batch:
                    observer.on_next(batch)
                observer.on_completed()

        upstream = self._source.subscribe(observer=CallbackObserver(on_next, on_error, on_completed))

        def unsubscribe() -> None:
            nonlocal stopped
            with lock:
                stopped = True
                take()
            upstream.dispose()

        return Subscription(unsubscribe)


def buffer[T](
    source: Observable[T],
    timespan: float,
    count: int,
    token: CancellationToken | None = None,
) -> Observable[list[T]]:
    """Batch *source* into lists of at most *count* elements.

    A batch is flushed when it reaches *count* elements, or *timespan*
    seconds after its first element arrived, whichever comes first.  Empty
    batches are never emitted.  When *token* is cancelled (or *source*
    completes) the partial batch is flushed before completion.
    """
    if token is not None:
        source = take_until(source, token)
    return _Buffer(source, timespan, count)


# ---------------------------------------------------------------------------
# Iteration
# ---------------------------------------------------------------------------

_DONE = object()


class _Raise:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


def to_iterator[T](source: Observable[T], *, maxsize: int = 0) -> Iterator[T]:
    """Iterate *source* lazily, blocking the consuming thread between values.

    The subscription is made on the first ``next()`` and released when the
    stream terminates or the generator is closed.  A stream error is
    re-raised from ``next()``.
    """
    inbox: queue.Queue[object] = queue.Queue(maxsize)
    subscription = source.subscribe(
        inbox.put,
        lambda error: inbox.put(_Raise(error)),
        lambda: inbox.put(_DONE),
    )
    try:
        while True:
            item = inbox.get()
            if item is _DONE:
                return
            if isinstance(item, _Raise):
                raise item.error
            yield item  # type: ignore[misc]
    finally:
        subscription.dispose()


async def to_async_iterator[T](source: Observable[T]) -> AsyncIterator[T]:
    """Iterate *source* from asyncio.

    Values arrive on the pump thread and are handed to the running loop
    with ``call_soon_threadsafe``.  Cancelling the consuming task releases
    the subscription.
    """
    loop = asyncio.get_running_loop()
    inbox: asyncio.Queue[object] = asyncio.Queue()

    def deliver(item: object) -> None:
        loop.call_soon_threadsafe(inbox.put_nowait, item)

    subscription = source.subscribe(
        deliver,
        lambda error: deliver(_Raise(error)),
        lambda: deliver(_DONE),
    )
    try:
        while True:
            item = await inbox.get()
            if item is _DONE:
                return
            if isinstance(item, _Raise):
                raise item.error
            yield item  # type: ignore[misc]
    finally:
        subscription.dispose()
