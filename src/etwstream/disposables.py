"""Disposables — subscription handles and the aggregate subscription container.

A disposable releases exactly one resource, once.  ``SubscriptionContainer``
lets a host collect many independent stream subscriptions and release them
as a unit, typically at shutdown.

Thread Safety:
    ``Subscription.dispose`` and every ``SubscriptionContainer`` method are
    safe to call from any thread.  A member added while the container is
    being disposed is disposed by the adding thread.

"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol, Self, runtime_checkable


@runtime_checkable
class Disposable(Protocol):
    """Anything with an idempotent ``dispose()``."""

    def dispose(self) -> None: ...


class Subscription:
    """Runs a release action at most once.

    Args:
        action: Callable invoked on the first ``dispose()``; later calls
            are no-ops.

    """

    __slots__ = ("_action", "_lock")

    def __init__(self, action: Callable[[], None] | None = None) -> None:
        self._action = action
        self._lock = threading.Lock()

    @property
    def is_disposed(self) -> bool:
        return self._action is None

    def dispose(self) -> None:
        with self._lock:
            action, self._action = self._action, None
        if action is not None:
            action()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()


def empty() -> Subscription:
    """A subscription that releases nothing."""
    return Subscription()


class SubscriptionContainer:
    """Unordered set of disposables released together.

    Disposing the container disposes every member exactly once, regardless
    of insertion order, and is idempotent.  Adding to an already-disposed
    container disposes the new member immediately.

    """

    __slots__ = ("_disposed", "_lock", "_members")

    def __init__(self) -> None:
        self._members: dict[int, Disposable] = {}
        self._disposed = False
        self._lock = threading.Lock()

    @property
    def is_disposed(self) -> bool:
        with self._lock:
            return self._disposed

    def add(self, subscription: Disposable) -> None:
        """Track *subscription*, or dispose it now if the container is gone."""
        with self._lock:
            if not self._disposed:
                self._members[id(subscription)] = subscription
                return
        subscription.dispose()

    def remove(self, subscription: Disposable) -> bool:
        """Stop tracking *subscription* and dispose it.  Returns False if absent."""
        with self._lock:
            found = self._members.pop(id(subscription), None)
        if found is None:
            return False
        found.dispose()
        return True

    def dispose(self) -> None:
        """Dispose every member.  Safe to call more than once."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            members = list(self._members.values())
            self._members.clear()
        for member in members:
            member.dispose()

    dispose_all = dispose

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()


def add_to[D: Disposable](subscription: D, container: SubscriptionContainer) -> D:
    """Add *subscription* to *container* and return it, for chaining."""
    container.add(subscription)
    return subscription
