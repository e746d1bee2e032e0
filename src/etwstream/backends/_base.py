"""Callback and provider bookkeeping shared by the built-in backends."""

from __future__ import annotations

import itertools
import threading
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from etwstream.providers import KERNEL_PROVIDER_GUID, KernelKeywords, TraceEventLevel

if TYPE_CHECKING:
    from etwstream._types import EventCallback, ManifestCallback, Unregister
    from etwstream.events import ProviderManifest, TraceEvent


class CallbackSource:
    """Holds a source's event and manifest callbacks.

    Callbacks are invoked outside the lock, in registration order, on the
    thread that runs ``process()``.  An exception raised by a callback
    propagates out of ``process()``.

    """

    def __init__(self) -> None:
        self._event_callbacks: dict[int, EventCallback] = {}
        self._manifest_callbacks: dict[int, ManifestCallback] = {}
        self._keys = itertools.count()
        self._lock = threading.Lock()

    def add_event_callback(self, callback: EventCallback) -> Unregister:
        key = next(self._keys)
        with self._lock:
            self._event_callbacks[key] = callback

        def unregister() -> None:
            with self._lock:
                self._event_callbacks.pop(key, None)

        return unregister

    def add_manifest_callback(self, callback: ManifestCallback) -> Unregister:
        key = next(self._keys)
        with self._lock:
            self._manifest_callbacks[key] = callback

        def unregister() -> None:
            with self._lock:
                self._manifest_callbacks.pop(key, None)

        return unregister

    @property
    def callback_count(self) -> int:
        """Registered event plus manifest callbacks."""
        with self._lock:
            return len(self._event_callbacks) + len(self._manifest_callbacks)

    def _deliver_event(self, event: TraceEvent) -> None:
        with self._lock:
            callbacks = tuple(self._event_callbacks.values())
        for callback in callbacks:
            callback(event)

    def _deliver_manifest(self, manifest: ProviderManifest) -> None:
        with self._lock:
            callbacks = tuple(self._manifest_callbacks.values())
        for callback in callbacks:
            callback(manifest)


@dataclass(frozen=True, slots=True)
class _Enabled:
    level: TraceEventLevel
    match_any_keywords: int


class ProviderTable:
    """Providers enabled on one session, and the filter they imply."""

    def __init__(self) -> None:
        self._providers: dict[uuid.UUID, _Enabled] = {}
        self._kernel_flags = KernelKeywords.NONE
        self._lock = threading.Lock()

    def enable(self, provider_guid: uuid.UUID, level: TraceEventLevel, match_any_keywords: int) -> None:
        with self._lock:
            self._providers[provider_guid] = _Enabled(level, match_any_keywords)

    def enable_kernel(self, flags: KernelKeywords) -> None:
        with self._lock:
            self._kernel_flags |= flags

    @property
    def kernel_flags(self) -> KernelKeywords:
        return self._kernel_flags

    def guids(self) -> frozenset[uuid.UUID]:
        with self._lock:
            providers = set(self._providers)
            if self._kernel_flags:
                providers.add(KERNEL_PROVIDER_GUID)
        return frozenset(providers)

    def accepts(self, event: TraceEvent) -> bool:
        """Whether an enabled provider would log *event* at its level."""
        with self._lock:
            if event.provider_guid == KERNEL_PROVIDER_GUID:
                return bool(self._kernel_flags)
            enabled = self._providers.get(event.provider_guid)
        return enabled is not None and event.level <= enabled.level

    def announces(self, manifest: ProviderManifest) -> bool:
        """Manifests are only announced by providers enabled on the session."""
        with self._lock:
            return manifest.provider_guid in self._providers
