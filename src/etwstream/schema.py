"""Schema cache — process-wide store of provider manifests.

Manifests are announced asynchronously by providers on any active session.
The bridge writes them here from the manifest-notification path before the
provider is enabled; decoders read them back to interpret later events.
The bridge itself never reads the cache.

Thread Safety:
    ``put`` and ``get`` are protected by a ``threading.Lock``.  Pump
    threads of concurrent sessions may write simultaneously.

"""

from __future__ import annotations

import threading
import uuid

from etwstream.events import ProviderManifest


class SchemaCache:
    """Provider manifests keyed by provider GUID."""

    __slots__ = ("_entries", "_lock")

    def __init__(self) -> None:
        self._entries: dict[uuid.UUID, ProviderManifest] = {}
        self._lock = threading.Lock()

    def put(self, manifest: ProviderManifest) -> None:
        """Insert or replace the manifest for ``manifest.provider_guid``."""
        with self._lock:
            self._entries[manifest.provider_guid] = manifest

    def get(self, provider_guid: uuid.UUID) -> ProviderManifest | None:
        with self._lock:
            return self._entries.get(provider_guid)

    def clear(self) -> int:
        """Drop every entry and return how many were dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __contains__(self, provider_guid: object) -> bool:
        with self._lock:
            return provider_guid in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_cache = SchemaCache()


def default_schema_cache() -> SchemaCache:
    """The process-wide cache used when no explicit cache is supplied."""
    return _default_cache
