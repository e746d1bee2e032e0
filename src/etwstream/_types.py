"""Shared type definitions for etwstream."""

from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from etwstream.events import ProviderManifest, TraceEvent

# Raw feed callback invoked synchronously by a session's pump
type EventCallback = Callable[[TraceEvent], None]

# Manifest-announcement callback
type ManifestCallback = Callable[[ProviderManifest], None]

# Removes a previously registered callback
type Unregister = Callable[[], None]
