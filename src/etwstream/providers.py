"""Tracing providers — identities, levels, and kernel keyword flags.

A provider is a named source of trace events.  It is identified either by
GUID or by an EventSource name, in which case the GUID is derived from the
name the same way ``System.Diagnostics.Tracing.EventSource`` derives it
(SHA-1 over a fixed namespace plus the upper-cased, UTF-16BE encoded name).
"""

from __future__ import annotations

import enum
import hashlib
import uuid
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Well-known providers
# ---------------------------------------------------------------------------

CLR_PROVIDER_GUID = uuid.UUID("e13c0d23-ccbc-4e12-931b-d9cc2eee27e4")
KERNEL_PROVIDER_GUID = uuid.UUID("9e814aad-3204-11d2-9a82-006008a86939")

_EVENTSOURCE_NAMESPACE = bytes(
    (0x48, 0x2C, 0x2D, 0xB2, 0xC3, 0x90, 0x47, 0xC8,
     0x87, 0xF8, 0x1A, 0x15, 0xBF, 0xC1, 0x30, 0xFB)
)

ALL_KEYWORDS = 0xFFFFFFFFFFFFFFFF


class TraceEventLevel(enum.IntEnum):
    """Verbosity level a provider is enabled with."""

    ALWAYS = 0
    CRITICAL = 1
    ERROR = 2
    WARNING = 3
    INFORMATIONAL = 4
    VERBOSE = 5


class KernelKeywords(enum.IntFlag):
    """Kernel provider keyword flags."""

    NONE = 0
    PROCESS = 0x00000001
    THREAD = 0x00000002
    IMAGE_LOAD = 0x00000004
    PROCESS_COUNTERS = 0x00000008
    CONTEXT_SWITCH = 0x00000010
    DEFERED_PROCEDURE_CALLS = 0x00000020
    INTERRUPT = 0x00000040
    SYSTEM_CALL = 0x00000080
    DISK_IO = 0x00000100
    DISK_FILE_IO = 0x00000200
    DISK_IO_INIT = 0x00000400
    DISPATCHER = 0x00000800
    MEMORY = 0x00001000
    MEMORY_HARD_FAULTS = 0x00002000
    VIRTUAL_ALLOC = 0x00004000
    VA_MAP = 0x00008000
    NETWORK_TCPIP = 0x00010000
    REGISTRY = 0x00020000
    ADVANCED_LOCAL_PROCEDURE_CALLS = 0x00100000
    SPLIT_IO = 0x00200000
    DRIVER = 0x00800000
    PROFILE = 0x01000000
    FILE_IO = 0x02000000
    FILE_IO_INIT = 0x04000000

    DEFAULT = (
        DISK_IO | DISK_FILE_IO | DISK_IO_INIT | IMAGE_LOAD | MEMORY_HARD_FAULTS
        | NETWORK_TCPIP | PROCESS | PROCESS_COUNTERS | PROFILE | THREAD
    )


def parse_kernel_keywords(text: str) -> KernelKeywords:
    """Parse ``"process|thread"`` (names, case-insensitive) or an integer literal."""
    text = text.strip()
    if not text:
        return KernelKeywords.NONE
    try:
        return KernelKeywords(int(text, 0))
    except ValueError:
        pass
    flags = KernelKeywords.NONE
    for part in text.replace(",", "|").split("|"):
        name = part.strip().upper().replace("-", "_")
        if not name:
            continue
        try:
            flags |= KernelKeywords[name]
        except KeyError:
            msg = f"unknown kernel keyword {part.strip()!r}"
            raise ValueError(msg) from None
    return flags


def guid_from_eventsource_name(name: str) -> uuid.UUID:
    """Derive the provider GUID an EventSource named *name* registers under."""
    digest = hashlib.sha1(
        _EVENTSOURCE_NAMESPACE + name.upper().encode("utf-16-be"),
        usedforsecurity=False,
    ).digest()
    raw = bytearray(digest[:16])
    raw[7] = (raw[7] & 0x0F) | 0x50
    return uuid.UUID(bytes_le=bytes(raw))


def resolve_provider_guid(name_or_guid: str | uuid.UUID) -> uuid.UUID:
    """Return the GUID for a provider given by GUID or EventSource name.

    Raises:
        ValueError: If *name_or_guid* is empty.

    """
    if isinstance(name_or_guid, uuid.UUID):
        return name_or_guid
    text = name_or_guid.strip()
    if not text:
        msg = "provider name or GUID must not be empty"
        raise ValueError(msg)
    try:
        return uuid.UUID(text)
    except ValueError:
        return guid_from_eventsource_name(text)


@dataclass(frozen=True, slots=True)
class ProviderSpec:
    """A provider to enable on a session.

    Attributes:
        name_or_guid: EventSource name (e.g. ``"MyEventSource"``) or GUID.
        level: Verbosity level to enable the provider with.
        match_any_keywords: Keyword mask; defaults to every keyword.

    """

    name_or_guid: str | uuid.UUID
    level: TraceEventLevel = TraceEventLevel.VERBOSE
    match_any_keywords: int = ALL_KEYWORDS

    @property
    def guid(self) -> uuid.UUID:
        """Resolved provider GUID."""
        return resolve_provider_guid(self.name_or_guid)

    @classmethod
    def of(
        cls,
        value: ProviderSpec | str | uuid.UUID,
        level: TraceEventLevel = TraceEventLevel.VERBOSE,
    ) -> ProviderSpec:
        """Coerce a name, GUID, or existing spec into a ProviderSpec."""
        if isinstance(value, ProviderSpec):
            return value
        return cls(name_or_guid=value, level=level)

    def __str__(self) -> str:
        return f"{self.name_or_guid}@{self.level.name}"
