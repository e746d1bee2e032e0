"""JSON-lines file backend — tails an event file written by another process.

Each session reads records appended to the file after the session was
created.  Changes are detected with watchfiles; the pump thread blocks in
``watchfiles.watch`` until the session's stop event is set by ``dispose()``.

Record format, one JSON object per line::

    {"provider": "MyEventSource", "event_name": "Start", "event_id": 1,
     "level": "INFORMATIONAL", "payload": {"x": 1}}

    {"provider": "MyEventSource", "provider_name": "MyEventSource",
     "manifest": "<instrumentationManifest ... />"}

``provider`` is a GUID or an EventSource name.  A line with a ``manifest``
key is a schema announcement: it raises the manifest notification and then
delivers the ``ManifestData`` record on the raw feed.
"""

from __future__ import annotations

import json
import threading
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from watchfiles import Change, watch

from etwstream._errors import ConfigError
from etwstream.backends._base import CallbackSource, ProviderTable
from etwstream.events import ProviderManifest, TraceEvent
from etwstream.providers import KernelKeywords, TraceEventLevel, resolve_provider_guid

if TYPE_CHECKING:
    from etwstream.backends import TraceSession


def _parse_level(value: Any) -> TraceEventLevel:
    if isinstance(value, str):
        return TraceEventLevel[value.upper()]
    return TraceEventLevel(int(value))


def decode_record(line: str) -> TraceEvent | ProviderManifest:
    """Decode one JSON line.

    Raises:
        ValueError: On malformed JSON or a record missing required keys.

    """
    try:
        data = json.loads(line)
        guid = resolve_provider_guid(data["provider"])
        if "manifest" in data:
            return ProviderManifest(
                provider_guid=guid,
                provider_name=data.get("provider_name", ""),
                manifest=data["manifest"],
            )
        return TraceEvent(
            provider_guid=guid,
            event_name=data["event_name"],
            event_id=int(data["event_id"]),
            provider_name=data.get("provider_name", ""),
            level=_parse_level(data.get("level", TraceEventLevel.INFORMATIONAL)),
            payload=data.get("payload", {}),
        )
    except (KeyError, TypeError, json.JSONDecodeError) as exc:
        msg = f"malformed trace record: {line.strip()[:200]!r}"
        raise ValueError(msg) from exc


class FileTraceSource(CallbackSource):
    """Reads newly appended records and hands them to callbacks."""

    def __init__(self, session: FileTraceSession) -> None:
        super().__init__()
        self._session = session

    def process(self) -> None:
        """Tail the file until the session is disposed.

        Raises:
            ValueError: If a malformed record is read.

        """
        session = self._session
        target = session.path

        def only_target(change: Change, path: str) -> bool:
            return Path(path) == target

        self._drain()
        for _changes in watch(
            target.parent,
            watch_filter=only_target,
            stop_event=session.stop_event,
            debounce=50,
            step=20,
            recursive=False,
        ):
            self._drain()

    def _drain(self) -> None:
        for record in self._session.read_new_records():
            if isinstance(record, ProviderManifest):
                if not self._session.providers.announces(record):
                    continue
                self._deliver_manifest(record)
                self._deliver_event(record.as_event())
            elif self._session.providers.accepts(record):
                self._deliver_event(record)


class FileTraceSession:
    """A session tailing ``backend.path`` from its size at creation time."""

    def __init__(self, backend: FileTraceBackend, name: str) -> None:
        self._backend = backend
        self._name = name
        self.path = backend.path
        self.providers = ProviderTable()
        self.stop_event = threading.Event()
        self._offset = self.path.stat().st_size if self.path.exists() else 0
        self._source = FileTraceSource(self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> FileTraceSource:
        return self._source

    @property
    def is_disposed(self) -> bool:
        return self.stop_event.is_set()

    def enable_provider(
        self,
        provider_guid: uuid.UUID,
        level: TraceEventLevel,
        match_any_keywords: int,
    ) -> None:
        self._check_live()
        self.providers.enable(provider_guid, level, match_any_keywords)

    def enable_kernel_provider(
        self,
        flags: KernelKeywords,
        stack_capture: KernelKeywords,
    ) -> None:
        self._check_live()
        self.providers.enable_kernel(flags)

    def read_new_records(self) -> list[TraceEvent | ProviderManifest]:
        """Decode complete lines appended since the last read."""
        if not self.path.exists():
            return []
        size = self.path.stat().st_size
        if size < self._offset:
            # truncated or replaced
            self._offset = 0
        with self.path.open("rb") as fh:
            fh.seek(self._offset)
            chunk = fh.read()
        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        self._offset += end + 1
        lines = chunk[: end + 1].decode("utf-8").splitlines()
        return [decode_record(line) for line in lines if line.strip()]

    def dispose(self) -> None:
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        self._backend._release(self._name)

    def _check_live(self) -> None:
        if self.stop_event.is_set():
            msg = f"session {self._name!r} is disposed"
            raise RuntimeError(msg)


class FileTraceBackend:
    """Backend whose sessions tail one JSON-lines file.

    Args:
        path: The event file.  Its directory must exist; the file itself
            may be created later.

    Raises:
        ConfigError: If no path is configured.

    """

    def __init__(self, path: Path | None) -> None:
        if path is None:
            msg = "the file backend needs trace_file to be configured"
            raise ConfigError(msg)
        self.path = Path(path).resolve()
        self._sessions: dict[str, FileTraceSession] = {}
        self._lock = threading.Lock()

    def create_session(self, name: str) -> FileTraceSession:
        if not self.path.parent.is_dir():
            msg = f"trace directory {self.path.parent} does not exist"
            raise FileNotFoundError(msg)
        with self._lock:
            if name in self._sessions:
                msg = f"session {name!r} already exists"
                raise FileExistsError(msg)
            session = FileTraceSession(self, name)
            self._sessions[name] = session
            return session

    def active_session_names(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def get_active_session(self, name: str) -> TraceSession | None:
        with self._lock:
            return self._sessions.get(name)

    def _release(self, name: str) -> None:
        with self._lock:
            self._sessions.pop(name, None)
