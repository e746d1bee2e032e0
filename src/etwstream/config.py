"""etwstream configuration.

EtwStreamConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

from etwstream.providers import TraceEventLevel


@dataclass(frozen=True, slots=True)
class EtwStreamConfig:
    """Configuration for the stream factories and the CLI.

    Attributes:
        root: Directory relative paths resolve against.  Always absolute
              after construction.
        backend: Registered backend name (``memory`` or ``file``).
        trace_file: Event file tailed by the ``file`` backend.
        session_prefix: Prefix of every session name this bridge creates;
            ``clear_all_active_sessions`` matches on it.
        default_level: Level for providers given by bare name or GUID.
        eager_start: Start the pump worker when a stream is built rather
            than on its first subscriber.
        worker_join_timeout: Seconds the CLI waits for pump threads on exit.
        buffer_timespan: Default batch window in seconds.
        buffer_count: Default maximum batch size.
        event_log_size: Capacity of the observability event log.

    """

    root: Path = field(default_factory=Path.cwd)
    backend: str = "memory"
    trace_file: Path | None = None
    session_prefix: str = "ObservableEventListener"
    default_level: TraceEventLevel = TraceEventLevel.VERBOSE
    eager_start: bool = True
    worker_join_timeout: float = 5.0
    buffer_timespan: float = 1.0
    buffer_count: int = 1000
    event_log_size: int = 10_000

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())

    @property
    def trace_path(self) -> Path | None:
        """Absolute path of ``trace_file``, if one is configured."""
        if self.trace_file is None:
            return None
        if self.trace_file.is_absolute():
            return self.trace_file
        return self.root / self.trace_file

    def session_prefix_for(self, flavor: str) -> str:
        """Name prefix for sessions of one stream flavor."""
        return f"{self.session_prefix}{flavor}Session"
