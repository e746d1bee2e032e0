"""Startup banner for ``etwstream watch``.

Printed to stderr so that stdout stays a clean JSON-lines stream.  Detects
``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from etwstream.config import EtwStreamConfig


# ---------------------------------------------------------------------------
# ANSI helpers — respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""
_MAGENTA = "\033[35m" if _COLOR else ""

_FLAVOR_STYLES: dict[str, tuple[str, str]] = {
    "FromTraceEvent": (_GREEN, "providers"),
    "FromTraceEventWithParser": (_CYAN, "parser"),
    "FromClrTraceEvent": (_MAGENTA, "clr"),
    "FromKernelTraceEvent": (_YELLOW, "kernel"),
}


def _flavor_badge(flavor: str) -> str:
    color, label = _FLAVOR_STYLES.get(flavor, (_DIM, flavor))
    return f"{color}[{label}]{_RESET}"


def format_banner(
    config: EtwStreamConfig,
    flavor: str,
    session_name: str,
    *,
    providers: list[str] | None = None,
    batching: tuple[float, int] | None = None,
    setup_ms: float = 0.0,
) -> str:
    """Build the banner text (without the trailing newline)."""
    from etwstream import __version__

    header = f"  {_BOLD}etwstream{_RESET} {_DIM}v{__version__}{_RESET}  {_flavor_badge(flavor)}"
    lines: list[str] = [
        "",
        header,
        f"  {_DIM}{'─' * 43}{_RESET}",
    ]

    timing = f" {_DIM}in {setup_ms:.0f}ms{_RESET}" if setup_ms > 0 else ""
    lines.append(f"  {_DIM}├─{_RESET} session {_BOLD}{session_name}{_RESET}{timing}")
    lines.append(f"  {_DIM}├─{_RESET} backend: {config.backend}")
    if config.backend == "file":
        lines.append(f"  {_DIM}├─{_RESET} trace file: {_DIM}{config.trace_path}{_RESET}")

    for provider in providers or ():
        lines.append(f"  {_DIM}├─{_RESET} {_GREEN}enabled{_RESET} {provider}")

    if batching is not None:
        timespan, count = batching
        lines.append(
            f"  {_DIM}└─{_RESET} batches of up to {count} events "
            f"every {timespan * 1000:.0f}ms"
        )
    else:
        lines.append(f"  {_DIM}└─{_RESET} one event per line")

    lines.append("")
    lines.append(f"  {_DIM}Streaming events, Ctrl-C to stop...{_RESET}")
    lines.append("")
    return "\n".join(lines)


def print_banner(
    config: EtwStreamConfig,
    flavor: str,
    session_name: str,
    *,
    providers: list[str] | None = None,
    batching: tuple[float, int] | None = None,
    setup_ms: float = 0.0,
) -> None:
    """Print the watch banner to stderr.

    Args:
        config: Resolved EtwStreamConfig.
        flavor: Stream flavor (``FromTraceEvent``, ``FromKernelTraceEvent``, ...).
        session_name: Name of the session backing the stream.
        providers: Human-readable providers that were enabled.
        batching: ``(timespan_seconds, count)`` when output is batched.
        setup_ms: Time spent setting the session up, in milliseconds.

    """
    text = format_banner(
        config,
        flavor,
        session_name,
        providers=providers,
        batching=batching,
        setup_ms=setup_ms,
    )
    print(text, file=sys.stderr)
