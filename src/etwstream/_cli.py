"""etwstream CLI — etwstream sessions / etwstream clear / etwstream watch.

Entry point for the ``etwstream`` command-line interface.
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from etwstream.config import EtwStreamConfig
    from etwstream.reactive.stream import EventStream


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the etwstream CLI."""
    from etwstream.providers import TraceEventLevel

    parser = argparse.ArgumentParser(
        prog="etwstream",
        description="Stream realtime trace sessions as observable event streams.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    # Shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--root", default=".", help="Directory holding etwstream.yaml/.toml")
    common.add_argument("--backend", default=None, help="Tracing backend (memory, file)")
    common.add_argument("--trace-file", default=None, help="Event file for the file backend")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # etwstream sessions
    sessions_parser = subparsers.add_parser(
        "sessions",
        parents=[common],
        help="List active sessions created by etwstream",
    )
    sessions_parser.add_argument("--prefix", default=None, help="Session name prefix")

    # etwstream clear
    clear_parser = subparsers.add_parser(
        "clear",
        parents=[common],
        help="Dispose leftover active sessions",
    )
    clear_parser.add_argument("--prefix", default=None, help="Session name prefix")

    # etwstream watch
    watch_parser = subparsers.add_parser(
        "watch",
        parents=[common],
        help="Print events as JSON lines until interrupted",
    )
    watch_parser.add_argument(
        "providers", nargs="*", help="EventSource names or provider GUIDs",
    )
    watch_parser.add_argument(
        "--level",
        choices=[level.name.lower() for level in TraceEventLevel],
        default=None,
        help="Level for the given providers",
    )
    flavor = watch_parser.add_mutually_exclusive_group()
    flavor.add_argument("--clr", action="store_true", help="Watch .NET runtime events")
    flavor.add_argument("--kernel", metavar="FLAGS", default=None, help="Kernel keywords, e.g. process|thread")
    flavor.add_argument("--parser", metavar="KEY", default=None, help="Registered parser key")
    watch_parser.add_argument(
        "--buffer-ms", type=float, default=None, help="Emit batches every N milliseconds",
    )
    watch_parser.add_argument(
        "--buffer-count", type=int, default=None, help="Maximum events per batch",
    )

    return parser


def _get_version() -> str:
    """Get the package version."""
    from etwstream import __version__

    return __version__


def _load(args: argparse.Namespace) -> EtwStreamConfig:
    from etwstream.config_loader import load_config

    return load_config(args.root, backend=args.backend, trace_file=args.trace_file)


def _to_json(value: Any) -> Any:
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    to_dict = getattr(value, "to_dict", None)
    return to_dict() if callable(to_dict) else value


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _sessions(args: argparse.Namespace) -> int:
    from etwstream.listener import active_sessions

    config = _load(args)
    for name in active_sessions(args.prefix, config=config):
        print(name)
    return 0


def _clear(args: argparse.Namespace) -> int:
    from etwstream.listener import clear_all_active_sessions

    config = _load(args)
    count = clear_all_active_sessions(args.prefix, config=config)
    print(f"Cleared ActiveSession's Count:{count}")
    return 0


def _open_watch_stream(
    args: argparse.Namespace,
    config: EtwStreamConfig,
) -> tuple[EventStream[Any], str, list[str]]:
    from etwstream import listener
    from etwstream.providers import TraceEventLevel, parse_kernel_keywords

    if args.clr:
        return listener.from_clr_trace_event(config=config), "FromClrTraceEvent", ["clr"]
    if args.kernel is not None:
        flags = parse_kernel_keywords(args.kernel)
        stream = listener.from_kernel_trace_event(flags, config=config)
        return stream, "FromKernelTraceEvent", [f"kernel {flags!r}"]
    if args.parser is not None:
        stream = listener.from_parser(args.parser, config=config)
        return stream, "FromTraceEventWithParser", [f"parser {args.parser}"]
    level = TraceEventLevel[args.level.upper()] if args.level else None
    stream = listener.from_trace_event(*args.providers, level=level, config=config)
    return stream, "FromTraceEvent", list(args.providers)


def _watch(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    from etwstream.banner import print_banner
    from etwstream.service import complete_service, get_service

    if not (args.providers or args.clr or args.kernel is not None or args.parser is not None):
        parser.error("watch needs at least one provider, or --clr, --kernel or --parser")

    config = _load(args)
    started = time.perf_counter()
    stream, flavor, enabled = _open_watch_stream(args, config)
    setup_ms = (time.perf_counter() - started) * 1000

    service = get_service()
    source = stream.take_until(service.terminate_token)
    batching: tuple[float, int] | None = None
    if args.buffer_ms is not None or args.buffer_count is not None:
        timespan = args.buffer_ms / 1000 if args.buffer_ms is not None else config.buffer_timespan
        count = args.buffer_count if args.buffer_count is not None else config.buffer_count
        batching = (timespan, count)
        source = source.buffer(timespan, count)

    print_banner(
        config,
        flavor,
        stream.session_name,
        providers=enabled,
        batching=batching,
        setup_ms=setup_ms,
    )

    done = threading.Event()
    failures: list[BaseException] = []

    def emit(value: Any) -> None:
        print(json.dumps(_to_json(value), default=str), flush=True)

    def fail(error: BaseException) -> None:
        failures.append(error)
        done.set()

    service.container.add(source.subscribe(emit, fail, done.set))
    try:
        while not done.wait(0.2):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        complete_service()
        stream.join(config.worker_join_timeout)

    if failures:
        print(f"etwstream: {failures[0]}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from etwstream._errors import EtwStreamError

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        if args.command == "sessions":
            code = _sessions(args)
        elif args.command == "clear":
            code = _clear(args)
        else:
            code = _watch(args, parser)
    except (EtwStreamError, ValueError) as exc:
        print(f"etwstream: error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
