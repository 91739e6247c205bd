"""The ``rxapplog`` command line.

    rxapplog collector --host :: --port 8765 --logfile logs/app.jsonl
    rxapplog emit --host localhost --port 8765 --level warn --count 3 "Disk almost full"
    rxapplog export-archive --logfile logs/app.jsonl --out archives/
"""

import argparse
import asyncio
import time
from collections.abc import Sequence

from .archive import archived_logs, export_logs, mark_archived
from .collector import RxLogCollectorServer
from .config import PipelineConfig, WSConnectionConfig
from .console import format_console_line
from .entry import LogEntry, LogLevel
from .pipeline import LogPipeline
from .sinks import JsonlFileLogSink, LogSink, MemoryLogSink, WebSocketLogSink, read_jsonl_rows
from .telemetry import get_default_logger_provider


def _level_names() -> list[str]:
    return [level.value for level in LogLevel]


# ---------------- collector ---------------- #
def build_collector_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser("collector", help="run a log collector.")
    parser.add_argument("--host", type=str, default="::")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--logfile", type=str, default=None,
                        help="store rows in this JSON-lines file instead of memory")
    parser.add_argument("--keep-recent", type=int, default=3)
    parser.set_defaults(func=task_collector)


def _print_row(row: dict) -> None:
    try:
        entry = LogEntry.create(row.get("level", "info"), str(row.get("message", "")),
                                row.get("context") or None)
    except ValueError:
        print(row)
        return
    print(format_console_line(entry), end="")


def task_collector(parsed_args: argparse.Namespace) -> int:
    store: LogSink
    if parsed_args.logfile:
        store = JsonlFileLogSink(parsed_args.logfile)
    else:
        store = MemoryLogSink(keep_recent=parsed_args.keep_recent)

    collector = RxLogCollectorServer(
        WSConnectionConfig(parsed_args.host, parsed_args.port),
        store=store,
        logger_provider=get_default_logger_provider(),
    )
    collector.subscribe(on_next=_print_row, on_error=lambda e: print(f"Error: {e}"))
    if not collector.wait_until_serving():
        collector.on_completed()
        return 1

    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("\nKeyboard Interrupt.")
    finally:
        collector.on_completed()
    return 0


# ---------------- emit ---------------- #
def build_emit_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser("emit", help="send log entries to a collector.")
    parser.add_argument("--host", type=str, default="localhost")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--level", type=str, default="info", choices=_level_names())
    parser.add_argument("--count", type=int, default=1)
    parser.add_argument("--source", type=str, default="cli")
    parser.add_argument("message", type=str)
    parser.set_defaults(func=task_emit)


def task_emit(parsed_args: argparse.Namespace) -> int:
    level = LogLevel.parse(parsed_args.level)

    async def _emit() -> bool:
        sink = WebSocketLogSink(
            WSConnectionConfig(parsed_args.host, parsed_args.port),
            logger_provider=get_default_logger_provider(),
        )
        pipeline = LogPipeline(
            sink,
            PipelineConfig(min_level=LogLevel.DEBUG, source=parsed_args.source),
            capture_errors=False,
            logger_provider=get_default_logger_provider(),
        )
        for i in range(parsed_args.count):
            pipeline.log(level, parsed_args.message, {"seq": i})
        # closing drains the queue while the collector accepts batches
        await pipeline.aclose()
        return pipeline.pending == 0

    return 0 if asyncio.run(_emit()) else 1


# ---------------- export-archive ---------------- #
def build_export_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser(
        "export-archive", help="export the archived rows of a JSON-lines log."
    )
    parser.add_argument("--logfile", type=str, required=True)
    parser.add_argument("--out", type=str, required=True)
    parser.add_argument("--keep-recent", type=int, default=3)
    parser.add_argument("--limit", type=int, default=100)
    parser.set_defaults(func=task_export_archive)


def task_export_archive(parsed_args: argparse.Namespace) -> int:
    rows = read_jsonl_rows(parsed_args.logfile)
    mark_archived(rows, parsed_args.keep_recent)
    archived = archived_logs(rows, parsed_args.limit)
    path = export_logs(archived, parsed_args.out)
    print(f"Exported {len(archived)} archived rows to {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rxapplog", description="rxapplog tools")
    subparsers = parser.add_subparsers(dest="command", required=True)
    build_collector_parser(subparsers)
    build_emit_parser(subparsers)
    build_export_parser(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parsed_args = build_parser().parse_args(argv)
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    raise SystemExit(main())
