"""Convenience exports for the :mod:`rxapplog` package."""

__version__ = "0.1.0"

from .archive import archive_filename, archived_logs, export_logs, mark_archived, recent_logs  # noqa: F401, E402
from .capture import GlobalErrorCapture  # noqa: F401, E402
from .collector import RxLogCollectorServer  # noqa: F401, E402
from .config import PipelineConfig, RetryPolicy, WSConnectionConfig  # noqa: F401, E402
from .console import ConsoleMirror, format_console_line  # noqa: F401, E402
from .deals import (  # noqa: F401, E402
    Deal,
    DealChange,
    DealChangeType,
    DealsRepository,
    LiveDeals,
    apply_deal_change,
)
from .entry import JSONValue, LogEntry, LogLevel, LogRow, QueuedLogEntry  # noqa: F401, E402
from .logging import (  # noqa: F401, E402
    EmptyLogComp,
    LogComp,
    NamedLogComp,
    drop_log,
    keep_log,
    log_filter,
    log_redirect_to,
)
from .mechanism import AppLogException  # noqa: F401, E402
from .pipeline import FlushOutcome, LogPipeline  # noqa: F401, E402
from .sinks import (  # noqa: F401, E402
    InsertResult,
    JsonlFileLogSink,
    LogSink,
    MemoryLogSink,
    WebSocketLogSink,
    read_jsonl_rows,
)

__all__ = [
    "__version__",
    "AppLogException",

    # entries
    "JSONValue",
    "LogLevel",
    "LogEntry",
    "QueuedLogEntry",
    "LogRow",

    # pipeline
    "PipelineConfig",
    "RetryPolicy",
    "LogPipeline",
    "FlushOutcome",
    "GlobalErrorCapture",
    "ConsoleMirror",
    "format_console_line",

    # components and operators
    "LogComp",
    "EmptyLogComp",
    "NamedLogComp",
    "keep_log",
    "log_filter",
    "drop_log",
    "log_redirect_to",

    # sinks and store views
    "InsertResult",
    "LogSink",
    "MemoryLogSink",
    "JsonlFileLogSink",
    "WebSocketLogSink",
    "read_jsonl_rows",
    "mark_archived",
    "recent_logs",
    "archived_logs",
    "archive_filename",
    "export_logs",

    # WebSocket
    "WSConnectionConfig",
    "RxLogCollectorServer",

    # deals
    "Deal",
    "DealChange",
    "DealChangeType",
    "DealsRepository",
    "LiveDeals",
    "apply_deal_change",
]
