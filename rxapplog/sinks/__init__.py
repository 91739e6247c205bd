"""Log sinks: where the pipeline delivers its batches."""

from .base import InsertResult, LogSink
from .file import JsonlFileLogSink, read_jsonl_rows
from .memory import MemoryLogSink
from .websocket import WebSocketLogSink

__all__ = [
    "InsertResult",
    "LogSink",
    "MemoryLogSink",
    "JsonlFileLogSink",
    "read_jsonl_rows",
    "WebSocketLogSink",
]
