"""Log entry data model.

A :class:`LogEntry` is what callers hand to the pipeline. Once it passes the
severity filter it is enriched into a :class:`QueuedLogEntry`, and a flush
turns queued entries into :class:`LogRow` dictionaries for the sink.
"""

import functools
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypedDict

from .utils import get_full_error_info

type JSONValue = (
    str | int | float | bool | None | list[JSONValue] | dict[str, JSONValue]
)


@functools.total_ordering
class LogLevel(Enum):
    """Log severities, ordered debug < info < warn < error < fatal."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.severity < other.severity

    @classmethod
    def parse(cls, value: "LogLevel | str") -> "LogLevel":
        """Accept a level or its name (any case, ``warning``/``critical`` aliases)."""
        if isinstance(value, LogLevel):
            return value
        name = str(value).strip().lower()
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise ValueError(
                f"Unknown log level {value!r}."
                f" Expected one of {', '.join(level.value for level in cls)}."
            ) from None


_SEVERITY = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
    LogLevel.FATAL: 4,
}

_ALIASES = {"warning": "warn", "critical": "fatal"}


def to_json_value(value: Any) -> JSONValue:
    """Coerce ``value`` into the :data:`JSONValue` union.

    Nothing is rejected: unknown objects and non-finite floats fall back to
    their ``str()`` form.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_value(v) for v in value]
    return str(value)


def normalize_context(context: Mapping[str, Any] | None) -> dict[str, JSONValue]:
    if not context:
        return {}
    return {str(k): to_json_value(v) for k, v in context.items()}


def utc_timestamp() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LogEntry:
    """A caller-supplied log entry."""

    level: LogLevel
    message: str
    context: dict[str, JSONValue] = field(default_factory=dict)
    source: str | None = None
    stack_trace: str | None = None

    @classmethod
    def create(
        cls,
        level: LogLevel | str,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
        source: str | None = None,
    ) -> "LogEntry":
        """Build an entry, folding ``error`` into the context and stack trace."""
        ctx = normalize_context(context)
        stack_trace = None
        if error is not None:
            ctx["error_name"] = type(error).__name__
            stack_trace = get_full_error_info(error)
        return cls(
            level=LogLevel.parse(level),
            message=message,
            context=ctx,
            source=source,
            stack_trace=stack_trace,
        )


class LogRow(TypedDict):
    """Row shape accepted by a :class:`~rxapplog.sinks.LogSink`."""

    level: str
    message: str
    context: dict[str, JSONValue]
    source: str
    session_id: str
    url: str
    user_agent: str
    stack_trace: str | None
    created_at: str


@dataclass(frozen=True)
class QueuedLogEntry:
    """A :class:`LogEntry` enriched at enqueue time."""

    level: LogLevel
    message: str
    context: dict[str, JSONValue]
    source: str
    stack_trace: str | None
    url: str
    user_agent: str
    session_id: str
    created_at: str

    @classmethod
    def enrich(
        cls,
        entry: LogEntry,
        *,
        default_source: str,
        url: str,
        user_agent: str,
        session_id: str,
    ) -> "QueuedLogEntry":
        return cls(
            level=entry.level,
            message=entry.message,
            context=dict(entry.context),
            source=entry.source or default_source,
            stack_trace=entry.stack_trace,
            url=url,
            user_agent=user_agent,
            session_id=session_id,
            created_at=utc_timestamp(),
        )

    def to_row(self) -> LogRow:
        return LogRow(
            level=self.level.value,
            message=self.message,
            context=dict(self.context),
            source=self.source,
            session_id=self.session_id,
            url=self.url,
            user_agent=self.user_agent,
            stack_trace=self.stack_trace,
            created_at=self.created_at,
        )
