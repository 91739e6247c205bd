"""OTel log-record exporters.

:class:`ConsoleLogRecordExporter` prints rxapplog's own diagnostics to
stderr. :class:`PipelineLogRecordExporter` goes the other way: it feeds log
records produced through the OTel API into a
:class:`~rxapplog.pipeline.LogPipeline`, so OTel-instrumented code ends up in
the same log store as everything else.
"""

import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from opentelemetry._logs import LogRecord, SeverityNumber
from opentelemetry.sdk._logs.export import LogRecordExporter, LogRecordExportResult

from ..entry import LogLevel

if TYPE_CHECKING:
    from opentelemetry.sdk._logs._internal import ReadableLogRecord

    from ..pipeline import LogPipeline


def format_diagnostic_record(record: LogRecord) -> str:
    """
    Format a diagnostic record as one line.

    Format: YYYY-MM-DDTHH:MM:SSZ [LEVEL] component: body key=value ...
    """
    timestamp_ns = record.timestamp or 0
    timestamp_str = datetime.fromtimestamp(timestamp_ns / 1e9, tz=UTC).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )
    attrs = dict(record.attributes or {})
    component = attrs.pop("component", "rxapplog")
    extras = "".join(f" {k}={v}" for k, v in attrs.items())
    return f"{timestamp_str} [{record.severity_text}] {component}: {record.body}{extras}\n"


def severity_to_level(severity: SeverityNumber | None) -> LogLevel:
    """Map an OTel severity number onto the five pipeline levels."""
    if severity is None or severity.value == 0:
        return LogLevel.INFO
    if severity.value <= SeverityNumber.DEBUG4.value:
        return LogLevel.DEBUG
    if severity.value <= SeverityNumber.INFO4.value:
        return LogLevel.INFO
    if severity.value <= SeverityNumber.WARN4.value:
        return LogLevel.WARN
    if severity.value <= SeverityNumber.ERROR4.value:
        return LogLevel.ERROR
    return LogLevel.FATAL


class ConsoleLogRecordExporter(LogRecordExporter):
    """Writes diagnostic records to stderr, one line per record."""

    def export(self, batch: Sequence["ReadableLogRecord"]) -> LogRecordExportResult:
        try:
            for readable_record in batch:
                sys.stderr.write(format_diagnostic_record(readable_record.log_record))
            sys.stderr.flush()
            return LogRecordExportResult.SUCCESS
        except Exception:
            return LogRecordExportResult.FAILURE

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        sys.stderr.flush()
        return True


class PipelineLogRecordExporter(LogRecordExporter):
    """Forwards OTel log records into a log pipeline.

    The ``log.source`` attribute, when present, becomes the entry source; the
    remaining attributes become the entry context. Do not attach this
    exporter to the provider that carries the pipeline's own diagnostics, or
    failed flushes will feed the queue they are reporting on.

    Example:
        >>> provider = configure_telemetry(
        ...     log_exporter=PipelineLogRecordExporter(pipeline), batch_logs=False
        ... )
        >>> provider.get_logger("billing").emit(record)
    """

    def __init__(self, pipeline: "LogPipeline"):
        self._pipeline = pipeline

    def export(self, batch: Sequence["ReadableLogRecord"]) -> LogRecordExportResult:
        try:
            for readable_record in batch:
                record = readable_record.log_record
                attrs = dict(record.attributes or {})
                source = attrs.pop("log.source", None)
                self._pipeline.log(
                    severity_to_level(record.severity_number),
                    "" if record.body is None else str(record.body),
                    attrs,
                    source=None if source is None else str(source),
                )
            return LogRecordExportResult.SUCCESS
        except Exception:
            return LogRecordExportResult.FAILURE

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
