"""Shared OTel diagnostics mixin for rxapplog components."""

import time

from opentelemetry._logs import Logger, SeverityNumber
from opentelemetry._logs import LogRecord as OTelLogRecord

_SEVERITY_MAP: dict[str, SeverityNumber] = {
    "DEBUG": SeverityNumber.DEBUG,
    "INFO": SeverityNumber.INFO,
    "WARN": SeverityNumber.WARN,
    "ERROR": SeverityNumber.ERROR,
    "FATAL": SeverityNumber.FATAL,
}


class OTelLoggingMixin:
    """Mixin providing _log() for components with OTel integration.

    These are diagnostics about the component itself (flush failures,
    connections), not the application entries it carries.
    """

    _logger: Logger | None
    _name: str

    def _log(self, body: str, level: str = "INFO", **attrs) -> None:
        """Emit a log record via OTel logger if configured."""
        if self._logger is None:
            return
        record = OTelLogRecord(
            timestamp=time.time_ns(),
            body=body,
            severity_text=level,
            severity_number=_SEVERITY_MAP.get(level, SeverityNumber.INFO),
            attributes={"component": self._name, **attrs},
        )
        self._logger.emit(record)
