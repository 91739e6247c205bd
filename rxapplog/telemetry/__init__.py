"""OpenTelemetry helpers for rxapplog.

Diagnostics of rxapplog components go through an injected OTel
``LoggerProvider``; pipeline counters go through an injected
``MeterProvider``. Without providers, components operate silently.
"""

from .config import (
    configure_metrics,
    configure_telemetry,
    get_default_logger_provider,
)
from .exporters import (
    ConsoleLogRecordExporter,
    PipelineLogRecordExporter,
    format_diagnostic_record,
    severity_to_level,
)
from .metrics import MetricsHelper, PipelineMetrics

__all__ = [
    # config
    "configure_telemetry",
    "configure_metrics",
    "get_default_logger_provider",
    # exporters
    "ConsoleLogRecordExporter",
    "PipelineLogRecordExporter",
    "format_diagnostic_record",
    "severity_to_level",
    # metrics
    "MetricsHelper",
    "PipelineMetrics",
]
