"""OTel provider configuration for rxapplog components.

Provides :func:`configure_telemetry` (logger provider for diagnostics),
:func:`configure_metrics` (meter provider), and
:func:`get_default_logger_provider` (lazy singleton with console output).
"""

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

from .exporters import ConsoleLogRecordExporter


def _resource(service_name: str, service_version: str) -> Resource:
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
        }
    )


def configure_telemetry(
    service_name: str = "rxapplog",
    service_version: str = "",
    log_exporter: LogRecordExporter | None = None,
    batch_logs: bool = True,
) -> LoggerProvider:
    """
    Configure the OTel logger provider that rxapplog components report to.

    Returns the provider for explicit injection into components -- does NOT
    set the global provider.

    Args:
        service_name: Service identifier for resource attributes.
        service_version: Service version for resource attributes.
        log_exporter: Optional log exporter (e.g. ConsoleLogRecordExporter,
            OTLPLogExporter).
        batch_logs: If True, use BatchLogRecordProcessor (better for network
            exporters). If False, use SimpleLogRecordProcessor (immediate,
            better for console).

    Example:
        >>> provider = configure_telemetry(
        ...     service_name="deals-web",
        ...     log_exporter=ConsoleLogRecordExporter(),
        ...     batch_logs=False,
        ... )
        >>> pipeline = LogPipeline(sink, logger_provider=provider)
    """
    logger_provider = LoggerProvider(resource=_resource(service_name, service_version))
    if log_exporter:
        if batch_logs:
            logger_provider.add_log_record_processor(
                BatchLogRecordProcessor(log_exporter)
            )
        else:
            logger_provider.add_log_record_processor(
                SimpleLogRecordProcessor(log_exporter)
            )
    return logger_provider


_default_logger_provider: LoggerProvider | None = None


def get_default_logger_provider(service_name: str = "rxapplog") -> LoggerProvider:
    """Get or create a logger provider printing diagnostics to stderr.

    Lazily initialized on first call; later calls return the same provider
    and ignore ``service_name``.
    """
    global _default_logger_provider

    if _default_logger_provider is None:
        _default_logger_provider = configure_telemetry(
            service_name=service_name,
            log_exporter=ConsoleLogRecordExporter(),
            batch_logs=False,  # Immediate output for CLI
        )
    return _default_logger_provider


def configure_metrics(
    service_name: str = "rxapplog",
    service_version: str = "",
    metric_exporter: MetricExporter | None = None,
    export_interval_ms: int = 10_000,
) -> MeterProvider:
    """Configure and return an OTel MeterProvider.

    Args:
        service_name: Service identifier added to all metrics as a resource
            attribute.
        service_version: Service version resource attribute.
        metric_exporter: Optional metric exporter. If ``None``, metrics are
            exported to ``ConsoleMetricExporter``.
        export_interval_ms: Polling interval of the periodic reader.

    Example::

        meter_provider = configure_metrics(service_name="deals-web")
        pipeline = LogPipeline(sink, meter_provider=meter_provider)
    """
    exporter = (
        metric_exporter if metric_exporter is not None else ConsoleMetricExporter()
    )
    reader = PeriodicExportingMetricReader(
        exporter, export_interval_millis=export_interval_ms
    )
    return MeterProvider(
        resource=_resource(service_name, service_version), metric_readers=[reader]
    )
