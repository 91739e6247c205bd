"""OTel metrics for the log pipeline.

Provides :class:`MetricsHelper` -- a convenience wrapper around an OTel
``Meter`` -- and :class:`PipelineMetrics`, the instruments a
:class:`~rxapplog.pipeline.LogPipeline` records into.
"""

from opentelemetry.metrics import Counter, Histogram, Meter, MeterProvider


class MetricsHelper:
    """Convenience wrapper around an OTel ``Meter``.

    Args:
        meter_provider: The provider to obtain a meter from.
        instrumentation_name: Identifies the instrumentation library, e.g.
            ``"rxapplog.pipeline"``.
    """

    def __init__(self, meter_provider: MeterProvider, instrumentation_name: str):
        self._meter: Meter = meter_provider.get_meter(instrumentation_name)

    def counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Create (or retrieve) a monotonic counter instrument."""
        return self._meter.create_counter(name, description=description, unit=unit)

    def histogram(
        self, name: str, description: str = "", unit: str = "ms"
    ) -> Histogram:
        """Create (or retrieve) a histogram instrument."""
        return self._meter.create_histogram(name, description=description, unit=unit)


class PipelineMetrics:
    """Counters and histograms of one pipeline.

    All attributes carry ``pipeline`` (the pipeline name) so several
    pipelines can share a meter provider.

    Example::

        metrics = PipelineMetrics(meter_provider, "app")
        metrics.enqueued.add(1, metrics.attrs(level="info"))
    """

    def __init__(self, meter_provider: MeterProvider, pipeline_name: str):
        helper = MetricsHelper(meter_provider, "rxapplog.pipeline")
        self._name = pipeline_name

        self.enqueued = helper.counter(
            "rxapplog.entries.enqueued", description="Entries accepted into the queue"
        )
        self.filtered = helper.counter(
            "rxapplog.entries.filtered",
            description="Entries discarded by the severity filter",
        )
        self.delivered = helper.counter(
            "rxapplog.entries.delivered", description="Entries stored by the sink"
        )
        self.requeued = helper.counter(
            "rxapplog.entries.requeued",
            description="Entries put back after a failed delivery",
        )
        self.dropped = helper.counter(
            "rxapplog.entries.dropped",
            description="Entries discarded after exhausting the retry policy",
        )
        self.flush_failures = helper.counter(
            "rxapplog.flush.failures", description="Failed sink inserts"
        )
        self.flush_duration = helper.histogram(
            "rxapplog.flush.duration", description="Sink insert duration"
        )

    def attrs(self, **extra: str) -> dict[str, str]:
        return {"pipeline": self._name, **extra}
