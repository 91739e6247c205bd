"""Typed configuration for the log pipeline and its network endpoints."""

import random
from dataclasses import dataclass, field

from .entry import LogLevel


@dataclass(frozen=True)
class WSConnectionConfig:
    """Typed WebSocket connection configuration."""

    host: str
    port: int
    path: str = "/"

    @property
    def url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"ws://{host}:{self.port}{self.path}"


@dataclass(frozen=True)
class RetryPolicy:
    """Delay between flush attempts after a failed delivery.

    Attributes:
        max_retries: Number of failed deliveries an entry survives before it
            is dropped. None means entries are retried forever.
        base_delay: Delay after the first failure, in seconds. None means
            "use the pipeline's flush interval".
        max_delay: Upper bound of the delay in seconds.
        backoff_factor: Multiplier applied per consecutive failure.
        jitter: Randomization factor (0.0-1.0).
    """

    max_retries: int | None = None  # None = infinite
    base_delay: float | None = None
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: float = 0.1

    def __post_init__(self):
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay is not None and self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.backoff_factor < 1.0:
            raise ValueError(
                f"backoff_factor must be >= 1.0, got {self.backoff_factor}"
            )
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1], got {self.jitter}")

    def get_delay(self, attempt: int, base_delay: float) -> float:
        """Calculate delay for given attempt number (0-indexed).

        delay = min(base * (backoff_factor ^ attempt), max_delay) +/- jitter
        """
        base = self.base_delay if self.base_delay is not None else base_delay
        delay = min(base * (self.backoff_factor**attempt), self.max_delay)
        jitter_range = delay * self.jitter
        return max(0.0, delay + random.uniform(-jitter_range, jitter_range))

    def exhausted(self, failures: int) -> bool:
        """Whether an entry that failed ``failures`` times must be dropped."""
        return self.max_retries is not None and failures > self.max_retries


@dataclass(frozen=True)
class PipelineConfig:
    """Settings of a :class:`~rxapplog.pipeline.LogPipeline`.

    Attributes:
        batch_size: Maximum rows per sink insert; reaching it starts a flush.
        flush_interval: Seconds between the first unflushed entry and the
            timed flush.
        min_level: Entries below this severity are discarded.
        source: Row ``source`` for entries that do not name one.
        sink_timeout: Seconds a sink insert may take before it counts as a
            failed delivery.
        console: Mirror accepted entries to the console.
        user_agent: Client identifier; None means a generated
            ``rxapplog/<version> <python> (<os>)`` string.
        retry: Backoff and drop policy for failed deliveries.
    """

    batch_size: int = 10
    flush_interval: float = 5.0
    min_level: LogLevel = LogLevel.INFO
    source: str = "frontend"
    sink_timeout: float = 10.0
    console: bool = True
    user_agent: str | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.flush_interval < 0:
            raise ValueError(
                f"flush_interval must be >= 0, got {self.flush_interval}"
            )
        if self.sink_timeout <= 0:
            raise ValueError(f"sink_timeout must be > 0, got {self.sink_timeout}")
        # accept level names as well
        object.__setattr__(self, "min_level", LogLevel.parse(self.min_level))
