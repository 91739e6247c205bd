"""The contract between the log pipeline and a persistent log store."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from ..entry import LogRow


@dataclass(frozen=True)
class InsertResult:
    """Outcome of a bulk insert. ``error`` is None on success."""

    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls) -> "InsertResult":
        return cls()

    @classmethod
    def failure(cls, error: str) -> "InsertResult":
        return cls(error=error or "unknown error")


class LogSink(ABC):
    """An append-only store of log rows.

    ``insert`` either stores every row of the batch and returns a successful
    result, or reports an error (by result or by raising). The pipeline treats
    both kinds of failure the same way and retries the whole batch later, so a
    sink may see the same rows more than once.
    """

    @abstractmethod
    async def insert(self, rows: Sequence[LogRow]) -> InsertResult: ...

    async def close(self) -> None:
        """Release resources held by the sink."""
        pass
