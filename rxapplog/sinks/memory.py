"""In-memory log store."""

import threading
import uuid
from collections.abc import Sequence
from datetime import date

from ..archive import StoredRow, archived_logs, export_logs, mark_archived, recent_logs
from ..entry import LogRow
from .base import InsertResult, LogSink


class MemoryLogSink(LogSink):
    """Append-only log store kept in memory.

    Every stored row gets an ``id`` and an ``archived`` flag; after each insert
    only the ``keep_recent`` newest rows remain unarchived.

    Parameters:
        keep_recent: Number of rows left visible by the archive rule.
    """

    def __init__(self, keep_recent: int = 3):
        if keep_recent < 0:
            raise ValueError(f"keep_recent must be >= 0, got {keep_recent}")
        self._keep_recent = keep_recent
        self._rows: list[StoredRow] = []
        self._lock = threading.Lock()

    async def insert(self, rows: Sequence[LogRow]) -> InsertResult:
        with self._lock:
            for row in rows:
                stored: StoredRow = {"id": str(uuid.uuid4()), **row, "archived": False}
                self._rows.append(stored)
            mark_archived(self._rows, self._keep_recent)
        return InsertResult.success()

    @property
    def rows(self) -> list[StoredRow]:
        """Snapshot of all rows in insertion order."""
        with self._lock:
            return [dict(row) for row in self._rows]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def recent(self, limit: int = 3) -> list[StoredRow]:
        return recent_logs(self.rows, limit)

    def archived(self, limit: int = 100) -> list[StoredRow]:
        return archived_logs(self.rows, limit)

    def export_archived(
        self, directory: str, day: date | None = None, limit: int = 100
    ) -> str:
        """Write the archived rows to ``logs-archive-YYYY-MM-DD.json``."""
        return export_logs(self.archived(limit), directory, day)
