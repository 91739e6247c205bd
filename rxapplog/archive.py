"""Store-side views of the log table: recent rows, archived rows, export.

A log store keeps only the newest few rows "visible"; everything older is
flagged ``archived``. Rows are ordered by ``created_at`` (ISO-8601 UTC
strings, so they sort lexicographically), ties broken by insertion order.
"""

import json
import os
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

StoredRow = dict[str, Any]


def _newest_first(rows: Iterable[StoredRow]) -> list[StoredRow]:
    indexed = list(enumerate(rows))
    indexed.sort(key=lambda pair: (pair[1].get("created_at") or "", pair[0]), reverse=True)
    return [row for _, row in indexed]


def mark_archived(rows: Sequence[StoredRow], keep_recent: int = 3) -> None:
    """Flag all but the ``keep_recent`` newest rows as archived, in place."""
    for position, row in enumerate(_newest_first(rows)):
        row["archived"] = position >= keep_recent


def recent_logs(rows: Iterable[StoredRow], limit: int = 3) -> list[StoredRow]:
    """Newest non-archived rows."""
    return [row for row in _newest_first(rows) if not row.get("archived")][:limit]


def archived_logs(rows: Iterable[StoredRow], limit: int = 100) -> list[StoredRow]:
    """Newest archived rows."""
    return [row for row in _newest_first(rows) if row.get("archived")][:limit]


def archive_filename(day: date | None = None) -> str:
    day = day or date.today()
    return f"logs-archive-{day.isoformat()}.json"


def export_logs(
    rows: Sequence[StoredRow], directory: str, day: date | None = None
) -> str:
    """Write ``rows`` as an indented JSON array and return the file path."""
    if directory:
        os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, archive_filename(day))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(list(rows), f, indent=2, default=str, ensure_ascii=False)
    return path
