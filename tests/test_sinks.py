"""Tests for the memory and JSON-lines sinks and the archive views."""

import asyncio
import json
import os
from datetime import date

from rxapplog.archive import (
    archive_filename,
    archived_logs,
    export_logs,
    mark_archived,
    recent_logs,
)
from rxapplog.entry import LogEntry, QueuedLogEntry
from rxapplog.sinks import JsonlFileLogSink, MemoryLogSink, read_jsonl_rows


def _rows(count: int, start: int = 0) -> list[dict]:
    rows = []
    for i in range(start, start + count):
        queued = QueuedLogEntry.enrich(
            LogEntry.create("info", f"m{i}"),
            default_source="frontend",
            url="/",
            user_agent="agent",
            session_id="s",
        )
        row = queued.to_row()
        row["created_at"] = f"2025-01-01T00:00:{i:02d}.000Z"
        rows.append(row)
    return rows


# =============================================================================
# Archive views
# =============================================================================


def test_mark_archived_keeps_newest():
    rows = [dict(r) for r in _rows(5)]
    mark_archived(rows, keep_recent=3)
    assert [r["archived"] for r in rows] == [True, True, False, False, False]


def test_mark_archived_ties_follow_insertion_order():
    rows = [{"message": m, "created_at": "2025-01-01T00:00:00.000Z"} for m in "abcd"]
    mark_archived(rows, keep_recent=2)
    assert [r["message"] for r in recent_logs(rows)] == ["d", "c"]


def test_recent_and_archived_newest_first():
    rows = [dict(r) for r in _rows(6)]
    mark_archived(rows)
    assert [r["message"] for r in recent_logs(rows)] == ["m5", "m4", "m3"]
    assert [r["message"] for r in archived_logs(rows)] == ["m2", "m1", "m0"]
    assert [r["message"] for r in archived_logs(rows, limit=1)] == ["m2"]


def test_export_logs(tmp_path):
    rows = _rows(2)
    path = export_logs(rows, str(tmp_path / "out"), date(2025, 3, 9))

    assert os.path.basename(path) == "logs-archive-2025-03-09.json"
    with open(path, encoding="utf-8") as f:
        assert json.load(f) == rows


def test_archive_filename_defaults_to_today():
    assert archive_filename() == f"logs-archive-{date.today().isoformat()}.json"


# =============================================================================
# MemoryLogSink
# =============================================================================


def test_memory_sink_archive_rule(tmp_path):
    sink = MemoryLogSink(keep_recent=3)
    assert asyncio.run(sink.insert(_rows(2))).ok
    assert asyncio.run(sink.insert(_rows(3, start=2))).ok

    assert len(sink) == 5
    assert all("id" in row for row in sink.rows)
    assert [r["message"] for r in sink.recent()] == ["m4", "m3", "m2"]
    assert [r["message"] for r in sink.archived()] == ["m1", "m0"]

    path = sink.export_archived(str(tmp_path), day=date(2025, 1, 2))
    with open(path, encoding="utf-8") as f:
        exported = json.load(f)
    assert [r["message"] for r in exported] == ["m1", "m0"]


def test_memory_sink_rows_are_snapshots():
    sink = MemoryLogSink()
    asyncio.run(sink.insert(_rows(1)))
    sink.rows[0]["message"] = "changed"
    assert sink.rows[0]["message"] == "m0"


# =============================================================================
# JsonlFileLogSink
# =============================================================================


def test_jsonl_round_trip(tmp_path):
    logfile = str(tmp_path / "logs" / "app.jsonl")
    sink = JsonlFileLogSink(logfile)

    async def main():
        assert (await sink.insert(_rows(2))).ok
        assert (await sink.insert(_rows(1, start=2))).ok
        await sink.close()

    asyncio.run(main())
    assert read_jsonl_rows(logfile) == _rows(3)


def test_jsonl_rotation_by_rows(tmp_path):
    logfile = str(tmp_path / "app.jsonl")
    sink = JsonlFileLogSink(logfile, rotate_interval=2)

    async def main():
        await sink.insert(_rows(2))
        await sink.insert(_rows(1, start=2))
        await sink.close()

    asyncio.run(main())
    rotated = [p for p in os.listdir(tmp_path) if p.startswith("app_") and p.endswith(".jsonl")]
    assert len(rotated) == 1
    assert [r["message"] for r in read_jsonl_rows(logfile)] == ["m0", "m1", "m2"]


def test_jsonl_skips_torn_lines(tmp_path):
    logfile = tmp_path / "app.jsonl"
    row = _rows(1)[0]
    logfile.write_text(json.dumps(row) + "\n" + '{"level": "in' + "\n", encoding="utf-8")
    assert read_jsonl_rows(str(logfile)) == [row]


def test_jsonl_write_failure_is_reported(tmp_path):
    target = tmp_path / "logs"
    target.mkdir()
    sink = JsonlFileLogSink(str(target))

    result = asyncio.run(sink.insert(_rows(1)))
    assert not result.ok
    assert result.error
