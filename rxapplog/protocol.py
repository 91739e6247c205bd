"""Wire format between :class:`~rxapplog.sinks.WebSocketLogSink` and the
log collector.

Both directions use JSON text frames::

    {"type": "insert", "id": 7, "rows": [...]}
    {"type": "ack", "id": 7, "ok": false, "error": "disk full"}
"""

import json
from collections.abc import Sequence
from typing import Any

from .entry import LogRow

INSERT = "insert"
ACK = "ack"


def encode_insert(request_id: int, rows: Sequence[LogRow]) -> str:
    return json.dumps(
        {"type": INSERT, "id": request_id, "rows": list(rows)},
        default=str,
        ensure_ascii=False,
    )


def encode_ack(request_id: Any, ok: bool, error: str | None = None) -> str:
    return json.dumps({"type": ACK, "id": request_id, "ok": ok, "error": error})


def parse_message(data: str | bytes) -> dict[str, Any]:
    """Decode a frame, raising ValueError if it is not a known message."""
    if isinstance(data, bytes):
        data = data.decode()
    try:
        message = json.loads(data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Frame is not JSON: {e}") from e
    if not isinstance(message, dict):
        raise ValueError(f"Expected a JSON object, got {type(message).__name__}")

    kind = message.get("type")
    if kind == INSERT:
        rows = message.get("rows")
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise ValueError("Insert message needs a list of row objects")
    elif kind == ACK:
        if not isinstance(message.get("ok"), bool):
            raise ValueError("Ack message needs a boolean 'ok'")
    else:
        raise ValueError(f"Unknown message type {kind!r}")
    return message
