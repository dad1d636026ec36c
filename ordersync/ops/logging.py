"""Structured JSON-lines event logging for sync sessions."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import pandas as pd

from ordersync.ops.secrets import sanitize_logging_payload


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class JsonEventLogger:
    """Append-only JSON-lines logger, safe to share between threads."""

    def __init__(self, path: str | Path, *, session_id: str | None = None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.session_id = session_id
        self._lock = threading.Lock()

    def emit(self, *, level: str, event: str, **fields: Any) -> None:
        """Write one line with timestamp, level, event, session id and fields."""
        payload: dict[str, Any] = {
            "timestamp": _utc_now().isoformat(),
            "level": str(level).lower(),
            "event": str(event),
        }
        if self.session_id is not None:
            payload["session_id"] = str(self.session_id)

        for key, value in sanitize_logging_payload(fields).items():
            payload[key] = _to_jsonable(value)

        line = json.dumps(payload, ensure_ascii=False, sort_keys=True) + "\n"
        with self._lock, self.path.open("a", encoding="utf-8") as log_file:
            log_file.write(line)

    def read_events(self) -> list[dict[str, Any]]:
        """Load every logged event, oldest first."""
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as log_file:
            return [json.loads(line) for line in log_file if line.strip()]


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(key): _to_jsonable(raw) for key, raw in value.items()}
    if isinstance(value, (list, tuple, frozenset, set)):
        return [_to_jsonable(item) for item in value]
    return str(value)
