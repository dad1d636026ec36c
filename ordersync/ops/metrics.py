"""Runtime counters for a sync session with Prometheus text / CSV export."""

from __future__ import annotations

import csv
import threading
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path

import pandas as pd

_PROMETHEUS_PREFIX = "ordersync"


@dataclass(slots=True)
class SyncMetricsSnapshot:
    """Point-in-time copy of session counters."""

    connection_attempts: int
    connections_opened: int
    connections_lost: int
    reconnects_scheduled: int
    frames_received: int
    frames_dropped: int
    teardowns: int
    uptime_seconds: float
    messages_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def drop_ratio(self) -> float:
        if self.frames_received <= 0:
            return 0.0
        return float(self.frames_dropped / self.frames_received)


class SyncMetrics:
    """Collect connection and frame counters for one session."""

    def __init__(self) -> None:
        self.start_time = pd.Timestamp.now(tz="UTC")
        self.connection_attempts = 0
        self.connections_opened = 0
        self.connections_lost = 0
        self.reconnects_scheduled = 0
        self.frames_received = 0
        self.frames_dropped = 0
        self.teardowns = 0
        self._messages_by_type: Counter[str] = Counter()
        self._lock = threading.Lock()

    def record_attempt(self) -> None:
        with self._lock:
            self.connection_attempts += 1

    def record_open(self) -> None:
        with self._lock:
            self.connections_opened += 1

    def record_lost(self, reconnect_scheduled: bool = True) -> None:
        with self._lock:
            self.connections_lost += 1
            if reconnect_scheduled:
                self.reconnects_scheduled += 1

    def record_frame(self, message_type: str | None) -> None:
        """Count one inbound frame; `None` means it failed to decode."""
        with self._lock:
            self.frames_received += 1
            if message_type is None:
                self.frames_dropped += 1
            else:
                self._messages_by_type[message_type] += 1

    def record_teardown(self) -> None:
        with self._lock:
            self.teardowns += 1

    def snapshot(self) -> SyncMetricsSnapshot:
        elapsed = (pd.Timestamp.now(tz="UTC") - self.start_time).total_seconds()
        with self._lock:
            return SyncMetricsSnapshot(
                connection_attempts=self.connection_attempts,
                connections_opened=self.connections_opened,
                connections_lost=self.connections_lost,
                reconnects_scheduled=self.reconnects_scheduled,
                frames_received=self.frames_received,
                frames_dropped=self.frames_dropped,
                teardowns=self.teardowns,
                uptime_seconds=max(float(elapsed), 0.0),
                messages_by_type=dict(self._messages_by_type),
            )

    def export_prometheus(self, path: str | Path) -> Path:
        """Export counters in Prometheus text format."""
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        metrics = self.snapshot()
        counters = [
            ("connection_attempts_total", "Transport open attempts.", metrics.connection_attempts),
            ("connections_opened_total", "Successful transport opens.", metrics.connections_opened),
            ("connections_lost_total", "Transport closes not requested.", metrics.connections_lost),
            ("frames_received_total", "Inbound frames.", metrics.frames_received),
            ("frames_dropped_total", "Undecodable inbound frames.", metrics.frames_dropped),
        ]
        lines: list[str] = []
        for name, help_text, value in counters:
            metric_name = f"{_PROMETHEUS_PREFIX}_{name}"
            lines.extend(
                [
                    f"# HELP {metric_name} {help_text}",
                    f"# TYPE {metric_name} counter",
                    f"{metric_name} {value}",
                ]
            )
        message_metric = f"{_PROMETHEUS_PREFIX}_messages_total"
        lines.extend(
            [
                f"# HELP {message_metric} Decoded messages by type.",
                f"# TYPE {message_metric} counter",
            ]
        )
        for message_type, count in sorted(metrics.messages_by_type.items()):
            lines.append(f'{message_metric}{{type="{message_type}"}} {count}')
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path

    def export_csv(self, path: str | Path) -> Path:
        """Export counters as a single-row CSV."""
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        row = asdict(self.snapshot())
        by_type = row.pop("messages_by_type")
        for message_type, count in sorted(by_type.items()):
            row[f"messages_{message_type}"] = count
        with output_path.open("w", encoding="utf-8", newline="") as csv_file:
            writer = csv.DictWriter(csv_file, fieldnames=list(row))
            writer.writeheader()
            writer.writerow(row)
        return output_path
