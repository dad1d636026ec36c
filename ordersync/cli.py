"""Command-line interface for ordersync."""

from __future__ import annotations

import argparse
import sys
import threading
import tomllib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from ordersync.ops import JsonEventLogger, SyncMetrics, load_credential
from ordersync.protocol.codec import decode_message
from ordersync.sync import (
    DEFAULT_STREAM_PATH,
    LiveOrderSession,
    LiveOrdersView,
    StoreOrderTable,
    reconcile,
)

DEFAULT_TOKEN_ENV = "ORDERSYNC_TOKEN"


@dataclass(slots=True)
class AppConfig:
    """Configuration for the `watch` command."""

    base_url: str
    store_id: int
    stream_path: str
    token_env: str
    reconnect_min_seconds: float
    reconnect_max_seconds: float
    transport_timeout_seconds: float
    event_log_path: Path | None
    metrics_path: Path | None
    raw_config: dict[str, Any]


def load_app_config(config_path: Path) -> AppConfig:
    """Load and validate watch config from TOML."""
    if not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open("rb") as config_file:
        raw_config = tomllib.load(config_file)

    required_keys = {"base_url", "store_id"}
    missing = sorted(required_keys.difference(raw_config))
    if missing:
        msg = f"config is missing required keys: {', '.join(missing)}"
        raise ValueError(msg)

    store_id = raw_config["store_id"]
    if isinstance(store_id, bool) or not isinstance(store_id, int) or store_id <= 0:
        msg = "`store_id` must be a positive integer."
        raise ValueError(msg)

    reconnect_raw = raw_config.get("reconnect", {})
    if not isinstance(reconnect_raw, dict):
        msg = "`reconnect` must be a TOML table."
        raise ValueError(msg)
    reconnect_min_seconds = float(reconnect_raw.get("min_seconds", 1.0))
    reconnect_max_seconds = float(reconnect_raw.get("max_seconds", 30.0))
    if reconnect_min_seconds <= 0:
        msg = "`reconnect.min_seconds` must be positive."
        raise ValueError(msg)
    if reconnect_max_seconds < reconnect_min_seconds:
        msg = "`reconnect.max_seconds` must be >= `reconnect.min_seconds`."
        raise ValueError(msg)

    transport_raw = raw_config.get("transport", {})
    if not isinstance(transport_raw, dict):
        msg = "`transport` must be a TOML table."
        raise ValueError(msg)
    transport_timeout_seconds = float(transport_raw.get("timeout_seconds", 10.0))
    if transport_timeout_seconds <= 0:
        msg = "`transport.timeout_seconds` must be positive."
        raise ValueError(msg)

    ops_raw = raw_config.get("ops", {})
    if not isinstance(ops_raw, dict):
        msg = "`ops` must be a TOML table."
        raise ValueError(msg)

    base_dir = config_path.parent
    return AppConfig(
        base_url=str(raw_config["base_url"]),
        store_id=store_id,
        stream_path=str(raw_config.get("stream_path", DEFAULT_STREAM_PATH)),
        token_env=str(raw_config.get("token_env", DEFAULT_TOKEN_ENV)),
        reconnect_min_seconds=reconnect_min_seconds,
        reconnect_max_seconds=reconnect_max_seconds,
        transport_timeout_seconds=transport_timeout_seconds,
        event_log_path=_optional_path(base_dir, ops_raw.get("event_log_path")),
        metrics_path=_optional_path(base_dir, ops_raw.get("metrics_path")),
        raw_config=dict(raw_config),
    )


def format_view(view: LiveOrdersView) -> str:
    """Render a view as a status line plus a table of open orders."""
    status = "online" if view.edge_online else "offline"
    header = (
        f"store {view.store_id} | {view.phase} | edge {status} | "
        f"{len(view)} open orders"
    )
    if not view.sorted_orders:
        return header
    frame = view.to_frame().drop(columns=["created_at"])
    frame["updated_at"] = frame["updated_at"].dt.strftime("%Y-%m-%d %H:%M:%S")
    return header + "\n" + frame.to_string(index=False)


def replay_frames(frames_path: Path, store_id: int) -> LiveOrdersView:
    """Reconcile recorded frames (one per line) offline and return the final view."""
    if not frames_path.exists():
        msg = f"Frames file not found: {frames_path}"
        raise FileNotFoundError(msg)

    table = StoreOrderTable.empty(store_id)
    with frames_path.open("r", encoding="utf-8") as frames_file:
        for line in frames_file:
            message = decode_message(line)
            if message is not None:
                table = reconcile(table, message)
    return LiveOrdersView.build(table, "disconnected")


def run_watch(
    config: AppConfig,
    *,
    token: str | None = None,
    duration_seconds: float | None = None,
    output: TextIO | None = None,
    session_factory: Callable[..., LiveOrderSession] = LiveOrderSession,
) -> LiveOrdersView:
    """Stream one store's live orders to `output` until interrupted or `duration_seconds`."""
    stream = output or sys.stdout
    credential = load_credential(config.token_env, explicit_value=token)
    event_logger = (
        JsonEventLogger(config.event_log_path) if config.event_log_path is not None else None
    )
    metrics = SyncMetrics()
    stop_event = threading.Event()
    print_lock = threading.Lock()

    def _print_view(view: LiveOrdersView) -> None:
        with print_lock:
            stream.write(format_view(view) + "\n\n")
            stream.flush()

    session = session_factory(
        base_url=config.base_url,
        token=credential,
        store_id=config.store_id,
        stream_path=config.stream_path,
        reconnect_min_seconds=config.reconnect_min_seconds,
        reconnect_max_seconds=config.reconnect_max_seconds,
        transport_timeout_seconds=config.transport_timeout_seconds,
        event_logger=event_logger,
        metrics=metrics,
        auto_start=False,
    )
    session.subscribe(_print_view)
    try:
        session.start()
        stop_event.wait(timeout=duration_seconds)
    except KeyboardInterrupt:
        pass
    finally:
        final_view = session.view
        session.teardown()
        if config.metrics_path is not None:
            metrics.export_prometheus(config.metrics_path)
    return final_view


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        prog="ordersync",
        description="Follow a store's open orders over the console live stream.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Stream live orders for one store.")
    watch_parser.add_argument("--config", required=True, help="Path to TOML config file.")
    watch_parser.add_argument(
        "--token",
        default=None,
        help="Bearer token. Default: read from the env var named by `token_env`.",
    )
    watch_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds. Default: run until Ctrl+C.",
    )

    replay_parser = subparsers.add_parser(
        "replay",
        help="Reconcile recorded stream frames offline.",
    )
    replay_parser.add_argument("--frames", required=True, help="File with one JSON frame per line.")
    replay_parser.add_argument("--store-id", type=int, required=True, help="Store to project.")
    replay_parser.add_argument(
        "--csv",
        default=None,
        help="Optional path to write the final order table as CSV.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "watch":
            config = load_app_config(Path(args.config))
            final_view = run_watch(
                config,
                token=args.token,
                duration_seconds=args.duration,
            )
            print(f"Stopped with {len(final_view)} open orders.")
            return 0

        if args.command == "replay":
            view = replay_frames(Path(args.frames), store_id=int(args.store_id))
            print(format_view(view))
            if args.csv:
                csv_path = Path(args.csv)
                csv_path.parent.mkdir(parents=True, exist_ok=True)
                view.to_frame().to_csv(csv_path, index=False)
                print(f"Order table written: {csv_path.resolve()}")
            return 0
    except Exception as error:
        parser.exit(status=1, message=f"Error: {error}\n")

    parser.print_help()
    return 1


def _optional_path(base_dir: Path, raw_path: Any) -> Path | None:
    if raw_path is None or not str(raw_path).strip():
        return None
    candidate = Path(str(raw_path))
    if candidate.is_absolute():
        return candidate
    return (base_dir / candidate).resolve()


if __name__ == "__main__":
    raise SystemExit(main())
