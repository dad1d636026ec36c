"""Console stream protocol: inbound message variants and the Subscribe command."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from ordersync.protocol.models import OrderSnapshot

logger = logging.getLogger(__name__)

MessageType = Literal["Ready", "OrderUpdated", "OrderRemoved", "EdgeStatus"]


@dataclass(slots=True, frozen=True)
class Ready:
    """Full resync: every visible open order plus the currently online edges."""

    snapshots: tuple[OrderSnapshot, ...]
    online_edge_ids: frozenset[int]


@dataclass(slots=True, frozen=True)
class OrderUpdated:
    """Insert or replace one order snapshot."""

    snapshot: OrderSnapshot


@dataclass(slots=True, frozen=True)
class OrderRemoved:
    """Drop one order from a store's table."""

    order_id: str
    edge_server_id: int


@dataclass(slots=True, frozen=True)
class EdgeStatus:
    """Store online/offline transition, optionally naming orders to purge."""

    edge_server_id: int
    online: bool
    cleared_order_ids: tuple[str, ...] | None = None


ConsoleMessage: TypeAlias = Ready | OrderUpdated | OrderRemoved | EdgeStatus


def message_type(message: ConsoleMessage) -> MessageType:
    """Return the wire discriminator of a decoded message."""
    return type(message).__name__  # type: ignore[return-value]


def decode_message(raw_message: str | bytes) -> ConsoleMessage | None:
    """Decode one text frame; return `None` for anything malformed."""
    try:
        message_text = (
            raw_message.decode("utf-8")
            if isinstance(raw_message, bytes)
            else str(raw_message)
        )
    except UnicodeDecodeError:
        logger.debug("Dropping frame that is not valid UTF-8.")
        return None

    stripped = message_text.strip()
    if not stripped:
        return None
    try:
        payload = json.loads(stripped)
    except (RecursionError, ValueError):
        logger.debug("Dropping frame that is not JSON: %.80s", stripped)
        return None
    if not isinstance(payload, dict):
        logger.debug("Dropping non-object frame.")
        return None

    try:
        return _message_from_wire(payload)
    except (KeyError, OverflowError, TypeError, ValueError) as error:
        logger.debug("Dropping malformed %r frame: %s", payload.get("type"), error)
        return None


def encode_subscribe(store_ids: Iterable[int]) -> str:
    """Serialize the Subscribe command for the given stores."""
    return json.dumps({"type": "Subscribe", "store_ids": [int(item) for item in store_ids]})


def _message_from_wire(payload: Mapping[str, Any]) -> ConsoleMessage | None:
    kind = payload.get("type")
    if kind == "Ready":
        snapshots_raw = payload["snapshots"]
        online_raw = payload.get("online_edge_ids") or []
        if not isinstance(snapshots_raw, list) or not isinstance(online_raw, list):
            msg = "Ready requires list `snapshots` and `online_edge_ids`."
            raise ValueError(msg)
        return Ready(
            snapshots=_parse_ready_snapshots(snapshots_raw),
            online_edge_ids=frozenset(_strict_int(item) for item in online_raw),
        )
    if kind == "OrderUpdated":
        return OrderUpdated(snapshot=OrderSnapshot.from_wire(payload["snapshot"]))
    if kind == "OrderRemoved":
        order_id = payload["order_id"]
        if not isinstance(order_id, str) or not order_id:
            msg = "OrderRemoved requires a non-empty string `order_id`."
            raise ValueError(msg)
        return OrderRemoved(
            order_id=order_id,
            edge_server_id=_strict_int(payload["edge_server_id"]),
        )
    if kind == "EdgeStatus":
        online = payload["online"]
        if not isinstance(online, bool):
            msg = "EdgeStatus requires a boolean `online`."
            raise ValueError(msg)
        cleared_raw = payload.get("cleared_order_ids")
        cleared: tuple[str, ...] | None = None
        if cleared_raw is not None:
            if not isinstance(cleared_raw, list):
                msg = "`cleared_order_ids` must be a list."
                raise ValueError(msg)
            cleared = tuple(str(item) for item in cleared_raw)
        return EdgeStatus(
            edge_server_id=_strict_int(payload["edge_server_id"]),
            online=online,
            cleared_order_ids=cleared,
        )

    logger.debug("Dropping frame with unknown type %r.", kind)
    return None


def _parse_ready_snapshots(snapshots_raw: list[Any]) -> tuple[OrderSnapshot, ...]:
    """Parse each snapshot on its own; an unparseable entry is skipped, not fatal."""
    snapshots: list[OrderSnapshot] = []
    for index, item in enumerate(snapshots_raw):
        try:
            snapshots.append(OrderSnapshot.from_wire(item))
        except (KeyError, OverflowError, TypeError, ValueError) as error:
            logger.debug("Skipping malformed Ready snapshot #%s: %s", index, error)
    return tuple(snapshots)


def _strict_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"Expected integer id, got {value!r}"
        raise ValueError(msg)
    return value
