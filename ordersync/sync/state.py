"""Immutable live-order views published to consumers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

import pandas as pd

from ordersync.protocol.models import OrderSnapshot
from ordersync.sync.reconciler import StoreOrderTable

logger = logging.getLogger(__name__)

ConnectionPhase = Literal["connecting", "connected", "reconnecting", "disconnected"]

_ORDER_FRAME_COLUMNS = [
    "order_id",
    "title",
    "status",
    "zone_name",
    "guest_count",
    "items",
    "total",
    "paid_amount",
    "remaining_amount",
    "created_at",
    "updated_at",
]


def sort_by_freshness(orders: Mapping[str, OrderSnapshot]) -> tuple[OrderSnapshot, ...]:
    """Most recently updated first; order id breaks ties."""
    by_id = sorted(orders.values(), key=lambda snapshot: snapshot.order_id)
    return tuple(sorted(by_id, key=lambda snapshot: snapshot.updated_at, reverse=True))


@dataclass(slots=True, frozen=True)
class LiveOrdersView:
    """Point-in-time view of one store's open orders and connection health."""

    store_id: int
    phase: ConnectionPhase
    edge_online: bool
    orders: Mapping[str, OrderSnapshot]
    sorted_orders: tuple[OrderSnapshot, ...]

    @classmethod
    def build(cls, table: StoreOrderTable, phase: ConnectionPhase) -> LiveOrdersView:
        return cls(
            store_id=table.store_id,
            phase=phase,
            edge_online=table.edge_online,
            orders=MappingProxyType(dict(table.orders)),
            sorted_orders=sort_by_freshness(table.orders),
        )

    def __len__(self) -> int:
        return len(self.orders)

    def get(self, order_id: str) -> OrderSnapshot | None:
        return self.orders.get(order_id)

    def to_frame(self) -> pd.DataFrame:
        """One row per open order, freshest first."""
        rows = [
            {
                "order_id": snapshot.order_id,
                "title": snapshot.display_title,
                "status": snapshot.status,
                "zone_name": snapshot.zone_name or "",
                "guest_count": snapshot.guest_count,
                "items": sum(item.quantity for item in snapshot.items),
                "total": snapshot.total,
                "paid_amount": snapshot.paid_amount,
                "remaining_amount": snapshot.remaining_amount,
                "created_at": snapshot.created_at,
                "updated_at": snapshot.updated_at,
            }
            for snapshot in self.sorted_orders
        ]
        return pd.DataFrame(rows, columns=_ORDER_FRAME_COLUMNS)


ViewSubscriber = Callable[[LiveOrdersView], None]


class LiveOrdersStore:
    """Holds the current `LiveOrdersView` and notifies subscribers on change."""

    def __init__(self, store_id: int, phase: ConnectionPhase = "disconnected") -> None:
        self._table = StoreOrderTable.empty(store_id)
        self._current = LiveOrdersView.build(self._table, phase)
        self._subscribers: list[ViewSubscriber] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> LiveOrdersView:
        return self._current

    @property
    def table(self) -> StoreOrderTable:
        return self._table

    def subscribe(self, callback: ViewSubscriber) -> Callable[[], None]:
        """Register `callback` for future views; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, table: StoreOrderTable, phase: ConnectionPhase) -> bool:
        """Swap in a new view when `table` or `phase` changed. Returns whether it did."""
        if table is self._table and phase == self._current.phase:
            return False
        self._table = table
        self._current = LiveOrdersView.build(table, phase)
        view = self._current
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(view)
            except Exception:
                logger.exception("Live orders subscriber %r failed.", callback)
        return True
