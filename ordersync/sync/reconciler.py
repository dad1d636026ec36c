"""Apply console stream messages to one store's open-order table."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import assert_never

from ordersync.protocol.codec import (
    ConsoleMessage,
    EdgeStatus,
    OrderRemoved,
    OrderUpdated,
    Ready,
)
from ordersync.protocol.models import OrderSnapshot


@dataclass(slots=True, frozen=True)
class StoreOrderTable:
    """Open orders believed to exist at one store, plus its online flag.

    Instances are never mutated; `reconcile` builds a new table for every
    change and returns the same instance when a message does not apply.
    """

    store_id: int
    orders: Mapping[str, OrderSnapshot] = field(
        default_factory=lambda: MappingProxyType({})
    )
    edge_online: bool = False

    def __post_init__(self) -> None:
        if int(self.store_id) <= 0:
            msg = "store_id must be positive."
            raise ValueError(msg)
        if not isinstance(self.orders, MappingProxyType):
            object.__setattr__(self, "orders", MappingProxyType(dict(self.orders)))

    @classmethod
    def empty(cls, store_id: int) -> StoreOrderTable:
        return cls(store_id=store_id)

    def __len__(self) -> int:
        return len(self.orders)

    def _with(
        self,
        orders: dict[str, OrderSnapshot] | None = None,
        edge_online: bool | None = None,
    ) -> StoreOrderTable:
        return StoreOrderTable(
            store_id=self.store_id,
            orders=MappingProxyType(orders) if orders is not None else self.orders,
            edge_online=self.edge_online if edge_online is None else edge_online,
        )


def reconcile(table: StoreOrderTable, message: ConsoleMessage) -> StoreOrderTable:
    """Return the table that results from applying one message.

    Messages about other stores leave the table untouched. Conflicts resolve
    by delivery order only: the last snapshot received for an order id wins.
    """
    store_id = table.store_id

    if isinstance(message, Ready):
        return table._with(
            orders={
                snapshot.order_id: snapshot
                for snapshot in message.snapshots
                if snapshot.store_id == store_id
            },
            edge_online=store_id in message.online_edge_ids,
        )

    if isinstance(message, OrderUpdated):
        snapshot = message.snapshot
        if snapshot.store_id != store_id:
            return table
        next_orders = dict(table.orders)
        next_orders[snapshot.order_id] = snapshot
        return table._with(orders=next_orders)

    if isinstance(message, OrderRemoved):
        if message.edge_server_id != store_id or message.order_id not in table.orders:
            return table
        next_orders = dict(table.orders)
        del next_orders[message.order_id]
        return table._with(orders=next_orders)

    if isinstance(message, EdgeStatus):
        if message.edge_server_id != store_id:
            return table
        remaining: dict[str, OrderSnapshot] | None = None
        if not message.online and message.cleared_order_ids:
            purge = set(message.cleared_order_ids).intersection(table.orders)
            if purge:
                remaining = {
                    order_id: snapshot
                    for order_id, snapshot in table.orders.items()
                    if order_id not in purge
                }
        if remaining is None and message.online == table.edge_online:
            return table
        return table._with(orders=remaining, edge_online=message.online)

    assert_never(message)


def reconcile_all(
    table: StoreOrderTable,
    messages: list[ConsoleMessage] | tuple[ConsoleMessage, ...],
) -> StoreOrderTable:
    """Fold a sequence of messages in delivery order."""
    for message in messages:
        table = reconcile(table, message)
    return table
