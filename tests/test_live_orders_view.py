from __future__ import annotations

import logging

import pandas as pd
import pytest

from ordersync.protocol import OrderSnapshot, OrderUpdated, Ready
from ordersync.sync import (
    LiveOrdersStore,
    LiveOrdersView,
    StoreOrderTable,
    reconcile,
    sort_by_freshness,
)


def _snapshot(order_id: str, updated_at: int, **extra: object) -> OrderSnapshot:
    payload: dict[str, object] = {
        "order_id": order_id,
        "store_id": 7,
        "status": "ACTIVE",
        "created_at": 1_700_000_000_000,
        "updated_at": updated_at,
    }
    payload.update(extra)
    return OrderSnapshot.from_wire(payload)


def _table(*snapshots: OrderSnapshot) -> StoreOrderTable:
    return reconcile(
        StoreOrderTable.empty(7),
        Ready(snapshots=snapshots, online_edge_ids=frozenset({7})),
    )


def test_sort_by_freshness_orders_newest_first_with_id_tiebreak() -> None:
    table = _table(
        _snapshot("b", 1_700_000_000_500),
        _snapshot("a", 1_700_000_000_500),
        _snapshot("c", 1_700_000_009_000),
        _snapshot("d", 1_700_000_000_100),
    )

    ordered = sort_by_freshness(table.orders)

    assert [snapshot.order_id for snapshot in ordered] == ["c", "a", "b", "d"]


def test_view_to_frame_has_one_row_per_order() -> None:
    table = _table(
        _snapshot(
            "ord-1",
            1_700_000_000_500,
            table_name="T1",
            zone_name="Hall",
            guest_count=2,
            total=20.0,
            paid_amount=5.0,
            remaining_amount=15.0,
            items=[
                {"id": "p1", "instance_id": "i1", "name": "Tea", "price": 4.0, "quantity": 2},
                {"id": "p2", "instance_id": "i2", "name": "Cake", "price": 12.0, "quantity": 1},
            ],
        ),
        _snapshot("ord-2", 1_700_000_009_000, queue_number=12),
    )
    view = LiveOrdersView.build(table, "connected")

    frame = view.to_frame()

    assert list(frame["order_id"]) == ["ord-2", "ord-1"]
    assert list(frame["title"]) == ["#12", "T1"]
    first = frame.iloc[1]
    assert first["zone_name"] == "Hall"
    assert first["items"] == 3
    assert first["remaining_amount"] == pytest.approx(15.0)
    assert frame["updated_at"].iloc[0] == pd.Timestamp(1_700_000_009_000, unit="ms").tz_localize(
        "UTC"
    )
    assert view.get("ord-1") is table.orders["ord-1"]
    assert view.get("missing") is None


def test_empty_view_frame_keeps_columns() -> None:
    view = LiveOrdersView.build(StoreOrderTable.empty(7), "disconnected")
    frame = view.to_frame()

    assert frame.empty
    assert "updated_at" in frame.columns
    assert len(view) == 0


def test_store_publishes_only_on_change_and_unsubscribes() -> None:
    store = LiveOrdersStore(7)
    seen: list[LiveOrdersView] = []
    unsubscribe = store.subscribe(seen.append)

    assert store.publish(store.table, "disconnected") is False
    assert store.publish(store.table, "connecting") is True
    table = reconcile(store.table, OrderUpdated(snapshot=_snapshot("a", 1_700_000_000_000)))
    assert store.publish(table, "connecting") is True

    unsubscribe()
    unsubscribe()
    assert store.publish(table, "connected") is True

    assert [view.phase for view in seen] == ["connecting", "connecting"]
    assert store.current.phase == "connected"
    assert len(store.current) == 1


def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    store = LiveOrdersStore(7)
    seen: list[str] = []

    def broken(view: LiveOrdersView) -> None:
        del view
        raise RuntimeError("render failed")

    store.subscribe(broken)
    store.subscribe(lambda view: seen.append(view.phase))

    with caplog.at_level(logging.ERROR, logger="ordersync.sync.state"):
        store.publish(store.table, "connecting")

    assert seen == ["connecting"]
    assert "subscriber" in caplog.text
