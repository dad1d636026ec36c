from __future__ import annotations

import json
from typing import Any

import pytest

from ordersync.protocol import (
    EdgeStatus,
    OrderRemoved,
    OrderUpdated,
    Ready,
    decode_message,
    encode_subscribe,
    message_type,
)


def _snapshot(order_id: str, store_id: int, updated_at: int = 1_700_000_000_000) -> dict[str, Any]:
    return {
        "order_id": order_id,
        "store_id": store_id,
        "status": "ACTIVE",
        "total": 12.5,
        "created_at": 1_700_000_000_000,
        "updated_at": updated_at,
    }


def test_decode_ready_collects_snapshots_and_online_edges() -> None:
    frame = json.dumps(
        {
            "type": "Ready",
            "snapshots": [_snapshot("a", 1), _snapshot("b", 2)],
            "online_edge_ids": [1, 3],
        }
    )
    message = decode_message(frame)

    assert isinstance(message, Ready)
    assert [snapshot.order_id for snapshot in message.snapshots] == ["a", "b"]
    assert message.online_edge_ids == frozenset({1, 3})
    assert message_type(message) == "Ready"


def test_decode_accepts_bytes_frames() -> None:
    frame = json.dumps({"type": "OrderUpdated", "snapshot": _snapshot("a", 1)}).encode("utf-8")
    message = decode_message(frame)

    assert isinstance(message, OrderUpdated)
    assert message.snapshot.order_id == "a"
    assert message.snapshot.total == pytest.approx(12.5)


def test_decode_order_removed_and_edge_status() -> None:
    removed = decode_message('{"type":"OrderRemoved","order_id":"a","edge_server_id":1}')
    assert removed == OrderRemoved(order_id="a", edge_server_id=1)

    online = decode_message('{"type":"EdgeStatus","edge_server_id":1,"online":true}')
    assert online == EdgeStatus(edge_server_id=1, online=True)

    offline = decode_message(
        '{"type":"EdgeStatus","edge_server_id":1,"online":false,"cleared_order_ids":["a","b"]}'
    )
    assert isinstance(offline, EdgeStatus)
    assert offline.online is False
    assert offline.cleared_order_ids == ("a", "b")


@pytest.mark.parametrize(
    "raw_frame",
    [
        "",
        "   ",
        "not json",
        "[1, 2, 3]",
        b"\xff\xfe",
        '{"type":"Mystery","payload":1}',
        '{"snapshot":{}}',
        '{"type":"OrderUpdated"}',
        '{"type":"OrderUpdated","snapshot":{"store_id":1}}',
        '{"type":"OrderRemoved","order_id":"a","edge_server_id":"1"}',
        '{"type":"OrderRemoved","order_id":"","edge_server_id":1}',
        '{"type":"EdgeStatus","edge_server_id":1,"online":"yes"}',
        '{"type":"EdgeStatus","edge_server_id":true,"online":false}',
        '{"type":"Ready","snapshots":{},"online_edge_ids":[]}',
        '{"type":"OrderUpdated","snapshot":{"order_id":"a","store_id":7.9}}',
        '{"type":"OrderUpdated","snapshot":{"order_id":"a","store_id":"7"}}',
    ],
)
def test_decode_drops_malformed_frames(raw_frame: str | bytes) -> None:
    assert decode_message(raw_frame) is None


def test_decode_drops_oversized_and_deeply_nested_frames() -> None:
    huge_id = '{"type":"OrderRemoved","order_id":"X","edge_server_id":' + "1" * 5000 + "}"
    deeply_nested = "[" * 200_000 + "]" * 200_000

    assert decode_message(huge_id) is None
    assert decode_message(deeply_nested) is None


def test_decode_ready_skips_malformed_snapshots_and_keeps_the_rest() -> None:
    foreign_without_price = {
        "order_id": "Z",
        "store_id": 9,
        "items": [{"name": "x", "quantity": 1}],
    }
    frame = json.dumps(
        {
            "type": "Ready",
            "snapshots": [
                _snapshot("A", 7),
                foreign_without_price,
                {"order_id": "missing-store"},
                _snapshot("B", 7),
            ],
            "online_edge_ids": [7, 9],
        }
    )

    message = decode_message(frame)

    assert isinstance(message, Ready)
    assert [snapshot.order_id for snapshot in message.snapshots] == ["A", "B"]
    assert message.online_edge_ids == frozenset({7, 9})


def test_encode_subscribe_declares_store_ids() -> None:
    payload = json.loads(encode_subscribe([7]))
    assert payload == {"type": "Subscribe", "store_ids": [7]}
