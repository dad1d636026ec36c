"""Live order value types and tolerant wire parsing."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import pandas as pd


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


def _normalize_timestamp(value: Any) -> pd.Timestamp | None:
    """Parse epoch milliseconds or an ISO string into a UTC timestamp."""
    if value is None:
        return None
    if isinstance(value, bool):
        msg = f"Unsupported timestamp value: {value!r}"
        raise ValueError(msg)
    if isinstance(value, (int, float)):
        return pd.Timestamp(int(value), unit="ms").tz_localize("UTC")
    parsed = pd.Timestamp(str(value))
    if parsed.tzinfo is None:
        return parsed.tz_localize("UTC")
    return parsed.tz_convert("UTC")


def _as_float(value: Any, default: float | None) -> float | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int | None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _first_present(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _require_mapping(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        msg = f"{label} must be a JSON object, got {type(value).__name__}."
        raise ValueError(msg)
    return value


def _mapping_items(payload: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    raw = payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        msg = f"`{key}` must be a list."
        raise ValueError(msg)
    return [_require_mapping(item, key) for item in raw]


@dataclass(slots=True, frozen=True)
class ItemOption:
    """One selected modifier option with its price delta."""

    attribute_id: str
    attribute_name: str
    option_name: str
    option_idx: int = 0
    quantity: int = 1
    price_modifier: float | None = None

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> ItemOption:
        return cls(
            attribute_id=str(payload.get("attribute_id", "")),
            attribute_name=str(payload.get("attribute_name", "")),
            option_name=str(payload.get("option_name", "")),
            option_idx=_as_int(payload.get("option_idx"), 0) or 0,
            quantity=_as_int(payload.get("quantity"), 1) or 1,
            price_modifier=_as_float(payload.get("price_modifier"), None),
        )


@dataclass(slots=True, frozen=True)
class SpecificationInfo:
    """Selected product variant."""

    spec_id: str
    name: str
    receipt_name: str | None = None
    price: float | None = None

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> SpecificationInfo:
        return cls(
            spec_id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            receipt_name=_as_optional_str(payload.get("receipt_name")),
            price=_as_float(payload.get("price"), None),
        )


@dataclass(slots=True, frozen=True)
class LineItem:
    """One cart line owned by an order snapshot."""

    product_id: str
    instance_id: str
    name: str
    quantity: int
    unpaid_quantity: int
    price: float
    original_price: float | None = None
    line_total: float = 0.0
    tax: float = 0.0
    tax_rate: float = 0.0
    manual_discount_percent: float | None = None
    rule_discount_amount: float = 0.0
    rule_surcharge_amount: float = 0.0
    loyalty_discount_amount: float = 0.0
    surcharge: float | None = None
    is_comped: bool = False
    selected_specification: SpecificationInfo | None = None
    selected_options: tuple[ItemOption, ...] = ()
    note: str | None = None

    @property
    def base_price(self) -> float:
        """Unit price before any adjustment."""
        return self.original_price if self.original_price is not None else self.price

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> LineItem:
        quantity = _as_int(payload.get("quantity"), None)
        if quantity is None:
            msg = f"Line item payload missing quantity: {payload!r}"
            raise ValueError(msg)
        price = _as_float(payload.get("price"), None)
        if price is None:
            msg = f"Line item payload missing price: {payload!r}"
            raise ValueError(msg)

        specification_raw = payload.get("selected_specification")
        specification = (
            SpecificationInfo.from_wire(
                _require_mapping(specification_raw, "selected_specification")
            )
            if specification_raw is not None
            else None
        )
        line_total = _as_float(payload.get("line_total"), None)
        return cls(
            product_id=str(_first_present(payload, ("id", "product_id")) or ""),
            instance_id=str(payload.get("instance_id", "")),
            name=str(payload.get("name", "")),
            quantity=quantity,
            unpaid_quantity=_as_int(payload.get("unpaid_quantity"), quantity) or 0,
            price=price,
            original_price=_as_float(payload.get("original_price"), None),
            line_total=line_total if line_total is not None else price * quantity,
            tax=_as_float(payload.get("tax"), 0.0) or 0.0,
            tax_rate=_as_float(payload.get("tax_rate"), 0.0) or 0.0,
            manual_discount_percent=_as_float(
                _first_present(payload, ("manual_discount_percent", "discount_percent")),
                None,
            ),
            rule_discount_amount=_as_float(payload.get("rule_discount_amount"), 0.0) or 0.0,
            rule_surcharge_amount=_as_float(payload.get("rule_surcharge_amount"), 0.0) or 0.0,
            loyalty_discount_amount=_as_float(
                _first_present(payload, ("loyalty_discount_amount", "mg_discount_amount")),
                0.0,
            )
            or 0.0,
            surcharge=_as_float(payload.get("surcharge"), None),
            is_comped=bool(payload.get("is_comped", False)),
            selected_specification=specification,
            selected_options=tuple(
                ItemOption.from_wire(item) for item in _mapping_items(payload, "selected_options")
            ),
            note=_as_optional_str(payload.get("note")),
        )


@dataclass(slots=True, frozen=True)
class PaymentRecord:
    """One payment attempt recorded by the edge server."""

    payment_id: str
    method: str
    amount: float
    timestamp: pd.Timestamp | None = None
    tendered: float | None = None
    change: float | None = None
    note: str | None = None
    cancelled: bool = False
    cancel_reason: str | None = None
    split_type: str | None = None
    split_shares: int | None = None

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> PaymentRecord:
        amount = _as_float(payload.get("amount"), None)
        if amount is None:
            msg = f"Payment payload missing amount: {payload!r}"
            raise ValueError(msg)
        return cls(
            payment_id=str(payload.get("payment_id", "")),
            method=str(payload.get("method", "")),
            amount=amount,
            timestamp=_normalize_timestamp(payload.get("timestamp")),
            tendered=_as_float(payload.get("tendered"), None),
            change=_as_float(payload.get("change"), None),
            note=_as_optional_str(payload.get("note")),
            cancelled=bool(payload.get("cancelled", False)),
            cancel_reason=_as_optional_str(payload.get("cancel_reason")),
            split_type=_as_optional_str(payload.get("split_type")),
            split_shares=_as_int(_first_present(payload, ("split_shares", "aa_shares")), None),
        )


@dataclass(slots=True, frozen=True)
class OrderEvent:
    """Timeline entry attached to a live order."""

    event_type: str
    timestamp: pd.Timestamp | None
    operator_name: str | None = None
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> OrderEvent:
        raw_payload = payload.get("payload")
        body = dict(raw_payload) if isinstance(raw_payload, Mapping) else {}
        return cls(
            event_type=str(payload.get("event_type", "")),
            timestamp=_normalize_timestamp(payload.get("timestamp")),
            operator_name=_as_optional_str(payload.get("operator_name")),
            payload=MappingProxyType(body),
        )


@dataclass(slots=True, frozen=True)
class OrderSnapshot:
    """Authoritative state of one open order on one edge server."""

    order_id: str
    store_id: int
    status: str
    created_at: pd.Timestamp
    updated_at: pd.Timestamp
    start_time: pd.Timestamp
    end_time: pd.Timestamp | None = None
    table_id: str | None = None
    table_name: str | None = None
    zone_id: str | None = None
    zone_name: str | None = None
    guest_count: int = 1
    is_retail: bool = False
    service_type: str | None = None
    queue_number: int | None = None
    receipt_number: str = ""
    items: tuple[LineItem, ...] = ()
    payments: tuple[PaymentRecord, ...] = ()
    original_total: float = 0.0
    subtotal: float = 0.0
    total_discount: float = 0.0
    total_surcharge: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    paid_amount: float = 0.0
    remaining_amount: float = 0.0
    comp_total_amount: float = 0.0
    note: str | None = None
    member_name: str | None = None
    operator_name: str | None = None
    events: tuple[OrderEvent, ...] = ()

    @property
    def display_title(self) -> str:
        """Queue number, table name, or short order id."""
        if self.queue_number is not None:
            return f"#{self.queue_number}"
        if self.table_name:
            return self.table_name
        return self.order_id[:8]

    @property
    def active_payments(self) -> tuple[PaymentRecord, ...]:
        return tuple(payment for payment in self.payments if not payment.cancelled)

    @classmethod
    def from_wire(cls, payload: Any) -> OrderSnapshot:
        """Build a snapshot from its snake_case JSON object.

        Accepts both the flat shape and the `{"store_id": .., "order": {..}}`
        envelope. Raises `ValueError` when identity fields are missing.
        """
        body = _require_mapping(payload, "snapshot")
        if isinstance(body.get("order"), Mapping):
            envelope = body
            body = {**envelope["order"]}
            for key in ("store_id", "edge_server_id", "events"):
                if key in envelope and body.get(key) is None:
                    body[key] = envelope[key]

        order_id = _as_optional_str(body.get("order_id"))
        if order_id is None:
            msg = f"Order snapshot missing order_id: {payload!r}"
            raise ValueError(msg)
        store_id = _first_present(body, ("store_id", "edge_server_id"))
        if store_id is None:
            msg = f"Order snapshot missing store_id: {payload!r}"
            raise ValueError(msg)
        if isinstance(store_id, bool) or not isinstance(store_id, int):
            msg = f"Order snapshot store_id must be an integer, got {store_id!r}"
            raise ValueError(msg)

        created_at = _normalize_timestamp(body.get("created_at"))
        start_time = _normalize_timestamp(body.get("start_time")) or created_at
        updated_at = _normalize_timestamp(body.get("updated_at")) or created_at or start_time
        fallback_time = updated_at or _utc_now()

        return cls(
            order_id=order_id,
            store_id=store_id,
            status=str(body.get("status", "ACTIVE")),
            created_at=created_at or fallback_time,
            updated_at=fallback_time,
            start_time=start_time or fallback_time,
            end_time=_normalize_timestamp(body.get("end_time")),
            table_id=_as_optional_str(body.get("table_id")),
            table_name=_as_optional_str(body.get("table_name")),
            zone_id=_as_optional_str(body.get("zone_id")),
            zone_name=_as_optional_str(body.get("zone_name")),
            guest_count=_as_int(body.get("guest_count"), 1) or 0,
            is_retail=bool(body.get("is_retail", False)),
            service_type=_as_optional_str(body.get("service_type")),
            queue_number=_as_int(body.get("queue_number"), None),
            receipt_number=str(body.get("receipt_number") or ""),
            items=tuple(LineItem.from_wire(item) for item in _mapping_items(body, "items")),
            payments=tuple(
                PaymentRecord.from_wire(item) for item in _mapping_items(body, "payments")
            ),
            original_total=_as_float(body.get("original_total"), 0.0) or 0.0,
            subtotal=_as_float(body.get("subtotal"), 0.0) or 0.0,
            total_discount=_as_float(body.get("total_discount"), 0.0) or 0.0,
            total_surcharge=_as_float(body.get("total_surcharge"), 0.0) or 0.0,
            tax=_as_float(body.get("tax"), 0.0) or 0.0,
            total=_as_float(body.get("total"), 0.0) or 0.0,
            paid_amount=_as_float(body.get("paid_amount"), 0.0) or 0.0,
            remaining_amount=_as_float(body.get("remaining_amount"), 0.0) or 0.0,
            comp_total_amount=_as_float(body.get("comp_total_amount"), 0.0) or 0.0,
            note=_as_optional_str(body.get("note")),
            member_name=_as_optional_str(body.get("member_name")),
            operator_name=_as_optional_str(body.get("operator_name")),
            events=tuple(OrderEvent.from_wire(item) for item in _mapping_items(body, "events")),
        )
