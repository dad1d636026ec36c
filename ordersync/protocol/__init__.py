"""Live order data model and console stream codec."""

from ordersync.protocol.codec import (
    ConsoleMessage,
    EdgeStatus,
    MessageType,
    OrderRemoved,
    OrderUpdated,
    Ready,
    decode_message,
    encode_subscribe,
    message_type,
)
from ordersync.protocol.models import (
    ItemOption,
    LineItem,
    OrderEvent,
    OrderSnapshot,
    PaymentRecord,
    SpecificationInfo,
)

__all__ = [
    "ConsoleMessage",
    "EdgeStatus",
    "ItemOption",
    "LineItem",
    "MessageType",
    "OrderEvent",
    "OrderRemoved",
    "OrderSnapshot",
    "OrderUpdated",
    "PaymentRecord",
    "Ready",
    "SpecificationInfo",
    "decode_message",
    "encode_subscribe",
    "message_type",
]
