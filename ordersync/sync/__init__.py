"""Live order synchronization: session, reconciler, transport, and views."""

from ordersync.sync.backoff import ExponentialBackoff
from ordersync.sync.reconciler import StoreOrderTable, reconcile, reconcile_all
from ordersync.sync.scheduling import Scheduler, ThreadingScheduler, TimerHandle
from ordersync.sync.session import (
    FrameReceived,
    LiveOrderSession,
    ReconnectDue,
    SessionEvent,
    Start,
    Teardown,
    TransportClosed,
    TransportOpened,
)
from ordersync.sync.state import (
    ConnectionPhase,
    LiveOrdersStore,
    LiveOrdersView,
    sort_by_freshness,
)
from ordersync.sync.transport import (
    DEFAULT_STREAM_PATH,
    Transport,
    TransportFactory,
    TransportListener,
    WebSocketTransport,
    WebSocketTransportFactory,
    build_stream_url,
)

__all__ = [
    "DEFAULT_STREAM_PATH",
    "ConnectionPhase",
    "ExponentialBackoff",
    "FrameReceived",
    "LiveOrderSession",
    "LiveOrdersStore",
    "LiveOrdersView",
    "ReconnectDue",
    "Scheduler",
    "SessionEvent",
    "Start",
    "StoreOrderTable",
    "Teardown",
    "ThreadingScheduler",
    "TimerHandle",
    "Transport",
    "TransportClosed",
    "TransportFactory",
    "TransportListener",
    "TransportOpened",
    "WebSocketTransport",
    "WebSocketTransportFactory",
    "build_stream_url",
    "reconcile",
    "reconcile_all",
    "sort_by_freshness",
]
