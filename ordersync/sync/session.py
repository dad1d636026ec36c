"""Live order session: connection lifecycle, subscription, and reconciliation.

Every input (start, transport callbacks, reconnect timer, teardown) becomes an
event passed to `LiveOrderSession.dispatch`. Events are queued and handled one
at a time under a re-entrant lock, so the order table has a single writer no
matter which thread a callback arrives on.

Phases::

    connecting -> connected -> reconnecting -> connecting -> ...
                          any -> disconnected   (teardown only, terminal)
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeAlias, assert_never

from ordersync.ops.logging import JsonEventLogger
from ordersync.ops.metrics import SyncMetrics
from ordersync.ops.secrets import Credential, redact_url
from ordersync.protocol.codec import ConsoleMessage, decode_message, encode_subscribe, message_type
from ordersync.sync.backoff import (
    DEFAULT_RECONNECT_MAX_SECONDS,
    DEFAULT_RECONNECT_MIN_SECONDS,
    ExponentialBackoff,
)
from ordersync.sync.reconciler import StoreOrderTable, reconcile
from ordersync.sync.scheduling import Scheduler, ThreadingScheduler, TimerHandle
from ordersync.sync.state import ConnectionPhase, LiveOrdersStore, LiveOrdersView, ViewSubscriber
from ordersync.sync.transport import (
    DEFAULT_STREAM_PATH,
    Transport,
    TransportFactory,
    WebSocketTransportFactory,
    build_stream_url,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Start:
    """Begin the first connection attempt."""


@dataclass(slots=True, frozen=True)
class TransportOpened:
    attempt: int


@dataclass(slots=True, frozen=True)
class FrameReceived:
    attempt: int
    raw_message: str | bytes


@dataclass(slots=True, frozen=True)
class TransportClosed:
    attempt: int
    reason: str


@dataclass(slots=True, frozen=True)
class ReconnectDue:
    attempt: int


@dataclass(slots=True, frozen=True)
class Teardown:
    """Caller is done with the session."""


SessionEvent: TypeAlias = (
    Start | TransportOpened | FrameReceived | TransportClosed | ReconnectDue | Teardown
)


class _AttemptListener:
    """Tags transport callbacks with the attempt they belong to."""

    def __init__(self, session: LiveOrderSession, attempt: int) -> None:
        self._session = session
        self._attempt = attempt

    def on_open(self) -> None:
        self._session.dispatch(TransportOpened(self._attempt))

    def on_message(self, raw_message: str | bytes) -> None:
        self._session.dispatch(FrameReceived(self._attempt, raw_message))

    def on_close(self, reason: str) -> None:
        self._session.dispatch(TransportClosed(self._attempt, reason))


class LiveOrderSession:
    """Keep one store's open orders in sync with the console stream.

    The session owns the connection: it opens the transport, sends one
    Subscribe per successful open, feeds every decoded frame to the
    reconciler, and on any unrequested close clears the table and schedules
    a reconnect with exponential backoff (1 s doubling to 30 s). Only
    `teardown()` ends the cycle.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | Credential,
        store_id: int,
        stream_path: str = DEFAULT_STREAM_PATH,
        transport_factory: TransportFactory | None = None,
        scheduler: Scheduler | None = None,
        reconnect_min_seconds: float = DEFAULT_RECONNECT_MIN_SECONDS,
        reconnect_max_seconds: float = DEFAULT_RECONNECT_MAX_SECONDS,
        transport_timeout_seconds: float = 10.0,
        event_logger: JsonEventLogger | None = None,
        metrics: SyncMetrics | None = None,
        auto_start: bool = True,
    ) -> None:
        if isinstance(store_id, bool) or int(store_id) <= 0:
            msg = "store_id must be a positive integer."
            raise ValueError(msg)

        raw_token = token.reveal() if isinstance(token, Credential) else str(token)
        self.store_id = int(store_id)
        self.url = build_stream_url(base_url, raw_token, stream_path)
        self.event_logger = event_logger
        self.metrics = metrics or SyncMetrics()

        self._backoff = ExponentialBackoff(
            min_seconds=reconnect_min_seconds,
            max_seconds=reconnect_max_seconds,
        )
        self._transport_factory = transport_factory or WebSocketTransportFactory(
            timeout_seconds=transport_timeout_seconds,
        )
        self._scheduler = scheduler or ThreadingScheduler()
        self._store = LiveOrdersStore(self.store_id)

        self._lock = threading.RLock()
        self._inbox: deque[SessionEvent] = deque()
        self._draining = False
        self._attempt = 0
        self._started = False
        self._torn_down = False
        self._transport: Transport | None = None
        self._reconnect_handle: TimerHandle | None = None
        self._connected_event = threading.Event()

        if auto_start:
            self.start()

    def __enter__(self) -> LiveOrderSession:
        return self

    def __exit__(self, exc_type: object, exc: object, traceback: object) -> None:
        del exc_type, exc, traceback
        self.teardown()

    @property
    def phase(self) -> ConnectionPhase:
        return self._store.current.phase

    @property
    def view(self) -> LiveOrdersView:
        """Latest immutable view of the store's open orders."""
        return self._store.current

    @property
    def table(self) -> StoreOrderTable:
        return self._store.table

    @property
    def current_backoff_seconds(self) -> float:
        """Delay the next unrequested close will wait before reconnecting."""
        return self._backoff.current_delay

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def subscribe(self, callback: ViewSubscriber) -> Callable[[], None]:
        """Receive every new `LiveOrdersView`; returns an unsubscribe function."""
        return self._store.subscribe(callback)

    def start(self) -> None:
        self.dispatch(Start())

    def teardown(self) -> None:
        """Stop for good: cancel timers, close the transport, clear state.

        Called from a subscriber callback (while an event is being handled),
        teardown runs as soon as that event finishes, ahead of anything else
        queued; `torn_down` is still False until then.
        """
        self.dispatch(Teardown())

    close = teardown

    def wait_until_connected(self, timeout_seconds: float = 3.0) -> bool:
        return self._connected_event.wait(timeout=timeout_seconds)

    def dispatch(self, event: SessionEvent) -> None:
        """Queue `event` and, unless already draining, handle the queue in order."""
        with self._lock:
            if self._draining and isinstance(event, Teardown):
                self._inbox.appendleft(event)
            else:
                self._inbox.append(event)
            if self._draining:
                return
            self._draining = True
            try:
                while self._inbox:
                    self._handle(self._inbox.popleft())
            finally:
                self._draining = False

    def _handle(self, event: SessionEvent) -> None:
        if isinstance(event, Teardown):
            self._teardown()
            return
        if self._torn_down:
            return

        if isinstance(event, Start):
            if self._started:
                return
            self._started = True
            self._connect()
        elif isinstance(event, ReconnectDue):
            if event.attempt != self._attempt or self._reconnect_handle is None:
                return
            self._reconnect_handle = None
            self._connect()
        elif isinstance(event, TransportOpened):
            if self._is_stale(event.attempt) or self.phase != "connecting":
                return
            self._on_open()
        elif isinstance(event, FrameReceived):
            if self._is_stale(event.attempt):
                return
            self._on_frame(event.raw_message)
        elif isinstance(event, TransportClosed):
            if self._is_stale(event.attempt):
                return
            self._connection_lost(event.reason)
        else:
            assert_never(event)

    def _is_stale(self, attempt: int) -> bool:
        return attempt != self._attempt or self._transport is None

    def _connect(self) -> None:
        self._attempt += 1
        attempt = self._attempt
        self._publish(self._store.table, "connecting")
        self.metrics.record_attempt()
        self._log("info", "connecting", attempt=attempt, url=self.url)
        try:
            self._transport = self._transport_factory(self.url, _AttemptListener(self, attempt))
        except Exception as error:
            self._transport = None
            self._connection_lost(f"connect_failed: {error}")

    def _on_open(self) -> None:
        self._backoff.reset()
        self._connected_event.set()
        self.metrics.record_open()
        self._publish(self._store.table, "connected")
        self._log("info", "connected", attempt=self._attempt)

        transport = self._transport
        if transport is None:
            return
        try:
            transport.send(encode_subscribe([self.store_id]))
        except Exception as error:
            self._connection_lost(f"subscribe_failed: {error}")
            return
        self._log("debug", "subscribed", attempt=self._attempt)

    def _on_frame(self, raw_message: str | bytes) -> None:
        message = decode_message(raw_message)
        self.metrics.record_frame(None if message is None else message_type(message))
        if message is None:
            logger.debug("Discarded undecodable frame on attempt %s.", self._attempt)
            return
        self._apply(message)

    def _apply(self, message: ConsoleMessage) -> None:
        next_table = reconcile(self._store.table, message)
        if next_table is not self._store.table:
            self._publish(next_table, self.phase)

    def _connection_lost(self, reason: str) -> None:
        transport = self._transport
        self._transport = None
        self._connected_event.clear()
        if transport is not None:
            _close_quietly(transport)

        delay = self._backoff.next_delay()
        self._reconnect_handle = self._scheduler.call_later(
            delay,
            partial(self.dispatch, ReconnectDue(self._attempt)),
        )
        self.metrics.record_lost()
        self._publish(StoreOrderTable.empty(self.store_id), "reconnecting")
        self._log(
            "warning",
            "connection_lost",
            attempt=self._attempt,
            reason=reason,
            reconnect_in_seconds=delay,
        )

    def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        self._attempt += 1

        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

        transport = self._transport
        self._transport = None
        if transport is not None:
            _close_quietly(transport)

        self._connected_event.clear()
        self._inbox.clear()
        self.metrics.record_teardown()
        self._publish(StoreOrderTable.empty(self.store_id), "disconnected")
        self._log("info", "teardown")

    def _publish(self, table: StoreOrderTable, phase: ConnectionPhase) -> None:
        self._store.publish(table, phase)

    def _log(self, level: str, event: str, **fields: Any) -> None:
        if "url" in fields:
            fields["url"] = redact_url(str(fields["url"]))
        logger.log(logging.getLevelName(level.upper()), "%s %s", event, fields)
        if self.event_logger is not None:
            self.event_logger.emit(level=level, event=event, store_id=self.store_id, **fields)


def _close_quietly(transport: Transport) -> None:
    try:
        transport.close()
    except Exception:
        pass
