"""Streaming transport: console stream URL and a websocket-client reader thread."""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol
from urllib.parse import quote, urlsplit, urlunsplit

import websocket

logger = logging.getLogger(__name__)

DEFAULT_STREAM_PATH = "/api/tenant/live-orders/ws"
_WS_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


def build_stream_url(base_url: str, token: str, path: str = DEFAULT_STREAM_PATH) -> str:
    """Compose the stream URL with the bearer token as a `token` query parameter.

    The streaming handshake cannot carry an Authorization header, so the
    token travels URL-encoded in the query string. HTTP base URLs are
    mapped to their WebSocket scheme.
    """
    if not str(base_url).strip():
        msg = "base_url must be non-empty."
        raise ValueError(msg)
    if not str(token):
        msg = "token must be non-empty."
        raise ValueError(msg)

    parts = urlsplit(str(base_url).strip().rstrip("/"))
    scheme = _WS_SCHEMES.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        msg = f"Unsupported base_url: {base_url!r}"
        raise ValueError(msg)
    full_path = parts.path + "/" + str(path).lstrip("/")
    query = f"token={quote(str(token), safe='')}"
    return urlunsplit((scheme, parts.netloc, full_path, query, ""))


class TransportListener(Protocol):
    """Callbacks a transport reports into; each may run on the reader thread."""

    def on_open(self) -> None: ...

    def on_message(self, raw_message: str | bytes) -> None: ...

    def on_close(self, reason: str) -> None: ...


class Transport(Protocol):
    """One streaming connection attempt."""

    def send(self, payload: str) -> None: ...

    def close(self) -> None: ...


class TransportFactory(Protocol):
    """Starts a connection attempt that reports to `listener`."""

    def __call__(self, url: str, listener: TransportListener) -> Transport: ...


class WebSocketConnection(Protocol):
    """Subset of `websocket.WebSocket` used by the reader loop."""

    def recv(self) -> str | bytes: ...

    def send(self, payload: str) -> Any: ...

    def close(self) -> None: ...


class ConnectionFactory(Protocol):
    def __call__(self, url: str, timeout: float) -> WebSocketConnection: ...


def _default_connection_factory(url: str, timeout: float) -> WebSocketConnection:
    return websocket.create_connection(url, timeout=timeout)


def _looks_like_timeout(error: Exception) -> bool:
    if isinstance(error, (TimeoutError, websocket.WebSocketTimeoutException)):
        return True
    return "timed out" in str(error).lower()


class WebSocketTransport:
    """Open one websocket in a daemon thread and pump frames to a listener.

    `on_close` fires exactly once when the connection fails or drops, and
    never after `close()` has been called.
    """

    def __init__(
        self,
        url: str,
        listener: TransportListener,
        *,
        timeout_seconds: float = 10.0,
        connection_factory: ConnectionFactory | None = None,
        thread_name: str = "ordersync-ws",
    ) -> None:
        if timeout_seconds <= 0:
            msg = "timeout_seconds must be positive."
            raise ValueError(msg)
        self.url = url
        self.timeout_seconds = float(timeout_seconds)
        self._listener = listener
        self._connection_factory = connection_factory or _default_connection_factory
        self._connection: WebSocketConnection | None = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=thread_name, daemon=True)
        self._thread.start()

    @property
    def closed(self) -> bool:
        return self._stop_event.is_set()

    def send(self, payload: str) -> None:
        with self._lock:
            connection = self._connection
        if connection is None or self._stop_event.is_set():
            msg = "WebSocket is not open."
            raise RuntimeError(msg)
        connection.send(payload)

    def close(self) -> None:
        self._stop_event.set()
        with self._lock:
            connection = self._connection
            self._connection = None
        if connection is not None:
            _close_quietly(connection)

    def join(self, timeout_seconds: float | None = None) -> None:
        self._thread.join(timeout=timeout_seconds)

    def _run(self) -> None:
        try:
            connection = self._connection_factory(self.url, timeout=self.timeout_seconds)
        except Exception as error:
            self._report_close(f"connect_failed: {error}")
            return

        with self._lock:
            if self._stop_event.is_set():
                _close_quietly(connection)
                return
            self._connection = connection

        reason = "closed"
        try:
            self._listener.on_open()
            while not self._stop_event.is_set():
                try:
                    raw_message = connection.recv()
                except Exception as receive_error:
                    if _looks_like_timeout(receive_error):
                        continue
                    raise
                if raw_message in {"", b"", None}:
                    msg = "WebSocket returned empty payload."
                    raise RuntimeError(msg)
                self._listener.on_message(raw_message)
        except Exception as error:
            reason = str(error) or type(error).__name__
        finally:
            with self._lock:
                self._connection = None
            _close_quietly(connection)
        self._report_close(reason)

    def _report_close(self, reason: str) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.debug("WebSocket closed: %s", reason)
        self._listener.on_close(reason)


class WebSocketTransportFactory:
    """`TransportFactory` producing `WebSocketTransport` instances."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self.connection_factory = connection_factory

    def __call__(self, url: str, listener: TransportListener) -> WebSocketTransport:
        return WebSocketTransport(
            url,
            listener,
            timeout_seconds=self.timeout_seconds,
            connection_factory=self.connection_factory,
        )


def _close_quietly(connection: WebSocketConnection) -> None:
    try:
        connection.close()
    except Exception:
        pass
