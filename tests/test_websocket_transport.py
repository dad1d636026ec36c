from __future__ import annotations

import threading
import time

import pytest

from ordersync.sync import WebSocketTransport, WebSocketTransportFactory, build_stream_url


class FakeWebSocketConnection:
    def __init__(self, scripted_messages: list[str]) -> None:
        self._messages = list(scripted_messages)
        self.sent_payloads: list[str] = []
        self.closed = False

    def recv(self) -> str:
        if self._messages:
            message = self._messages.pop(0)
            if message == "__TIMEOUT__":
                raise TimeoutError("timed out")
            if message == "__CLOSE__":
                raise RuntimeError("socket closed")
            return message
        time.sleep(0.01)
        raise TimeoutError("timed out")

    def send(self, payload: str) -> None:
        self.sent_payloads.append(payload)

    def close(self) -> None:
        self.closed = True


class RecordingListener:
    def __init__(self) -> None:
        self.opened = threading.Event()
        self.finished = threading.Event()
        self.messages: list[str | bytes] = []
        self.close_reasons: list[str] = []

    def on_open(self) -> None:
        self.opened.set()

    def on_message(self, raw_message: str | bytes) -> None:
        self.messages.append(raw_message)

    def on_close(self, reason: str) -> None:
        self.close_reasons.append(reason)
        self.finished.set()


def test_build_stream_url_maps_scheme_and_encodes_token() -> None:
    assert build_stream_url("https://console.example/", "a b/c") == (
        "wss://console.example/api/tenant/live-orders/ws?token=a%20b%2Fc"
    )
    assert build_stream_url("http://localhost:8080/base", "t", "/stream") == (
        "ws://localhost:8080/base/stream?token=t"
    )
    with pytest.raises(ValueError, match="base_url"):
        build_stream_url("  ", "t")
    with pytest.raises(ValueError, match="token"):
        build_stream_url("https://console.example", "")
    with pytest.raises(ValueError, match="Unsupported"):
        build_stream_url("ftp://console.example", "t")


def test_transport_pumps_frames_and_reports_close_once() -> None:
    connection = FakeWebSocketConnection(["m1", "__TIMEOUT__", "m2", "__CLOSE__"])
    listener = RecordingListener()

    transport = WebSocketTransport(
        "wss://console.example/ws?token=t",
        listener,
        connection_factory=lambda url, timeout: connection,
    )
    assert listener.finished.wait(timeout=2.0)
    transport.join(timeout_seconds=2.0)

    assert listener.opened.is_set()
    assert listener.messages == ["m1", "m2"]
    assert listener.close_reasons == ["socket closed"]
    assert connection.closed is True
    assert transport.closed is True


def test_transport_reports_connect_failure_without_open() -> None:
    listener = RecordingListener()

    def refuse(url: str, timeout: float) -> FakeWebSocketConnection:
        del url, timeout
        raise OSError("connection refused")

    transport = WebSocketTransport("wss://console.example/ws", listener, connection_factory=refuse)
    transport.join(timeout_seconds=2.0)

    assert listener.opened.is_set() is False
    assert listener.close_reasons == ["connect_failed: connection refused"]


def test_transport_empty_payload_is_treated_as_close() -> None:
    listener = RecordingListener()
    connection = FakeWebSocketConnection([""])

    transport = WebSocketTransport(
        "wss://console.example/ws",
        listener,
        connection_factory=lambda url, timeout: connection,
    )
    transport.join(timeout_seconds=2.0)

    assert listener.close_reasons == ["WebSocket returned empty payload."]


def test_requested_close_is_silent_and_blocks_send() -> None:
    listener = RecordingListener()
    connection = FakeWebSocketConnection([])
    transport = WebSocketTransport(
        "wss://console.example/ws",
        listener,
        connection_factory=lambda url, timeout: connection,
    )
    assert listener.opened.wait(timeout=2.0)

    transport.send('{"type":"Subscribe","store_ids":[7]}')
    transport.close()
    transport.join(timeout_seconds=2.0)

    assert connection.sent_payloads == ['{"type":"Subscribe","store_ids":[7]}']
    assert connection.closed is True
    assert listener.close_reasons == []
    with pytest.raises(RuntimeError, match="not open"):
        transport.send("late")


def test_transport_factory_passes_timeout() -> None:
    seen_timeouts: list[float] = []
    listener = RecordingListener()

    def connect(url: str, timeout: float) -> FakeWebSocketConnection:
        del url
        seen_timeouts.append(timeout)
        return FakeWebSocketConnection(["__CLOSE__"])

    factory = WebSocketTransportFactory(timeout_seconds=3.5, connection_factory=connect)
    transport = factory("wss://console.example/ws", listener)
    transport.join(timeout_seconds=2.0)

    assert seen_timeouts == [3.5]
    assert listener.close_reasons == ["socket closed"]
    with pytest.raises(ValueError, match="timeout_seconds"):
        WebSocketTransport("wss://console.example/ws", listener, timeout_seconds=0)
