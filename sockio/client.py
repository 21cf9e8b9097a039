"""Socket.IO client: owns the websocket connection, its namespaces and reconnects."""

from __future__ import annotations

import logging
import ssl
import threading
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Union

import websocket

from .connection import DEFAULT_PATH, ReconnectPolicy, build_query, build_websocket_url, is_tls
from .packet import FrameType, Packet, PacketManager
from .socket import Socket

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006
CLOSE_POLICY_VIOLATION = 1008

DEFAULT_PING_INTERVAL = 25000
DEFAULT_PING_TIMEOUT = 60000


class ConnectionState(Enum):
    """Life-cycle of the underlying websocket connection."""

    OPENING = "opening"
    OPENED = "opened"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(Enum):
    """Why the close listener was called."""

    NORMAL = "normal"
    DROP = "drop"


class Transport(Protocol):
    """A websocket connection driven by the client."""

    def run(self) -> None: ...

    def send(self, payload: Union[str, bytes], binary: bool) -> None: ...

    def close(self, code: int, reason: str) -> None: ...


TransportFactory = Callable[[str, dict, "Client", bool], Transport]


class WebSocketTransport:
    """Transport built on a websocket-client application."""

    def __init__(self, url: str, headers: Mapping[str, str], client: "Client", verify_tls: bool = True) -> None:
        self._client = client
        self._verify_tls = verify_tls
        self._opened = False
        self._finished = False
        self._local_code: Optional[int] = None
        self._lock = threading.Lock()
        self._app = websocket.WebSocketApp(
            url,
            header=[f"{key}: {value}" for key, value in headers.items()],
            on_open=self._on_open,
            on_message=self._on_message,
            on_error=self._on_error,
            on_close=self._on_close,
        )

    def run(self) -> None:
        sslopt = None if self._verify_tls else {"cert_reqs": ssl.CERT_NONE, "check_hostname": False}
        try:
            self._app.run_forever(sslopt=sslopt)
        finally:
            self._finish(None)

    def send(self, payload: Union[str, bytes], binary: bool) -> None:
        opcode = websocket.ABNF.OPCODE_BINARY if binary else websocket.ABNF.OPCODE_TEXT
        self._app.send(payload, opcode)

    def close(self, code: int, reason: str) -> None:
        self._local_code = code
        self._app.close(status=code, reason=reason.encode("utf-8"))

    def _on_open(self, _ws: Any) -> None:
        self._opened = True
        self._client.handle_open()

    def _on_message(self, _ws: Any, message: Union[str, bytes]) -> None:
        self._client.handle_message(message)

    def _on_error(self, _ws: Any, error: Exception) -> None:
        logger.debug("websocket error: %s", error)

    def _on_close(self, _ws: Any, code: Optional[int], _reason: Any) -> None:
        self._finish(code)

    def _finish(self, remote_code: Optional[int]) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
        if not self._opened:
            self._client.handle_fail()
            return
        code = self._local_code if self._local_code is not None else (remote_code or CLOSE_ABNORMAL)
        self._client.handle_close(code)


def _notify(listener: Optional[Callable[..., None]], *args: Any) -> None:
    if listener is not None:
        listener(*args)


class Client:
    """A Socket.IO client holding one connection and any number of namespaces.

    Listeners are plain attributes: ``open_listener()``, ``fail_listener()``,
    ``reconnecting_listener()``, ``reconnect_listener(attempts, delay_ms)``,
    ``close_listener(reason)``, ``socket_open_listener(nsp)`` and
    ``socket_close_listener(nsp)``.
    """

    def __init__(
        self,
        use_tls: bool = False,
        verify_tls: bool = True,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.use_tls = use_tls
        self.verify_tls = verify_tls
        self.path = DEFAULT_PATH
        self.reconnect = ReconnectPolicy()
        self.ping_interval = 0
        self.ping_timeout = 0

        self.open_listener: Optional[Callable[[], None]] = None
        self.fail_listener: Optional[Callable[[], None]] = None
        self.reconnecting_listener: Optional[Callable[[], None]] = None
        self.reconnect_listener: Optional[Callable[[int, int], None]] = None
        self.close_listener: Optional[Callable[[CloseReason], None]] = None
        self.socket_open_listener: Optional[Callable[[str], None]] = None
        self.socket_close_listener: Optional[Callable[[str], None]] = None

        self._factory: TransportFactory = transport_factory or WebSocketTransport
        self._state = ConnectionState.CLOSED
        self._base_url = ""
        self._query_string = ""
        self._headers: dict[str, str] = {}
        self._auth: Any = None
        self._sid = ""
        self._packets = PacketManager(self._on_decode, self._on_encode)
        self._sockets: dict[str, Socket] = {}
        self._sockets_lock = threading.RLock()
        self._transport: Optional[Transport] = None
        self._con: Optional[Transport] = None
        self._network_thread: Optional[threading.Thread] = None
        self._reconnect_timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._reconnects_made = 0

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.sync_close()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def opened(self) -> bool:
        return self._state is ConnectionState.OPENED

    @property
    def url(self) -> str:
        return self._base_url

    @property
    def session_id(self) -> str:
        return self._sid

    def clear_con_listeners(self) -> None:
        self.open_listener = None
        self.fail_listener = None
        self.reconnecting_listener = None
        self.reconnect_listener = None
        self.close_listener = None

    def clear_socket_listeners(self) -> None:
        self.socket_open_listener = None
        self.socket_close_listener = None

    def connect(
        self,
        uri: str = "",
        query: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        auth: Any = None,
    ) -> None:
        """Start connecting in a background thread; does nothing while connected."""
        self._cancel_reconnect_timer()
        thread = self._network_thread
        if thread is not None:
            if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                if thread is not threading.current_thread():
                    thread.join()
                self._network_thread = None
            else:
                return
        self._state = ConnectionState.OPENING
        self._reconnects_made = 0
        if uri:
            self._base_url = uri
        self._query_string = build_query(query)
        self._headers = dict(headers or {})
        self._auth = auth
        self._reset_states()
        self._start_network()

    def socket(self, nsp: str = "") -> Socket:
        """Return the socket for namespace ``nsp``, creating it on first use."""
        if not nsp:
            name = "/"
        elif not nsp.startswith("/"):
            name = "/" + nsp
        else:
            name = nsp
        with self._sockets_lock:
            existing = self._sockets.get(name)
            if existing is not None:
                return existing
            created = Socket(self, name, self._auth)
            self._sockets[name] = created
            return created

    def close(self) -> None:
        """Leave every namespace and close the connection."""
        self._state = ConnectionState.CLOSING
        self._sockets_invoke(Socket.close)
        self._close_impl(CLOSE_NORMAL, "End by user")

    def sync_close(self) -> None:
        """Like :meth:`close`, then wait for the network thread to finish."""
        self.close()
        thread = self._network_thread
        if thread is not None:
            if thread is not threading.current_thread():
                thread.join()
            self._network_thread = None

    def send(self, packet: Packet) -> None:
        self._packets.encode(packet)

    def remove_socket(self, nsp: str) -> None:
        with self._sockets_lock:
            self._sockets.pop(nsp, None)

    def on_socket_opened(self, nsp: str) -> None:
        _notify(self.socket_open_listener, nsp)

    def on_socket_closed(self, nsp: str) -> None:
        _notify(self.socket_close_listener, nsp)

    def handle_open(self) -> None:
        """The websocket opened."""
        self._con = self._transport
        if self._state is ConnectionState.CLOSING:
            logger.debug("connection opened while closing")
            self.close()
            return
        self._state = ConnectionState.OPENED
        self._reconnects_made = 0
        self._sockets_invoke(Socket.handle_open)
        self.socket("")
        _notify(self.open_listener)

    def handle_fail(self) -> None:
        """The websocket could not be opened."""
        if self._state is ConnectionState.CLOSING:
            logger.debug("connection failed while closing")
            self.close()
            return
        self._con = None
        self._transport = None
        self._state = ConnectionState.CLOSED
        self._sockets_invoke(Socket.handle_disconnect)
        logger.debug("connection failed")
        if self._reconnects_made < self.reconnect.attempts:
            self._schedule_reconnect()
        else:
            _notify(self.fail_listener)

    def handle_close(self, code: int = CLOSE_NORMAL) -> None:
        """The websocket closed with close code ``code``."""
        previous = self._state
        self._state = ConnectionState.CLOSED
        self._con = None
        self._transport = None
        self._sockets_invoke(Socket.handle_disconnect)
        if code == CLOSE_NORMAL or previous is ConnectionState.CLOSING:
            reason = CloseReason.NORMAL
        else:
            if self._reconnects_made < self.reconnect.attempts:
                self._schedule_reconnect()
                return
            reason = CloseReason.DROP
        _notify(self.close_listener, reason)

    def handle_message(self, payload: Union[str, bytes]) -> None:
        """Feed one websocket payload to the packet decoder."""
        self._packets.put_payload(payload)

    def _start_network(self) -> None:
        thread = threading.Thread(target=self._run_connection, name="sockio-network", daemon=True)
        self._network_thread = thread
        thread.start()

    def _run_connection(self) -> None:
        transport = self._connect_impl()
        if transport is None:
            return
        try:
            transport.run()
        except Exception:
            logger.exception("transport stopped with an error")

    def _connect_impl(self) -> Optional[Transport]:
        try:
            secure = is_tls(self._base_url)
            url = build_websocket_url(self._base_url, self.path, self._sid, self._query_string)
        except ValueError as exc:
            logger.error("cannot connect to %r: %s", self._base_url, exc)
            _notify(self.fail_listener)
            return None
        if secure and not self.use_tls:
            logger.error("TLS is disabled; cannot connect to %r", self._base_url)
            _notify(self.fail_listener)
            return None
        try:
            transport = self._factory(url, dict(self._headers), self, self.verify_tls)
        except Exception as exc:
            logger.error("get connection error: %s", exc)
            _notify(self.fail_listener)
            return None
        self._transport = transport
        return transport

    def _close_impl(self, code: int, reason: str) -> None:
        logger.debug("close by reason: %s", reason)
        self._cancel_reconnect_timer()
        con = self._con
        if con is None:
            logger.debug("no active session to close: %s", reason)
            return
        try:
            con.close(code, reason)
        except Exception as exc:
            logger.debug("close failed: %s", exc)

    def _on_encode(self, is_binary: bool, payload: Union[str, bytes]) -> None:
        con = self._con
        if self._state is not ConnectionState.OPENED or con is None:
            return
        try:
            con.send(payload, is_binary)
        except Exception as exc:
            logger.debug("send failed: %s", exc)

    def _on_decode(self, packet: Packet) -> None:
        if packet.frame == FrameType.MESSAGE:
            with self._sockets_lock:
                target = self._sockets.get(packet.nsp)
            if target is not None:
                target.handle_packet(packet)
        elif packet.frame == FrameType.OPEN:
            self._on_handshake(packet.data)
        elif packet.frame == FrameType.CLOSE:
            self._close_impl(CLOSE_ABNORMAL, "End by server")
        elif packet.frame == FrameType.PING:
            self._on_ping()

    def _on_handshake(self, data: Any) -> None:
        if isinstance(data, dict) and isinstance(data.get("sid"), str):
            self._sid = data["sid"]
            interval = data.get("pingInterval")
            timeout = data.get("pingTimeout")
            self.ping_interval = interval if _is_int(interval) else DEFAULT_PING_INTERVAL
            self.ping_timeout = timeout if _is_int(timeout) else DEFAULT_PING_TIMEOUT
            return
        self._close_impl(CLOSE_POLICY_VIOLATION, "Handshake error")

    def _on_ping(self) -> None:
        def reply(_is_binary: bool, payload: Union[str, bytes]) -> None:
            con = self._con
            if con is None:
                return
            try:
                con.send(payload, False)
            except Exception as exc:
                logger.debug("pong failed: %s", exc)

        self._packets.encode(Packet.of_frame(FrameType.PONG), reply)

    def _schedule_reconnect(self) -> None:
        delay = self.reconnect.next_delay(self._reconnects_made)
        logger.debug("reconnect for attempt %d in %d ms", self._reconnects_made, delay)
        _notify(self.reconnect_listener, self._reconnects_made, delay)

        def fire() -> None:
            with self._timer_lock:
                if self._reconnect_timer is not timer:
                    return
                self._reconnect_timer = None
            self._timeout_reconnect()

        timer = threading.Timer(delay / 1000.0, fire)
        timer.daemon = True
        with self._timer_lock:
            previous, self._reconnect_timer = self._reconnect_timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _timeout_reconnect(self) -> None:
        if self._state is not ConnectionState.CLOSED:
            return
        self._state = ConnectionState.OPENING
        self._reconnects_made += 1
        self._reset_states()
        logger.debug("reconnecting")
        _notify(self.reconnecting_listener)
        previous = self._network_thread
        if previous is not None and previous is not threading.current_thread():
            previous.join()
        self._start_network()

    def _cancel_reconnect_timer(self) -> None:
        with self._timer_lock:
            timer, self._reconnect_timer = self._reconnect_timer, None
        if timer is not None:
            timer.cancel()

    def _reset_states(self) -> None:
        self._sid = ""
        self._packets.reset()

    def _sockets_invoke(self, method: Callable[[Socket], None]) -> None:
        with self._sockets_lock:
            sockets = list(self._sockets.values())
        for item in sockets:
            method(item)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)