"""A namespace-bound Socket.IO socket: event listeners, emits and acknowledgements."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from .packet import Packet, PacketType

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 20.0
CLOSE_TIMEOUT = 3.0

AckCallback = Callable[[list], None]
ErrorListener = Callable[[Any], None]


class SocketOwner(Protocol):
    """What a socket needs from the client that owns it."""

    @property
    def opened(self) -> bool: ...

    def send(self, packet: Packet) -> None: ...

    def on_socket_opened(self, nsp: str) -> None: ...

    def on_socket_closed(self, nsp: str) -> None: ...

    def remove_socket(self, nsp: str) -> None: ...


def _as_list(messages: Any) -> list:
    if messages is None:
        return []
    if isinstance(messages, (list, tuple)):
        return list(messages)
    return [messages]


_event_ids = itertools.count(1)
_event_ids_lock = threading.Lock()


def _next_event_id() -> int:
    with _event_ids_lock:
        return next(_event_ids)


@dataclass
class Event:
    """An event received from the server, with room for an acknowledgement."""

    nsp: str
    name: str
    messages: list
    need_ack: bool
    ack_message: list = field(default_factory=list, init=False)

    @property
    def message(self) -> Any:
        """The first message of the event, or None when it carries none."""
        return self.messages[0] if self.messages else None

    def put_ack_message(self, messages: Any) -> None:
        """Set the reply sent back to the server; ignored when no ack is wanted."""
        if self.need_ack:
            self.ack_message = _as_list(messages)


EventListener = Callable[[Event], None]


class Socket:
    """One namespace on a client connection."""

    def __init__(self, client: Optional[SocketOwner], nsp: str, auth: Any = None) -> None:
        self._client = client
        self._nsp = nsp
        self._auth = auth
        self._connected = False
        self._socket_id = ""
        self._acks: dict[int, AckCallback] = {}
        self._listeners: dict[str, EventListener] = {}
        self._error_listener: Optional[ErrorListener] = None
        self._queue: deque[Packet] = deque()
        self._timer: Optional[threading.Timer] = None
        self._event_lock = threading.Lock()
        self._queue_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        if client is not None and client.opened:
            self._send_connect()

    @property
    def namespace(self) -> str:
        return self._nsp

    @property
    def socket_id(self) -> str:
        return self._socket_id

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event_name: str, listener: EventListener) -> EventListener:
        """Bind ``listener`` to ``event_name``, replacing any earlier binding."""
        with self._event_lock:
            self._listeners[event_name] = listener
        return listener

    def off(self, event_name: str) -> None:
        with self._event_lock:
            self._listeners.pop(event_name, None)

    def off_all(self) -> None:
        with self._event_lock:
            self._listeners.clear()

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listener = listener

    def off_error(self) -> None:
        self._error_listener = None

    def close(self) -> None:
        """Ask the server to leave this namespace; closes locally after a grace period."""
        if self._client is None or not self._connected:
            return
        self._send_packet(Packet.control(PacketType.DISCONNECT, self._nsp))
        self._schedule(CLOSE_TIMEOUT, self.handle_close)

    def emit(self, name: str, messages: Any = None, ack: Optional[AckCallback] = None) -> None:
        """Send event ``name``; ``ack`` is called with the server's reply list."""
        if self._client is None:
            return
        payload = [name, *_as_list(messages)]
        pack_id = -1
        if ack is not None:
            pack_id = _next_event_id()
            with self._event_lock:
                self._acks[pack_id] = ack
        self._send_packet(Packet.message(self._nsp, payload, pack_id))

    def handle_connected(self) -> None:
        """Mark the namespace as joined and flush packets queued until now."""
        self._cancel_timer()
        if self._connected or self._client is None:
            return
        self._connected = True
        self._client.on_socket_opened(self._nsp)
        self._flush_queue()

    def handle_close(self) -> None:
        """Detach from the client for good."""
        client = self._client
        if client is None:
            return
        self._client = None
        self._cancel_timer()
        self._connected = False
        with self._queue_lock:
            self._queue.clear()
        client.on_socket_closed(self._nsp)
        client.remove_socket(self._nsp)

    def handle_open(self) -> None:
        """The underlying connection opened: ask to join this namespace."""
        self._send_connect()

    def handle_disconnect(self) -> None:
        """The underlying connection dropped; pending packets are discarded."""
        if self._client is None or not self._connected:
            return
        self._connected = False
        with self._queue_lock:
            self._queue.clear()

    def handle_packet(self, packet: Packet) -> None:
        """Act on one decoded packet addressed to this namespace."""
        if self._client is None or packet.nsp != self._nsp:
            return
        kind = packet.packet_type
        if kind == PacketType.CONNECT:
            logger.debug("received connect on %s", self._nsp)
            data = packet.data
            if isinstance(data, dict) and isinstance(data.get("sid"), str):
                self._socket_id = data["sid"]
            self.handle_connected()
        elif kind == PacketType.DISCONNECT:
            logger.debug("received disconnect on %s", self._nsp)
            self.handle_close()
        elif kind in (PacketType.EVENT, PacketType.BINARY_EVENT):
            data = packet.data
            if isinstance(data, list) and data and isinstance(data[0], str):
                self._dispatch_event(packet.nsp, packet.pack_id, data[0], data[1:])
        elif kind in (PacketType.ACK, PacketType.BINARY_ACK):
            data = packet.data
            self._dispatch_ack(packet.pack_id, data if isinstance(data, list) else _as_list(data))
        elif kind == PacketType.ERROR:
            listener = self._error_listener
            if listener is not None:
                listener(packet.data)

    def _dispatch_event(self, nsp: str, pack_id: int, name: str, messages: list) -> None:
        need_ack = pack_id >= 0
        event = Event(nsp, name, messages, need_ack)
        with self._event_lock:
            listener = self._listeners.get(name)
        if listener is not None:
            listener(event)
        if need_ack:
            self._send_packet(Packet.message(self._nsp, list(event.ack_message), pack_id, True))

    def _dispatch_ack(self, pack_id: int, messages: list) -> None:
        with self._event_lock:
            callback = self._acks.pop(pack_id, None)
        if callback is not None:
            callback(messages)

    def _send_connect(self) -> None:
        if self._client is None:
            return
        self._client.send(Packet.control(PacketType.CONNECT, self._nsp, self._auth))
        self._schedule(CONNECT_TIMEOUT, self._timeout_connection)

    def _timeout_connection(self) -> None:
        if self._client is None:
            return
        with self._timer_lock:
            self._timer = None
        logger.debug("connection timeout, closing socket %s", self._nsp)
        self.handle_close()

    def _send_packet(self, packet: Packet) -> None:
        if self._client is None:
            return
        if self._connected:
            self._flush_queue()
            self._client.send(packet)
        else:
            with self._queue_lock:
                self._queue.append(packet)

    def _flush_queue(self) -> None:
        while True:
            with self._queue_lock:
                if not self._queue:
                    return
                packet = self._queue.popleft()
            client = self._client
            if client is None:
                return
            client.send(packet)

    def _schedule(self, seconds: float, action: Callable[[], None]) -> None:
        def fire() -> None:
            with self._timer_lock:
                if self._timer is not timer:
                    return
            action()

        timer = threading.Timer(seconds, fire)
        timer.daemon = True
        with self._timer_lock:
            previous, self._timer = self._timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _cancel_timer(self) -> None:
        with self._timer_lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()