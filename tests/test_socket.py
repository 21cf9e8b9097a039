import threading

import pytest

from sockio.packet import Packet, PacketType
from sockio.socket import CLOSE_TIMEOUT, CONNECT_TIMEOUT, Event, Socket


class FakeClient:
    def __init__(self, opened=True):
        self.opened = opened
        self.sent = []
        self.opened_ns = []
        self.closed_ns = []
        self.removed = []

    def send(self, packet):
        self.sent.append(packet.encode()[0])

    def on_socket_opened(self, nsp):
        self.opened_ns.append(nsp)

    def on_socket_closed(self, nsp):
        self.closed_ns.append(nsp)

    def remove_socket(self, nsp):
        self.removed.append(nsp)


@pytest.fixture
def timers(monkeypatch):
    created = []

    class FakeTimer:
        def __init__(self, interval, function):
            self.interval = interval
            self.function = function
            self.daemon = False
            self.started = False
            self.cancelled = False
            created.append(self)

        def start(self):
            self.started = True

        def cancel(self):
            self.cancelled = True

    monkeypatch.setattr(threading, "Timer", FakeTimer)
    return created


def incoming(text):
    packet = Packet()
    packet.parse(text)
    return packet


def connected_socket(client, nsp="/"):
    sock = Socket(client, nsp, None)
    sock.handle_connected()
    return sock


def test_opened_client_sends_connect_and_starts_timeout(timers):
    client = FakeClient()
    Socket(client, "/", None)
    assert client.sent == ["40"]
    assert timers[0].interval == CONNECT_TIMEOUT
    assert timers[0].started


def test_closed_client_sends_nothing(timers):
    client = FakeClient(opened=False)
    Socket(client, "/", None)
    assert client.sent == []
    assert timers == []


def test_connect_packet_sets_socket_id(timers):
    client = FakeClient()
    sock = Socket(client, "/", None)
    sock.handle_packet(incoming('40{"sid":"abc"}'))
    assert sock.socket_id == "abc"
    assert sock.connected
    assert client.opened_ns == ["/"]
    assert timers[0].cancelled


def test_emit_is_queued_until_connected(timers):
    client = FakeClient(opened=False)
    sock = Socket(client, "/chat", None)
    sock.emit("hello", ["world"])
    assert client.sent == []
    sock.handle_connected()
    assert client.sent == ['42/chat,["hello","world"]']


def test_emit_with_ack_receives_reply_once(timers):
    client = FakeClient()
    sock = connected_socket(client)
    received = []
    sock.emit("ask", [1], ack=received.append)
    sent = incoming(client.sent[-1])
    assert sent.data == ["ask", 1]
    assert sent.pack_id >= 1
    sock.handle_packet(incoming(f'43{sent.pack_id}["yes"]'))
    sock.handle_packet(incoming(f'43{sent.pack_id}["again"]'))
    assert received == [["yes"]]


def test_ack_ids_are_distinct(timers):
    client = FakeClient()
    sock = connected_socket(client)
    sock.emit("a", [], ack=lambda m: None)
    sock.emit("b", [], ack=lambda m: None)
    first, second = (incoming(text).pack_id for text in client.sent[-2:])
    assert first != second


def test_event_listener_and_ack_reply(timers):
    client = FakeClient()
    sock = connected_socket(client)
    seen = []

    def listener(event):
        seen.append(event)
        event.put_ack_message(["ok"])

    sock.on("chat", listener)
    sock.handle_packet(incoming('425["chat","hi"]'))
    assert seen[0].name == "chat"
    assert seen[0].message == "hi"
    assert seen[0].need_ack
    assert client.sent[-1] == '435["ok"]'


def test_event_without_listener_still_acks(timers):
    client = FakeClient()
    sock = connected_socket(client)
    sock.handle_packet(incoming('427["nobody"]'))
    assert client.sent[-1] == "437[]"


def test_off_and_off_all_remove_listeners(timers):
    client = FakeClient()
    sock = connected_socket(client)
    seen = []
    sock.on("a", seen.append)
    sock.on("b", seen.append)
    sock.off("a")
    sock.handle_packet(incoming('42["a",1]'))
    assert seen == []
    sock.off_all()
    sock.handle_packet(incoming('42["b",1]'))
    assert seen == []


def test_error_listener(timers):
    client = FakeClient()
    sock = connected_socket(client)
    errors = []
    sock.on_error(errors.append)
    sock.handle_packet(incoming('44{"message":"nope"}'))
    sock.off_error()
    sock.handle_packet(incoming('44{"message":"nope"}'))
    assert errors == [{"message": "nope"}]


def test_server_disconnect_detaches(timers):
    client = FakeClient()
    sock = connected_socket(client)
    count = len(client.sent)
    sock.handle_packet(incoming("41"))
    assert client.closed_ns == ["/"]
    assert client.removed == ["/"]
    sock.emit("late", [1])
    assert len(client.sent) == count
    assert not sock.connected


def test_connection_timeout_closes(timers):
    client = FakeClient()
    Socket(client, "/", None)
    timers[0].function()
    assert client.closed_ns == ["/"]


def test_stale_timeout_after_connect_is_ignored(timers):
    client = FakeClient()
    sock = Socket(client, "/", None)
    sock.handle_connected()
    timers[0].function()
    assert client.closed_ns == []
    assert sock.connected


def test_close_sends_disconnect_and_schedules_close(timers):
    client = FakeClient()
    sock = connected_socket(client)
    sock.close()
    assert client.sent[-1] == "41"
    assert timers[-1].interval == CLOSE_TIMEOUT
    timers[-1].function()
    assert client.closed_ns == ["/"]


def test_close_when_not_connected_sends_nothing(timers):
    client = FakeClient(opened=False)
    sock = Socket(client, "/", None)
    sock.close()
    assert client.sent == []


def test_other_namespace_is_ignored(timers):
    client = FakeClient()
    sock = connected_socket(client, "/chat")
    seen = []
    sock.on("chat", seen.append)
    sock.handle_packet(incoming('42["chat","x"]'))
    assert seen == []


def test_disconnect_then_reconnect_flushes_new_packets(timers):
    client = FakeClient()
    sock = connected_socket(client)
    sock.handle_disconnect()
    assert not sock.connected
    sock.emit("b", [])
    assert '42["b"]' not in client.sent
    sock.handle_connected()
    assert client.sent[-1] == '42["b"]'


def test_handle_open_resends_connect(timers):
    client = FakeClient(opened=False)
    sock = Socket(client, "/", {"token": "token"})
    sock.handle_open()
    packet = incoming(client.sent[-1])
    assert packet.packet_type == PacketType.CONNECT
    assert packet.data == {"token": "token"}


def test_event_ack_message_ignored_without_ack():
    event = Event("/", "x", [], False)
    event.put_ack_message(["a"])
    assert event.ack_message == []
    assert event.message is None