import pytest

from sockio.packet import (
    FrameType,
    Packet,
    PacketManager,
    PacketType,
    from_json,
    to_json,
)


def parsed(payload):
    packet = Packet()
    more = packet.parse(payload)
    return packet, more


def test_ping_frame_encodes_to_single_digit():
    assert Packet.of_frame(FrameType.PING).encode() == ("2", [])


def test_event_round_trip_with_namespace_and_id():
    data = ["hi", 1, {"a": True, "b": None}]
    payload, buffers = Packet.message("/chat", data, 7).encode()
    assert buffers == []
    packet, more = parsed(payload)
    assert more is False
    assert packet.frame == FrameType.MESSAGE
    assert packet.packet_type == PacketType.EVENT
    assert packet.nsp == "/chat"
    assert packet.pack_id == 7
    assert packet.data == data


def test_compact_json_output():
    payload, _ = Packet.message("/", ["a", 1.5]).encode()
    assert payload == '42["a",1.5]'


def test_parse_plain_event():
    packet, more = parsed('42["hello",1]')
    assert more is False
    assert packet.packet_type == PacketType.EVENT
    assert packet.nsp == "/"
    assert packet.pack_id == -1
    assert packet.data == ["hello", 1]


def test_parse_event_with_id_in_root_namespace():
    packet, _ = parsed('4212["x"]')
    assert packet.pack_id == 12
    assert packet.data == ["x"]


def test_parse_connect_with_sid():
    packet, _ = parsed('40/admin,{"sid":"abc"}')
    assert packet.packet_type == PacketType.CONNECT
    assert packet.nsp == "/admin"
    assert packet.data == {"sid": "abc"}


def test_parse_disconnect_namespace_only():
    packet, more = parsed("41/admin")
    assert more is False
    assert packet.packet_type == PacketType.DISCONNECT
    assert packet.nsp == "/admin"
    assert packet.data is None


def test_parse_ack_with_id():
    packet, _ = parsed('43/x,12["ok"]')
    assert packet.packet_type == PacketType.ACK
    assert packet.nsp == "/x"
    assert packet.pack_id == 12
    assert packet.data == ["ok"]


def test_parse_unknown_packet_type():
    packet, more = parsed("49")
    assert more is False
    assert packet.packet_type is None


def test_parse_unknown_frame_raises():
    with pytest.raises(ValueError):
        Packet().parse("zz")


def test_parse_invalid_json_gives_no_message():
    packet, _ = parsed("42[oops")
    assert packet.data is None


def test_open_frame_carries_handshake():
    packet, _ = parsed('0{"sid":"abc","pingInterval":25000}')
    assert packet.frame == FrameType.OPEN
    assert packet.data == {"sid": "abc", "pingInterval": 25000}


def test_ack_round_trip():
    payload, _ = Packet.message("/", ["r"], 5, True).encode()
    packet, _ = parsed(payload)
    assert packet.packet_type == PacketType.ACK
    assert packet.pack_id == 5
    assert packet.data == ["r"]


def test_ack_without_id_is_rejected():
    with pytest.raises(ValueError):
        Packet.message("/", ["r"], -1, True)


def test_connect_with_auth_round_trip():
    auth = {"token": "token"}
    payload, _ = Packet.control(PacketType.CONNECT, "/", auth).encode()
    packet, _ = parsed(payload)
    assert packet.packet_type == PacketType.CONNECT
    assert packet.data == auth


def test_binary_event_round_trip():
    original = Packet.message("/", ["file", b"\x00\x01"])
    payload, buffers = original.encode()
    assert buffers == [b"\x00\x01"]
    assert original.packet_type == PacketType.BINARY_EVENT
    assert payload.startswith("451-")
    packet, more = parsed(payload)
    assert more is True
    assert packet.parse_buffer(buffers[0]) is False
    assert packet.data == ["file", b"\x00\x01"]


def test_to_json_and_from_json_round_trip():
    message = {"b": b"x", "n": None, "list": [1, 2.5, "s", False]}
    buffers = []
    value = to_json(message, buffers)
    assert buffers == [b"x"]
    assert from_json(value, buffers) == message


def test_from_json_placeholder_out_of_range():
    assert from_json({"_placeholder": True, "num": 3}, [b"a"]) is None


def test_from_json_keeps_bool():
    assert from_json(True, []) is True


def test_to_json_rejects_unknown_type():
    with pytest.raises(TypeError):
        to_json(object(), [])


def test_message_predicates():
    assert Packet.is_text_message("4x") is True
    assert Packet.is_binary_message(b"\x04abc") is True
    assert Packet.is_message("") is False
    assert Packet.is_message("2") is False


def test_manager_decodes_text_payload():
    decoded = []
    manager = PacketManager(on_decode=decoded.append)
    manager.put_payload('42["hello"]')
    assert len(decoded) == 1
    assert decoded[0].data == ["hello"]


def test_manager_waits_for_attachments():
    decoded = []
    manager = PacketManager(on_decode=decoded.append)
    manager.put_payload('451-["f",{"_placeholder":true,"num":0}]')
    assert decoded == []
    manager.put_payload(b"abc")
    assert len(decoded) == 1
    assert decoded[0].data == ["f", b"abc"]
    assert decoded[0].packet_type == PacketType.BINARY_EVENT


def test_manager_reset_drops_partial():
    decoded = []
    manager = PacketManager(on_decode=decoded.append)
    manager.put_payload('451-["f",{"_placeholder":true,"num":0}]')
    manager.reset()
    manager.put_payload(b"zz")
    assert decoded == []


def test_manager_encode_uses_override_callback():
    frames = []
    fallback = []
    manager = PacketManager(on_encode=lambda binary, data: fallback.append(data))
    packet = Packet.message("/", ["f", b"xyz"])
    manager.encode(packet, lambda binary, data: frames.append((binary, data)))
    assert fallback == []
    assert len(frames) == 2
    assert frames[0][0] is False
    assert frames[1] == (True, b"xyz")
    reparsed, more = parsed(frames[0][1])
    assert more is True


def test_manager_encode_default_callback():
    frames = []
    manager = PacketManager(on_encode=lambda binary, data: frames.append((binary, data)))
    manager.encode(Packet.of_frame(FrameType.PONG))
    assert len(frames) == 1
    packet, _ = parsed(frames[0][1])
    assert packet.frame == FrameType.PONG