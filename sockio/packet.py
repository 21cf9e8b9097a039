"""Socket.IO packet model plus the encoder and decoder for its wire format."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

PLACEHOLDER_KEY = "_placeholder"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1

Payload = Union[str, bytes, bytearray]
EncodeCallback = Callable[[bool, Union[str, bytes]], None]
DecodeCallback = Callable[["Packet"], None]


class FrameType(IntEnum):
    """Engine.IO frame kinds."""

    OPEN = 0
    CLOSE = 1
    PING = 2
    PONG = 3
    MESSAGE = 4
    UPGRADE = 5
    NOOP = 6


class PacketType(IntEnum):
    """Socket.IO packet kinds carried inside a message frame."""

    CONNECT = 0
    DISCONNECT = 1
    EVENT = 2
    ACK = 3
    ERROR = 4
    BINARY_EVENT = 5
    BINARY_ACK = 6


_PACKET_CODES = {member.value for member in PacketType}


def to_json(message: Any, buffers: list[bytes]) -> Any:
    """Turn a message into a JSON value, moving binary parts into ``buffers``.

    Each binary part is replaced by a placeholder object that records its
    index in ``buffers``. Object keys come out in sorted order.
    """
    if message is None or isinstance(message, (bool, str)):
        return message
    if isinstance(message, (int, float)):
        return message
    if isinstance(message, (bytes, bytearray, memoryview)):
        index = len(buffers)
        buffers.append(bytes(message))
        return {PLACEHOLDER_KEY: True, "num": index}
    if isinstance(message, (list, tuple)):
        return [to_json(item, buffers) for item in message]
    if isinstance(message, dict):
        return {str(key): to_json(message[key], buffers) for key in sorted(message, key=str)}
    raise TypeError(f"cannot encode {type(message).__name__} as a message")


def from_json(value: Any, buffers: list[bytes]) -> Any:
    """Turn a decoded JSON value into a message, resolving binary placeholders.

    A placeholder whose index is outside ``buffers`` becomes ``None``.
    """
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        if _INT64_MIN <= value <= _INT64_MAX:
            return value
        if value <= _UINT64_MAX:
            return None
        return float(value)
    if isinstance(value, float):
        return value
    if isinstance(value, list):
        return [from_json(item, buffers) for item in value]
    if isinstance(value, dict):
        if value.get(PLACEHOLDER_KEY) is True:
            num = value.get("num")
            if isinstance(num, int) and not isinstance(num, bool) and 0 <= num < len(buffers):
                return buffers[num]
            return None
        return {key: from_json(item, buffers) for key, item in sorted(value.items())}
    return None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _load_message(text: str, buffers: list[bytes]) -> Any:
    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return None
    return from_json(value, buffers)


def _atoi(text: str) -> int:
    """Read a leading, optionally signed, decimal integer; 0 when there is none."""
    text = text.lstrip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return sign * int(digits) if digits else 0


def _find_any(text: str, chars: str, start: int) -> int:
    return next((start + i for i, ch in enumerate(text[start:]) if ch in chars), -1)


def _as_text(payload: Payload) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    return payload


def _as_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)


@dataclass
class Packet:
    """One Socket.IO packet; ``data`` holds its message, or ``None`` when absent."""

    frame: FrameType = FrameType.MESSAGE
    packet_type: Optional[PacketType] = None
    nsp: str = ""
    pack_id: int = -1
    data: Any = None
    _pending_buffers: int = field(default=0, repr=False)
    _header: str = field(default="", repr=False)
    _attachments: list = field(default_factory=list, repr=False)

    @classmethod
    def message(cls, nsp: str, msg: Any, pack_id: int = -1, is_ack: bool = False) -> "Packet":
        """Build an event packet, or an acknowledgement when ``is_ack`` is set."""
        if is_ack and pack_id < 0:
            raise ValueError("an acknowledgement needs a packet id")
        kind = PacketType.ACK if is_ack else PacketType.EVENT
        return cls(FrameType.MESSAGE, kind, nsp, pack_id, msg)

    @classmethod
    def control(cls, packet_type: PacketType, nsp: str = "", msg: Any = None) -> "Packet":
        """Build a message-frame packet of an explicit type, such as connect."""
        return cls(FrameType.MESSAGE, PacketType(packet_type), nsp, -1, msg)

    @classmethod
    def of_frame(cls, frame: FrameType) -> "Packet":
        """Build a bare Engine.IO frame such as ping or pong."""
        return cls(FrameType(frame))

    @staticmethod
    def is_binary_message(payload: Payload) -> bool:
        if not payload:
            return False
        first = payload[0]
        return first == FrameType.MESSAGE if isinstance(first, int) else ord(first) == FrameType.MESSAGE

    @staticmethod
    def is_text_message(payload: Payload) -> bool:
        if not payload:
            return False
        first = payload[0]
        code = first if isinstance(first, int) else ord(first)
        return code == ord("0") + FrameType.MESSAGE

    @staticmethod
    def is_message(payload: Payload) -> bool:
        return Packet.is_binary_message(payload) or Packet.is_text_message(payload)

    def parse(self, payload: Payload) -> bool:
        """Read a text payload into this packet.

        Returns True when binary attachments must still arrive through
        :meth:`parse_buffer`. Raises ValueError for an unknown frame.
        """
        text = _as_text(payload)
        if not text:
            raise ValueError("empty payload")
        try:
            self.frame = FrameType(ord(text[0]) - ord("0"))
        except ValueError:
            raise ValueError(f"unknown frame type {text[0]!r}") from None
        self.data = None
        self.pack_id = -1
        self.packet_type = None
        self._header = ""
        self._attachments = []
        self._pending_buffers = 0
        pos = 1

        if self.frame == FrameType.MESSAGE:
            code = ord(text[1]) - ord("0") if len(text) > 1 else -1
            if code not in _PACKET_CODES:
                return False
            self.packet_type = PacketType(code)
            pos = 2
            if self._is_binary_type():
                dash = text.find("-")
                if dash < 0:
                    count, pos = text[pos:], 0
                else:
                    count, pos = text[pos:dash], dash + 1
                self._pending_buffers = max(0, _atoi(count))

        nsp_json_pos = _find_any(text, '{["/', pos)
        if nsp_json_pos < 0:
            self.nsp = "/"
            return False
        json_pos = nsp_json_pos
        if text[nsp_json_pos] == "/":
            comma = text.find(",", nsp_json_pos)
            if comma < 0:
                self.nsp = text[nsp_json_pos:]
                return False
            self.nsp = text[nsp_json_pos:comma]
            pos = comma + 1
            json_pos = _find_any(text, '"[{', pos)
            if json_pos < 0:
                return False
        else:
            self.nsp = "/"

        if pos < json_pos:
            self.pack_id = _atoi(text[pos:json_pos])

        if self.frame == FrameType.MESSAGE and self._is_binary_type():
            self._header = text[json_pos:]
            return True
        self.data = _load_message(text[json_pos:], [])
        return False

    def parse_buffer(self, payload: Payload) -> bool:
        """Take one binary attachment; returns True while more are expected."""
        if self._pending_buffers <= 0:
            return False
        self._attachments.append(_as_bytes(payload))
        self._pending_buffers -= 1
        if self._pending_buffers == 0:
            self.data = _load_message(self._header, self._attachments)
            self._header = ""
            self._attachments = []
            return False
        return True

    def encode(self) -> tuple[str, list[bytes]]:
        """Return the text payload and the binary attachments that follow it."""
        head = str(int(self.frame))
        if self.frame != FrameType.MESSAGE:
            return head, []
        buffers: list[bytes] = []
        has_message = self.data is not None
        document = to_json(self.data, buffers) if has_message else None
        has_binary = bool(buffers)

        kind = self.packet_type if self.packet_type is not None else PacketType.CONNECT
        if kind == PacketType.EVENT and has_binary:
            kind = PacketType.BINARY_EVENT
        elif kind == PacketType.ACK and has_binary:
            kind = PacketType.BINARY_ACK
        self.packet_type = kind

        parts = [head, str(int(kind))]
        if has_binary:
            parts.append(f"{len(buffers)}-")
        if self.nsp and self.nsp != "/":
            parts.append(self.nsp)
            if has_message or self.pack_id >= 0:
                parts.append(",")
        if self.pack_id >= 0:
            parts.append(str(self.pack_id))
        if has_message:
            parts.append(
                json.dumps(document, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
            )
        return "".join(parts), buffers

    def _is_binary_type(self) -> bool:
        return self.packet_type in (PacketType.BINARY_EVENT, PacketType.BINARY_ACK)


class PacketManager:
    """Feeds raw websocket payloads in and hands encoded frames out."""

    def __init__(
        self,
        on_decode: Optional[DecodeCallback] = None,
        on_encode: Optional[EncodeCallback] = None,
    ) -> None:
        self.on_decode = on_decode
        self.on_encode = on_encode
        self._partial: Optional[Packet] = None

    def encode(self, packet: Packet, callback: Optional[EncodeCallback] = None) -> None:
        """Encode ``packet`` and pass each frame to ``callback`` or ``on_encode``.

        The callback receives ``(is_binary, payload)``: the text frame first,
        then every binary attachment.
        """
        sink = callback or self.on_encode
        payload, buffers = packet.encode()
        if sink is None:
            return
        sink(False, payload)
        for buffer in buffers:
            sink(True, buffer)

    def put_payload(self, payload: Payload) -> None:
        """Take one websocket payload; complete packets go to ``on_decode``."""
        if Packet.is_text_message(payload):
            packet = Packet()
            if packet.parse(payload):
                self._partial = packet
                return
        elif self._partial is not None and len(payload) > 0:
            if self._partial.parse_buffer(payload):
                return
            packet, self._partial = self._partial, None
        else:
            packet = Packet()
            try:
                packet.parse(payload)
            except ValueError as exc:
                logger.debug("dropping payload: %s", exc)
                return
        if self.on_decode is not None:
            self.on_decode(packet)

    def reset(self) -> None:
        """Forget any packet still waiting for binary attachments."""
        self._partial = None