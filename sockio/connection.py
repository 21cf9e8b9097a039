"""Connection helpers: reconnect back-off, query encoding and websocket URL building."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PATH = "socket.io"
DEFAULT_RESOURCE = "/socket.io/"
ENGINE_IO_QUERY = "?EIO=4&transport=websocket"

_MAX_BACKOFF_STEPS = 32
_BACKOFF_FACTOR = 1.5
_PLAIN_SCHEMES = ("http", "ws")
_SECURE_SCHEMES = ("https", "wss")


class UnsupportedSchemeError(ValueError):
    """Raised for a URI whose scheme is not http, https, ws or wss."""


@dataclass
class ReconnectPolicy:
    """Exponential back-off settings for reconnect attempts, in milliseconds."""

    delay: int = 5000
    delay_max: int = 25000
    attempts: int = 0xFFFFFFFF

    def next_delay(self, attempts_made: int) -> int:
        """Delay before the next attempt: ``delay * 1.5**n``, capped at ``delay_max``."""
        steps = min(max(attempts_made, 0), _MAX_BACKOFF_STEPS)
        return int(min(self.delay * _BACKOFF_FACTOR**steps, self.delay_max))

    def set_delay(self, millis: int) -> None:
        """Set the base delay, raising the maximum if it would fall below it."""
        if millis < 0:
            raise ValueError("delay must not be negative")
        self.delay = millis
        if self.delay_max < millis:
            self.delay_max = millis

    def set_delay_max(self, millis: int) -> None:
        """Set the maximum delay, lowering the base delay if it would exceed it."""
        if millis < 0:
            raise ValueError("delay must not be negative")
        self.delay_max = millis
        if self.delay > millis:
            self.delay = millis


def _is_plain_alnum(ch: int) -> bool:
    return (
        ord("a") <= ch <= ord("z")
        or ord("A") <= ch <= ord("Z")
        or ord("0") <= ch <= ord("9")
    )


def encode_query_string(value: str) -> str:
    """Percent-encode every byte of ``value`` except ASCII letters and digits."""
    return "".join(
        chr(byte) if _is_plain_alnum(byte) else f"%{byte:02X}"
        for byte in value.encode("utf-8")
    )


def build_query(query: Optional[Mapping[str, str]]) -> str:
    """Render ``&key=value`` pairs in key order, values percent-encoded."""
    if not query:
        return ""
    return "".join(f"&{key}={encode_query_string(query[key])}" for key in sorted(query))


def _split_scheme(uri: str) -> tuple[str, str]:
    scheme, sep, rest = uri.partition("://")
    if not sep:
        raise UnsupportedSchemeError(f"unsupported URI scheme in {uri!r}")
    return scheme.lower(), rest


def is_tls(uri: str) -> bool:
    """True for https and wss, False for http and ws; other schemes raise."""
    scheme, _ = _split_scheme(uri)
    if scheme in _PLAIN_SCHEMES:
        return False
    if scheme in _SECURE_SCHEMES:
        return True
    raise UnsupportedSchemeError(f"unsupported URI scheme {scheme!r}")


def _split_authority(authority: str, secure: bool) -> tuple[str, int]:
    if authority.startswith("["):
        close = authority.find("]")
        if close < 0:
            raise ValueError(f"unterminated IPv6 literal in {authority!r}")
        host = authority[1:close]
        rest = authority[close + 1 :]
        if rest and not rest.startswith(":"):
            raise ValueError(f"invalid authority {authority!r}")
        port_text = rest[1:] if rest else ""
    else:
        host, sep, port_text = authority.partition(":")
        if not sep:
            port_text = ""
    if not host:
        raise ValueError(f"missing host in {authority!r}")
    if not port_text:
        return host, 443 if secure else 80
    if not port_text.isdigit() or not 0 < int(port_text) <= 65535:
        raise ValueError(f"invalid port {port_text!r}")
    return host, int(port_text)


def build_websocket_url(
    uri: str,
    path: str = DEFAULT_PATH,
    sid: str = "",
    query_string: str = "",
    timestamp: Optional[int] = None,
) -> str:
    """Build the Engine.IO websocket URL for ``uri``.

    The resource of ``uri`` is used unless it is just ``/`` (then the
    default ``/socket.io/``); a ``path`` other than ``socket.io`` overrides
    both. ``timestamp`` defaults to the current Unix time.
    """
    secure = is_tls(uri)
    scheme, rest = _split_scheme(uri)
    end = next((i for i, ch in enumerate(rest) if ch in "/?#"), len(rest))
    authority, resource = rest[:end], rest[end:]
    host, port = _split_authority(authority, scheme in _SECURE_SCHEMES)

    if not resource:
        resource = "/"
    elif not resource.startswith("/"):
        resource = "/" + resource
    resource = DEFAULT_RESOURCE if resource == "/" else resource
    if path and path != DEFAULT_PATH:
        resource = f"/{path}/"

    shown_host = f"[{host}]" if ":" in host else host
    stamp = int(time.time()) if timestamp is None else timestamp
    parts = [
        "wss://" if secure else "ws://",
        shown_host,
        f":{port}",
        resource,
        ENGINE_IO_QUERY,
    ]
    if sid:
        parts.append(f"&sid={sid}")
    parts.append(f"&t={stamp}")
    parts.append(query_string)
    return "".join(parts)