# sockio

A Socket.IO client that speaks the Engine.IO v4 websocket transport, plus a
small GeoIP lookup helper.

## Install

```
pip install sockio
pip install "sockio[test]"   # with pytest for the test suite
```

## Packets

`sockio.packet` encodes and decodes Socket.IO packets. `FrameType` and
`PacketType` name the Engine.IO frames and Socket.IO packet kinds. Binary
parts of a message (`bytes`) are replaced by
`{"_placeholder": true, "num": n}` in the JSON text and sent as separate
frames; `to_json` and `from_json` do that conversion.

```python
from sockio.packet import Packet, PacketManager

text, buffers = Packet.message("/chat", ["hello", {"to": "all"}], pack_id=3).encode()
# text == '42/chat,3["hello",{"to":"all"}]', buffers == []

received = []
manager = PacketManager(on_decode=received.append, on_encode=None)
manager.put_payload('42["ping",1]')
print(received[0].data)   # ['ping', 1]
```

A binary event or ack is held back by `PacketManager.put_payload` until all
of its attachments have arrived; `PacketManager.reset` drops such a
half-received packet.

## Client and sockets

```python
from sockio.client import Client

client = Client()
chat = client.socket("chat")          # namespace "/chat"
chat.on("message", lambda event: print(event.name, event.messages))
chat.emit("message", ["hi"], ack=lambda reply: print("acked", reply))
client.connect("http://localhost:3000", query={"room": "lobby"})
...
client.sync_close()
```

`Client` can also be used as a context manager; leaving the block calls
`sync_close()`.

- Connection events are reported through plain attributes:
  `open_listener()`, `fail_listener()`, `reconnecting_listener()`,
  `reconnect_listener(attempts, delay_ms)`, `close_listener(reason)` (a
  `CloseReason`), `socket_open_listener(nsp)` and `socket_close_listener(nsp)`.
  `clear_con_listeners()` and `clear_socket_listeners()` reset them.
- `client.state` is a `ConnectionState`; `client.opened`, `client.url` and
  `client.session_id` report the current connection.
- `client.path` overrides the server path (default `socket.io`).
- `https://` and `wss://` URLs need `Client(use_tls=True)`;
  `verify_tls=False` turns certificate checks off.

Packets emitted before a namespace is connected are queued and flushed once
the server confirms the connection. An event received with an id is
acknowledged with whatever the listener passed to
`event.put_ack_message(...)`. A socket that gets no connect reply within
20 seconds closes itself.

Dropped connections are retried with a delay of `delay * 1.5 ** attempts`
milliseconds, capped by the maximum delay. The settings live in
`client.reconnect`, a `sockio.connection.ReconnectPolicy` (5000 ms and
25000 ms by default, with `set_delay` and `set_delay_max` keeping the two
consistent).

URL helpers live in `sockio.connection`: `encode_query_string`,
`build_query`, `is_tls` (raises `UnsupportedSchemeError` for schemes other
than http, https, ws and wss) and `build_websocket_url`.

## GeoIP lookup

```
sockio-geo
sockio-geo --token token
```

This fetches the caller's location from `https://ipapi.co/json/` and prints
the IP, city, region and country; with `--token` the request carries a
bearer token. From Python, `GeoService(session, token).call_geo_api()`
returns a `GeoLocation`, and `parse_geo_response(text)` parses a response
body, raising `ValueError` when it is not a JSON object.

## What it does not do

- Only the websocket transport is used; there is no HTTP long-polling
  fallback and no transport upgrade.
- The client answers the server's pings but never sends pings of its own;
  the handshake's `pingInterval` and `pingTimeout` are only recorded.
- There is no server side.