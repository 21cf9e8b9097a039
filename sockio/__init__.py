"""Socket.IO websocket client: packet codec, namespaced sockets, connection handling and a GeoIP helper."""

__version__ = "0.1.0"
__all__ = ["client", "connection", "geo", "packet", "socket"]