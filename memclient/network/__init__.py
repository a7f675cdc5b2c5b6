"""Network module for memclient."""

from .connection import ServerConnection, advance_segments, connect_server, resolve_endpoint

__all__ = ["ServerConnection", "advance_segments", "connect_server", "resolve_endpoint"]
