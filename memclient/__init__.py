"""
memclient: Client Library for Distributed Key-Value Caches

A blocking client for memcached-compatible cache servers. Keys are routed
to one of several server connections by hash, and requests are encoded
with either the textual (ASCII) protocol or the binary protocol.
"""

__version__ = "1.0.0"

from .cluster.router import CacheClient
from .errors import CacheError
from .network.connection import ServerConnection, connect_server
from .protocol.commands import Item, Protocol, Response, ResponseStatus, StoreCommand

__all__ = [
    "CacheClient",
    "CacheError",
    "Item",
    "Protocol",
    "Response",
    "ResponseStatus",
    "ServerConnection",
    "StoreCommand",
    "connect_server",
]
