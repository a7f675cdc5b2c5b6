"""
Cache Client Module

Owns the server connections and the protocol codec, routes every key to
one connection and turns errors into Response values.
"""

import logging
from typing import List, Union

from ..errors import CacheError, ResolutionError
from ..network.connection import ServerConnection
from ..protocol.base import ProtocolCodec
from ..protocol.binary import BinaryProtocol
from ..protocol.commands import Item, Protocol, Response, StoreCommand
from ..protocol.textual import TextualProtocol
from .config import get_bucket_for_key

logger = logging.getLogger(__name__)


class CacheClient:
    """
    Client for a set of cache servers speaking one wire protocol.

    Every operation picks a connection by hashing the item key, connects it
    if needed and hands it to the codec. Failures never raise; they come
    back as an ERROR Response whose message is also stored in the failing
    connection's `last_error`.

    The connection list must be fully built before the client is shared
    between threads. Operations on different connections may run
    concurrently; operations on the same connection must not.

    Usage:
        with CacheClient(Protocol.BINARY) as client:
            client.add_connection("127.0.0.1", 11211)
            client.set(Item(b"greeting", b"hello"))
            item = Item(b"greeting")
            if client.get(item).ok:
                print(item.data)

    Attributes:
        protocol: The wire protocol in use
        connections: Server connections in bucket order
    """

    def __init__(self, protocol: Union[Protocol, str] = Protocol.TEXTUAL):
        """
        Create a client without any servers.

        Args:
            protocol: Protocol.TEXTUAL or Protocol.BINARY (or their names)
        """
        self.protocol = Protocol(protocol)
        if self.protocol == Protocol.BINARY:
            self.codec: ProtocolCodec = BinaryProtocol()
        else:
            self.codec = TextualProtocol()
        self.connections: List[ServerConnection] = []

    def __repr__(self) -> str:
        return f"CacheClient(protocol={self.protocol.value}, servers={[c.peer_name for c in self.connections]})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def add_connection(self, host: str, port: int, **kwargs) -> bool:
        """
        Add a server.

        The server is appended even when the initial connect fails; it is
        connected again before its first use.

        Args:
            host: Server host name
            port: Server port
            **kwargs: Passed on to ServerConnection

        Returns:
            True if the server was added, False if the host did not resolve
        """
        try:
            connection = ServerConnection(host, port, **kwargs)
        except ResolutionError as e:
            logger.error(f"Cannot add server {host}:{port}: {e.message}")
            return False

        self.connections.append(connection)
        logger.debug(f"Added server {connection.peer_name} as bucket {len(self.connections) - 1}")
        return True

    def get_connection(self, key: bytes) -> ServerConnection:
        """
        Return the connection that owns `key`.

        Raises:
            NoServerError: If no server has been added
        """
        return self.connections[get_bucket_for_key(key, len(self.connections))]

    def _connection_for(self, key: bytes) -> ServerConnection:
        connection = self.get_connection(key)
        if not connection.is_connected():
            try:
                connection.connect()
            except CacheError as e:
                logger.error(f"{connection.peer_name}: {e.message}")
                raise
        return connection

    def get(self, item: Item) -> Response:
        """
        Fetch the value for `item.key` into `item.data`.

        Returns:
            OK (item filled in), NOT_FOUND or ERROR
        """
        try:
            connection = self._connection_for(item.key)
            return self.codec.get(connection, item)
        except CacheError as e:
            logger.warning(f"get {item.key!r} failed: {e.message}")
            return Response.error(e.message)

    def add(self, item: Item) -> Response:
        """Store the item only if the key does not exist yet."""
        return self._store(StoreCommand.ADD, item)

    def set(self, item: Item) -> Response:
        """Store the item unconditionally."""
        return self._store(StoreCommand.SET, item)

    def replace(self, item: Item) -> Response:
        """Store the item only if the key already exists."""
        return self._store(StoreCommand.REPLACE, item)

    def _store(self, command: StoreCommand, item: Item) -> Response:
        try:
            connection = self._connection_for(item.key)
            return self.codec.store(connection, command, item)
        except CacheError as e:
            logger.warning(f"{command.value} {item.key!r} failed: {e.message}")
            return Response.error(e.message)

    def close(self) -> None:
        """Disconnect every server and forget them."""
        for connection in self.connections:
            connection.disconnect()
        self.connections = []

    destroy = close
