"""
Protocol Codec Interface

Both wire protocols implement the same two operations on a connected
ServerConnection. The routing layer picks one codec when the client is
created and uses it for every call.
"""

from ..config.settings import settings
from ..errors import InvalidKeyError, ResourceError
from ..network.connection import ServerConnection
from .commands import Item, Response, StoreCommand


class ProtocolCodec:
    """Encodes requests and decodes responses for one wire protocol."""

    name = ""
    max_key_length = settings.MAX_KEY_LENGTH
    max_value_length = settings.MAX_VALUE_LENGTH

    def get(self, connection: ServerConnection, item: Item) -> Response:
        """
        Fetch `item.key` and resize `item.data` to hold the value.

        Returns:
            OK with the item filled in, NOT_FOUND, or ERROR for an
            application-level error reported by the server

        Raises:
            CacheError: On transport failures and protocol violations
        """
        raise NotImplementedError

    def store(self, connection: ServerConnection, command: StoreCommand, item: Item) -> Response:
        """
        Store the item with add, set or replace semantics.

        Returns:
            OK, NOT_STORED when the server refused the precondition, or
            ERROR for any other application-level error

        Raises:
            CacheError: On transport failures and protocol violations
        """
        raise NotImplementedError

    def check_key(self, connection: ServerConnection, key: bytes) -> None:
        """Reject keys the server would not accept, before any I/O."""
        if not key:
            self._reject(connection, "Key must not be empty")
        if len(key) > self.max_key_length:
            self._reject(connection, f"Key is too long ({len(key)} > {self.max_key_length} bytes)")

    def _reject(self, connection: ServerConnection, message: str):
        connection.last_error = message
        raise InvalidKeyError(message)

    def resize_value(self, connection: ServerConnection, item: Item, size: int) -> None:
        """
        Size `item.data` for a value of `size` bytes announced by the server.

        Raises:
            ProtocolError: If the size is above `max_value_length`
            ResourceError: If the buffer cannot be allocated
        """
        if size > self.max_value_length:
            connection.fail(
                f"Protocol error: server announced a {size} byte value "
                f"(limit {self.max_value_length} bytes)"
            )
        try:
            item.resize(size)
        except (MemoryError, OverflowError) as e:
            connection.fail(f"Failed to allocate {size} bytes for value: {e!r}", ResourceError)
