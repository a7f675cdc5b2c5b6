"""
Textual Protocol Codec

ASCII commands terminated by CRLF:

    get <key>\\r\\n
        -> VALUE <key> <flags> <bytes>\\r\\n<data>\\r\\nEND\\r\\n
        -> END\\r\\n

    <add|set|replace> <key> <flags> <exptime> <bytes>\\r\\n<data>\\r\\n
        -> STORED\\r\\n
        -> NOT_STORED\\r\\n

Any other reply means the client and server no longer agree on where
messages start, so the connection is dropped.
"""

import logging

from ..network.connection import LINE_TERMINATOR, ServerConnection
from .base import ProtocolCodec
from .commands import Item, Response, StoreCommand

logger = logging.getLogger(__name__)

VALUE_PREFIX = b"VALUE "
END = b"END"
STORED = b"STORED"
NOT_STORED = b"NOT_STORED"
# What follows the value bytes of a single-key get
VALUE_TRAILER = LINE_TERMINATOR + END + LINE_TERMINATOR


class TextualProtocol(ProtocolCodec):
    """Codec for the line-oriented ASCII protocol."""

    name = "textual"

    def check_key(self, connection: ServerConnection, key: bytes) -> None:
        super().check_key(connection, key)
        for c in key:
            if c <= 0x20 or c == 0x7f:
                self._reject(connection, f"Key must not contain whitespace or control characters: {key!r}")

    def get(self, connection: ServerConnection, item: Item) -> Response:
        self.check_key(connection, item.key)
        connection.send_vectored([b"get ", item.key, LINE_TERMINATOR])

        nread = connection.receive_line()
        line_end = connection.buffer.find(LINE_TERMINATOR, 0, nread)
        line = bytes(connection.buffer[:line_end])

        if line.startswith(VALUE_PREFIX):
            flags, size = self._parse_value_line(connection, line, item.key)
            self._read_value(connection, item, line_end + len(LINE_TERMINATOR), nread, size)
            item.flags = flags
            logger.debug(f"get {item.key!r}: {size} bytes from {connection.peer_name}")
            return Response.success()

        if line == END:
            return Response.not_found()

        connection.fail(f"Protocol error: unexpected reply to get: {line[:64]!r}")

    def store(self, connection: ServerConnection, command: StoreCommand, item: Item) -> Response:
        self.check_key(connection, item.key)

        # Flags are always sent as zero
        params = b" %d %d %d\r\n" % (0, item.exptime, item.size)
        connection.send_vectored([
            command.value.encode("ascii") + b" ",
            item.key,
            params,
            item.data,
            LINE_TERMINATOR,
        ])

        nread = connection.receive_line()
        line_end = connection.buffer.find(LINE_TERMINATOR, 0, nread)
        line = bytes(connection.buffer[:line_end])

        if line == STORED:
            logger.debug(f"{command.value} {item.key!r}: stored on {connection.peer_name}")
            return Response.success()

        if line == NOT_STORED:
            connection.last_error = "Item NOT stored"
            return Response.not_stored(connection.last_error)

        connection.fail(f"Out of sync with server: {line[:64]!r}")

    def _parse_value_line(self, connection: ServerConnection, line: bytes, key: bytes):
        """
        Parse "VALUE <key> <flags> <bytes> [<cas>]".

        Returns:
            (flags, size)
        """
        parts = line.split(b" ")
        if len(parts) not in (4, 5) or not all(p.isdigit() for p in parts[2:]):
            connection.fail(f"Protocol error: malformed value line {line[:64]!r}")
        if parts[1] != key:
            connection.fail(f"Protocol error: value for {parts[1]!r} while waiting for {key!r}")
        return int(parts[2]), int(parts[3])

    def _read_value(self, connection: ServerConnection, item: Item, headsize: int, nread: int, size: int) -> None:
        """
        Copy the value into the item and consume the trailing END line.

        The first receive may have pulled in part of the value (or all of it
        and the trailer). Whatever is missing is read directly into the
        item, so values larger than the receive buffer are never truncated.
        """
        available = nread - headsize
        take = min(available, size)

        self.resize_value(connection, item, size)
        with memoryview(item.data) as value:
            value[:take] = connection.buffer[headsize:headsize + take]
            if take < size:
                connection.receive_into(value[take:])

        trailer = bytes(connection.buffer[headsize + take:nread])
        if len(trailer) < len(VALUE_TRAILER):
            trailer += connection.receive_bytes(len(VALUE_TRAILER) - len(trailer))
        if trailer != VALUE_TRAILER:
            connection.fail(f"Protocol error: bad value terminator {trailer[:16]!r}")
