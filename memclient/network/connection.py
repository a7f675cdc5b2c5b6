"""
Server Connection Module

This module owns the per-server socket and the blocking wire primitives
both protocol codecs are built on.

A ServerConnection is either disconnected (`sock is None`) or connected.
Any transport failure or protocol framing error closes the socket, and the
routing layer reconnects lazily before the next operation. Nothing in this
module reconnects on its own or retries beyond interrupted system calls.

Every failure stores a human readable message in `last_error` before the
corresponding CacheError is raised.
"""

import logging
import socket
from typing import List, Optional, Sequence, Tuple

from ..config.settings import settings
from ..errors import ConnectError, ProtocolError, ResolutionError, TransportError

logger = logging.getLogger(__name__)

LINE_TERMINATOR = b"\r\n"

# family, type, proto, canonname, sockaddr as returned by getaddrinfo()
Endpoint = Tuple[int, int, int, str, tuple]


def resolve_endpoint(host: str, port: int) -> Endpoint:
    """
    Resolve a host/port pair to the first stream socket endpoint.

    Args:
        host: Host name or address literal
        port: TCP port

    Returns:
        The first getaddrinfo() result

    Raises:
        ResolutionError: If the name cannot be resolved
    """
    try:
        results = socket.getaddrinfo(
            host, str(port), socket.AF_UNSPEC, socket.SOCK_STREAM, socket.IPPROTO_TCP
        )
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"getaddrinfo(): {host}:{port}: {e}") from e

    if not results:
        raise ResolutionError(f"getaddrinfo(): {host}:{port}: no address found")
    return results[0]


def connect_server(host: str, port: int) -> Optional[socket.socket]:
    """
    Resolve and connect a plain stream socket.

    This does not create a ServerConnection; it is a convenience for tools
    that want to talk to a cache server directly.

    Returns:
        The connected socket, or None if resolution or connect failed
    """
    try:
        family, socktype, proto, _, sockaddr = resolve_endpoint(host, port)
    except ResolutionError as e:
        logger.error(e.message)
        return None

    try:
        sock = socket.socket(family, socktype, proto)
    except OSError as e:
        logger.error(f"Failed to create socket: {e}")
        return None

    try:
        sock.connect(sockaddr)
    except OSError as e:
        logger.error(f"Failed to connect socket: {e}")
        sock.close()
        return None
    return sock


def advance_segments(segments: Sequence[memoryview], count: int) -> List[memoryview]:
    """
    Consume `count` bytes from the front of a list of byte segments.

    Fully consumed segments are dropped and a partially consumed segment
    is replaced by a slice of its unconsumed tail.

    Args:
        segments: Byte views in transmission order
        count: Number of bytes already transferred

    Returns:
        The segments that still have bytes left
    """
    remaining = list(segments)
    while count > 0 and remaining:
        head = remaining[0]
        if len(head) <= count:
            count -= len(head)
            remaining.pop(0)
        else:
            remaining[0] = head[count:]
            count = 0
    return remaining


class ServerConnection:
    """
    One cache server: a resolved endpoint, a socket and a receive buffer.

    The receive buffer has a fixed capacity and is reused destructively by
    every operation, so a connection must only be driven by one thread at
    a time. Separate connections share no state.

    Usage:
        conn = ServerConnection("127.0.0.1", 11211)
        if not conn.is_connected():
            conn.connect()
        conn.send_all(b"version\\r\\n")
        nread = conn.receive_line()

    Attributes:
        peer_name: "host:port" display string
        endpoint: Resolved address used for every (re)connect
        sock: The connected socket, or None while disconnected
        buffer: Receive scratch buffer (capacity `buffer_size`)
        last_error: Message of the most recent failure, if any
    """

    def __init__(
            self,
            host: str,
            port: int,
            buffer_size: int = None,
            timeout: Optional[float] = None,
            connect: bool = True,
    ):
        """
        Resolve the endpoint and, unless told otherwise, try to connect.

        A failed initial connect is logged and leaves the connection
        disconnected; it is retried before the next operation.

        Args:
            host: Server host name
            port: Server port
            buffer_size: Receive buffer capacity (default from settings)
            timeout: Socket deadline in seconds (default from settings)
            connect: Attempt the initial connect

        Raises:
            ResolutionError: If the host cannot be resolved
        """
        self.peer_name = f"{host}:{port}"
        self.endpoint: Endpoint = resolve_endpoint(host, port)
        self.sock: Optional[socket.socket] = None
        self.buffer_size = buffer_size if buffer_size is not None else settings.BUFFER_SIZE
        self.buffer = bytearray(self.buffer_size)
        self._view = memoryview(self.buffer)
        self.timeout = timeout if timeout is not None else settings.SOCKET_TIMEOUT
        self.last_error: Optional[str] = None

        if connect:
            try:
                self.connect()
            except ConnectError as e:
                logger.warning(f"Initial connect to {self.peer_name} failed: {e.message}")

    def __repr__(self) -> str:
        state = "connected" if self.is_connected() else "disconnected"
        return f"ServerConnection({self.peer_name}, {state})"

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        return self.sock is not None

    def connect(self) -> None:
        """
        Open a stream socket to the endpoint.

        Raises:
            ConnectError: If the socket cannot be created or connected
        """
        if self.sock is not None:
            return

        family, socktype, proto, _, sockaddr = self.endpoint
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            self.last_error = f"Failed to create socket: {e}"
            raise ConnectError(self.last_error) from e

        if settings.TCP_NODELAY:
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as e:
                logger.warning(f"Failed to set TCP_NODELAY on {self.peer_name}: {e}")

        if self.timeout is not None:
            sock.settimeout(self.timeout)

        try:
            sock.connect(sockaddr)
        except OSError as e:
            sock.close()
            self.last_error = f"Failed to connect socket: {e}"
            raise ConnectError(self.last_error) from e

        self.sock = sock
        logger.debug(f"Connected to {self.peer_name}")

    def disconnect(self) -> None:
        """Close the socket if open. Safe to call repeatedly."""
        sock, self.sock = self.sock, None
        if sock is not None:
            sock.close()
            logger.debug(f"Disconnected from {self.peer_name}")

    def fail(self, message: str, error: type = ProtocolError):
        """
        Record `message`, disconnect and raise `error`.

        Used for every failure that leaves the byte stream in an unknown
        state.
        """
        self.last_error = message
        self.disconnect()
        raise error(message)

    def _require_socket(self) -> socket.socket:
        if self.sock is None:
            self.last_error = f"Not connected to {self.peer_name}"
            raise TransportError(self.last_error)
        return self.sock

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_all(self, data) -> None:
        """
        Send the whole buffer, continuing after short writes.

        Raises:
            TransportError: On any error other than an interrupted call
        """
        sock = self._require_socket()
        view = memoryview(data)
        offset = 0
        while offset < len(view):
            try:
                offset += sock.send(view[offset:])
            except InterruptedError:
                continue
            except OSError as e:
                self.fail(f"Failed to send data to server: {e}", TransportError)

    def send_vectored(self, buffers: Sequence) -> None:
        """
        Gather-write several buffers as one message.

        After a partial write the fully sent buffers are skipped and the
        partially sent one is sliced, until every byte is delivered.

        Args:
            buffers: bytes-like objects, sent in order

        Raises:
            TransportError: On any error other than an interrupted call
        """
        sock = self._require_socket()
        segments = [memoryview(b) for b in buffers if len(b)]
        remaining = sum(len(s) for s in segments)

        if not hasattr(sock, "sendmsg"):
            for segment in segments:
                self.send_all(segment)
            return

        while remaining > 0:
            try:
                sent = sock.sendmsg(segments)
            except InterruptedError:
                continue
            except OSError as e:
                self.fail(f"Failed to send data to server: {e}", TransportError)
            remaining -= sent
            if remaining > 0:
                logger.debug(f"Partial write to {self.peer_name}: {sent} bytes, {remaining} left")
                segments = advance_segments(segments, sent)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def _recv_into(self, view: memoryview) -> int:
        sock = self._require_socket()
        while True:
            try:
                nread = sock.recv_into(view)
            except InterruptedError:
                continue
            except OSError as e:
                self.fail(f"Failed to receive data from server: {e}", TransportError)
            if nread == 0:
                self.fail("Lost contact with server", TransportError)
            return nread

    def receive_into(self, view) -> int:
        """
        Fill `view` completely.

        Returns:
            The number of bytes read (always len(view))

        Raises:
            TransportError: On a receive error or if the peer closes
        """
        view = memoryview(view)
        size = len(view)
        offset = 0
        while offset < size:
            offset += self._recv_into(view[offset:])
        return size

    def receive_exact(self, size: int) -> int:
        """
        Read exactly `size` bytes into the start of the receive buffer.

        Raises:
            ProtocolError: If the bytes would not fit in the buffer
            TransportError: On a receive error or if the peer closes
        """
        if size > self.buffer_size:
            self.fail(
                f"Protocol error: {size} bytes exceed the "
                f"{self.buffer_size} byte receive buffer"
            )
        return self.receive_into(self._view[:size])

    def receive_bytes(self, size: int) -> bytes:
        """Read exactly `size` bytes and return a copy of them."""
        if size <= self.buffer_size:
            self.receive_exact(size)
            return bytes(self._view[:size])
        data = bytearray(size)
        self.receive_into(data)
        return bytes(data)

    def receive_vectored(self, views: Sequence) -> int:
        """
        Scatter-read into several buffers.

        One scattered read is issued; if it comes back short the remainder
        is completed with exact reads.

        Returns:
            Total number of bytes read (the combined length of `views`)
        """
        sock = self._require_socket()
        segments = [memoryview(v) for v in views if len(v)]
        total = sum(len(s) for s in segments)
        if total == 0:
            return 0

        nread = 0
        if hasattr(sock, "recvmsg_into"):
            while True:
                try:
                    nread = sock.recvmsg_into(segments)[0]
                    break
                except InterruptedError:
                    continue
                except OSError as e:
                    self.fail(f"Failed to receive data from server: {e}", TransportError)
            if nread == 0:
                self.fail("Lost contact with server", TransportError)

        if nread < total:
            logger.debug(f"Short read from {self.peer_name}: {nread} of {total} bytes")
            for segment in advance_segments(segments, nread):
                self.receive_into(segment)
        return total

    def receive_line(self) -> int:
        """
        Read into the receive buffer until a line terminator arrives.

        Reading starts at offset 0. Bytes after the terminator that were
        read in the same call stay in the buffer.

        Returns:
            Number of bytes now held in the buffer

        Raises:
            ProtocolError: If the buffer fills up without a terminator
            TransportError: On a receive error or if the peer closes
        """
        offset = 0
        while offset < self.buffer_size:
            nread = self._recv_into(self._view[offset:])
            # A terminator may straddle two reads
            start = max(0, offset - 1)
            offset += nread
            if self.buffer.find(LINE_TERMINATOR, start, offset) != -1:
                return offset

        self.fail("Protocol error: no line terminator within the receive buffer")
