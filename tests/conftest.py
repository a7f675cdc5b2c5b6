"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests:
an in-process mock cache server that speaks both wire protocols, and a
fake socket for driving a ServerConnection byte by byte.
"""

import asyncio
import socket
import struct
import threading
from contextlib import closing
from typing import Dict, Generator, List, Tuple

import pytest

from memclient.cluster.router import CacheClient
from memclient.network.connection import ServerConnection
from memclient.protocol import constants as const
from memclient.protocol.commands import Protocol


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('127.0.0.1', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# Mock Cache Server
# ============================================================================

class MockCacheServer:
    """
    A fake cache server running on its own event loop thread.

    Both protocols are served on the same port; a request starting with
    the binary request magic byte is treated as binary.

    Attributes:
        items: key -> (flags, data, cas)
        requests: Every binary request seen, as (opcode, key, extras, cas)
        corrupt_replies: Number of upcoming replies to replace with garbage
        drop_replies: Number of upcoming requests answered by hanging up
        connections_accepted: Number of client connections so far
    """

    def __init__(self, host: str = '127.0.0.1'):
        self.host = host
        self.port = None
        self.items: Dict[bytes, Tuple[int, bytes, int]] = {}
        self.requests: List[Tuple[int, bytes, bytes, int]] = []
        self.next_cas = 1000
        self.corrupt_replies = 0
        self.drop_replies = 0
        self.connections_accepted = 0
        self._loop = None
        self._thread = None
        self._ready = threading.Event()

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        if not self._ready.wait(5):
            raise RuntimeError("mock cache server did not start")

    def stop(self) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(5)

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        server = loop.run_until_complete(
            asyncio.start_server(self.handle_client, self.host, 0)
        )
        self.port = server.sockets[0].getsockname()[1]
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            server.close()
            tasks = asyncio.all_tasks(loop)
            for task in tasks:
                task.cancel()
            loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
            loop.close()

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections_accepted += 1
        try:
            while True:
                first = await reader.readexactly(1)
                if first[0] == const.REQ_MAGIC_BYTE:
                    reply = await self._handle_binary(first, reader)
                else:
                    reply = await self._handle_text(first, reader)

                if self.drop_replies:
                    self.drop_replies -= 1
                    break
                if self.corrupt_replies:
                    self.corrupt_replies -= 1
                    reply = b"\x00" * const.HEADER_SIZE if first[0] == const.REQ_MAGIC_BYTE else b"GARBAGE\r\n"

                writer.write(reply)
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    def _store(self, command: str, key: bytes, flags: int, data: bytes, cas: int = 0) -> int:
        exists = key in self.items
        if command == "add" and exists:
            return const.ERR_EXISTS
        if command == "replace" and not exists:
            return const.ERR_NOT_FOUND
        if cas:
            if not exists:
                return const.ERR_NOT_FOUND
            if self.items[key][2] != cas:
                return const.ERR_EXISTS
        self.items[key] = (flags, bytes(data), self.next_cas)
        self.next_cas += 1
        return const.SUCCESS

    async def _handle_text(self, first: bytes, reader: asyncio.StreamReader) -> bytes:
        line = first + await reader.readuntil(b"\r\n")
        parts = line[:-2].split()
        command = parts[0] if parts else b""

        if command == b"get":
            key = parts[1]
            if key not in self.items:
                return b"END\r\n"
            flags, data, _ = self.items[key]
            return b"VALUE %s %d %d\r\n" % (key, flags, len(data)) + data + b"\r\nEND\r\n"

        if command in (b"add", b"set", b"replace"):
            key, flags, size = parts[1], int(parts[2]), int(parts[4])
            data = (await reader.readexactly(size + 2))[:-2]
            status = self._store(command.decode(), key, flags, data)
            return b"STORED\r\n" if status == const.SUCCESS else b"NOT_STORED\r\n"

        return b"ERROR\r\n"

    async def _handle_binary(self, first: bytes, reader: asyncio.StreamReader) -> bytes:
        header = first + await reader.readexactly(const.HEADER_SIZE - 1)
        _, opcode, keylen, extlen, _, _, bodylen, _, cas = struct.unpack(const.REQ_PKT_FMT, header)
        body = await reader.readexactly(bodylen)
        extras, key, value = body[:extlen], body[extlen:extlen + keylen], body[extlen + keylen:]
        self.requests.append((opcode, key, extras, cas))

        if opcode == const.CMD_GET:
            if key not in self.items:
                return self._binary_response(opcode, const.ERR_NOT_FOUND, b"Not found")
            flags, data, item_cas = self.items[key]
            return self._binary_response(
                opcode, const.SUCCESS, struct.pack(const.GET_RES_FMT, flags) + data,
                extlen=const.GET_EXTRAS_SIZE, cas=item_cas,
            )

        if opcode in (const.CMD_ADD, const.CMD_SET, const.CMD_REPLACE):
            flags, _ = struct.unpack(const.SET_PKT_FMT, extras)
            name = const.COMMAND_NAMES[opcode][len("CMD_"):].lower()
            status = self._store(name, key, flags, value, cas)
            if status == const.SUCCESS:
                return self._binary_response(opcode, status, cas=self.items[key][2])
            message = b"Data exists for key." if status == const.ERR_EXISTS else b"Not found"
            return self._binary_response(opcode, status, message)

        return self._binary_response(opcode, const.ERR_UNKNOWN_CMD, b"Unknown command")

    @staticmethod
    def _binary_response(opcode: int, status: int, body: bytes = b"", extlen: int = 0, cas: int = 0) -> bytes:
        return struct.pack(
            const.RES_PKT_FMT, const.RES_MAGIC_BYTE, opcode, 0, extlen, 0,
            status, len(body), 0, cas,
        ) + body


# ============================================================================
# Fake Socket
# ============================================================================

class FakeSocket:
    """
    Stand-in for a connected socket.

    Incoming bytes are served from a buffer; a read on an empty buffer
    looks like the peer closing. Writes and reads can be capped to simulate
    short transfers, and the first calls can be made to fail with EINTR.
    """

    def __init__(
            self,
            incoming: bytes = b"",
            max_send: int = None,
            max_recv: int = None,
            interrupt_sends: int = 0,
            interrupt_recvs: int = 0,
            send_error: OSError = None,
            recv_error: OSError = None,
    ):
        self.incoming = bytearray(incoming)
        self.sent = bytearray()
        self.max_send = max_send
        self.max_recv = max_recv
        self.interrupt_sends = interrupt_sends
        self.interrupt_recvs = interrupt_recvs
        self.send_error = send_error
        self.recv_error = recv_error
        self.send_calls = 0
        self.recv_calls = 0
        self.closed = False

    def feed(self, data: bytes) -> None:
        self.incoming += data

    def _sendable(self, size: int) -> int:
        self.send_calls += 1
        if self.interrupt_sends:
            self.interrupt_sends -= 1
            raise InterruptedError()
        if self.send_error is not None:
            raise self.send_error
        return size if self.max_send is None else min(size, self.max_send)

    def send(self, data) -> int:
        data = bytes(data)
        count = self._sendable(len(data))
        self.sent += data[:count]
        return count

    def sendmsg(self, buffers) -> int:
        data = b"".join(bytes(b) for b in buffers)
        count = self._sendable(len(data))
        self.sent += data[:count]
        return count

    def _receivable(self, size: int) -> int:
        self.recv_calls += 1
        if self.interrupt_recvs:
            self.interrupt_recvs -= 1
            raise InterruptedError()
        if self.recv_error is not None:
            raise self.recv_error
        count = min(size, len(self.incoming))
        return count if self.max_recv is None else min(count, self.max_recv)

    def recv_into(self, view) -> int:
        count = self._receivable(len(view))
        view[:count] = self.incoming[:count]
        del self.incoming[:count]
        return count

    def recvmsg_into(self, buffers):
        total = self._receivable(sum(len(b) for b in buffers))
        offset = 0
        for buffer in buffers:
            view = memoryview(buffer)
            count = min(len(view), total - offset)
            view[:count] = self.incoming[offset:offset + count]
            offset += count
        del self.incoming[:total]
        return total, [], 0, None

    def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def free_port() -> int:
    """A local port with nothing listening on it."""
    return find_free_port()


@pytest.fixture
def mock_server() -> Generator[MockCacheServer, None, None]:
    """Start a mock cache server on a free port for the duration of a test."""
    server = MockCacheServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def second_mock_server() -> Generator[MockCacheServer, None, None]:
    """Another independent mock server, for multi-server routing tests."""
    server = MockCacheServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture(params=[Protocol.TEXTUAL, Protocol.BINARY], ids=["textual", "binary"])
def protocol(request) -> Protocol:
    """Run a test once per wire protocol."""
    return request.param


@pytest.fixture
def client(mock_server: MockCacheServer, protocol: Protocol) -> Generator[CacheClient, None, None]:
    """A CacheClient with the mock server as its only connection."""
    cache = CacheClient(protocol)
    assert cache.add_connection('127.0.0.1', mock_server.port)
    yield cache
    cache.close()


@pytest.fixture
def fake_connection():
    """
    Factory fixture returning a (ServerConnection, FakeSocket) pair.

    Usage:
        def test_something(fake_connection):
            conn, sock = fake_connection(incoming=b"STORED\\r\\n")
    """
    def factory(buffer_size: int = None, **kwargs) -> Tuple[ServerConnection, FakeSocket]:
        conn = ServerConnection('127.0.0.1', 11211, buffer_size=buffer_size, connect=False)
        sock = FakeSocket(**kwargs)
        conn.sock = sock
        return conn, sock
    return factory


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
