"""
Binary Protocol Codec

Requests and responses start with a fixed 24 byte header:

    magic:u8 opcode:u8 key_len:u16 extras_len:u8 data_type:u8
    reserved_or_status:u16 body_len:u32 opaque:u32 cas:u64

followed by extras, key and value. All header fields are big-endian.

    get:    header + key                 -> header [+ flags:u32] + value
    store:  header + flags:u32 + exptime:u32 + key + value -> header

A non-zero response status carries an error string as its body; it is an
ordinary outcome and leaves the connection usable.
"""

import logging
import struct

from ..network.connection import ServerConnection
from . import constants as const
from .base import ProtocolCodec
from .commands import Item, Response, StoreCommand

logger = logging.getLogger(__name__)

STORE_OPCODES = {
    StoreCommand.ADD: const.CMD_ADD,
    StoreCommand.SET: const.CMD_SET,
    StoreCommand.REPLACE: const.CMD_REPLACE,
}

# Statuses that mean the store precondition did not hold
NOT_STORED_STATUSES = (const.ERR_NOT_FOUND, const.ERR_EXISTS, const.ERR_NOT_STORED)


class BinaryProtocol(ProtocolCodec):
    """Codec for the fixed-header binary protocol."""

    name = "binary"
    max_key_length = min(ProtocolCodec.max_key_length, const.MAX_KEY_LENGTH)

    def get(self, connection: ServerConnection, item: Item) -> Response:
        self.check_key(connection, item.key)
        keylen = len(item.key)

        header = struct.pack(
            const.REQ_PKT_FMT, const.REQ_MAGIC_BYTE, const.CMD_GET,
            keylen, 0, const.RAW_BYTES, 0, keylen, 0, 0,
        )
        connection.send_vectored([header, item.key])

        status, extlen, bodylen, cas = self._read_header(connection, const.CMD_GET)
        if status != const.SUCCESS:
            message = self._read_error(connection, status, bodylen)
            if status == const.ERR_NOT_FOUND:
                return Response.not_found(message)
            return Response.error(message)

        if extlen not in (0, const.GET_EXTRAS_SIZE) or bodylen < extlen:
            connection.fail(
                f"Protocol error: get response with {extlen} bytes of extras "
                f"and a {bodylen} byte body"
            )

        self.resize_value(connection, item, bodylen - extlen)
        if extlen:
            flags = bytearray(const.GET_EXTRAS_SIZE)
            with memoryview(item.data) as value:
                connection.receive_vectored([flags, value])
            item.flags = struct.unpack(const.GET_RES_FMT, flags)[0]
        else:
            with memoryview(item.data) as value:
                connection.receive_into(value)

        item.cas_id = cas
        logger.debug(f"get {item.key!r}: {item.size} bytes from {connection.peer_name}")
        return Response.success()

    def store(self, connection: ServerConnection, command: StoreCommand, item: Item) -> Response:
        self.check_key(connection, item.key)
        keylen = len(item.key)
        opcode = STORE_OPCODES[command]

        header = struct.pack(
            const.REQ_PKT_FMT, const.REQ_MAGIC_BYTE, opcode,
            keylen, const.SET_EXTRAS_SIZE, const.RAW_BYTES, 0,
            keylen + item.size + const.SET_EXTRAS_SIZE, 0,
            item.cas_id & 0xFFFFFFFFFFFFFFFF,
        )
        # Flags are always sent as zero
        extras = struct.pack(const.SET_PKT_FMT, 0, item.exptime & 0xFFFFFFFF)
        connection.send_vectored([header + extras, item.key, item.data])

        status, _, bodylen, _ = self._read_header(connection, opcode)
        if status == const.SUCCESS:
            if bodylen != 0:
                connection.fail(f"Protocol error: unexpected {bodylen} byte body in store response")
            logger.debug(f"{command.value} {item.key!r}: stored on {connection.peer_name}")
            return Response.success()

        message = self._read_error(connection, status, bodylen)
        if status in NOT_STORED_STATUSES:
            return Response.not_stored(message)
        return Response.error(message)

    def _read_header(self, connection: ServerConnection, opcode: int):
        """
        Receive and validate a response header.

        Returns:
            (status, extras length, body length, cas)
        """
        connection.receive_exact(const.HEADER_SIZE)
        (magic, res_opcode, _, extlen, _, status,
         bodylen, _, cas) = struct.unpack_from(const.RES_PKT_FMT, connection.buffer)

        if magic != const.RES_MAGIC_BYTE:
            connection.fail(f"Protocol error: bad response magic 0x{magic:02x}")
        if res_opcode != opcode:
            connection.fail(
                f"Protocol error: response for {const.COMMAND_NAMES.get(res_opcode, hex(res_opcode))} "
                f"while waiting for {const.COMMAND_NAMES[opcode]}"
            )
        return status, extlen, bodylen, cas

    def _read_error(self, connection: ServerConnection, status: int, bodylen: int) -> str:
        """Consume the error body and record it as the connection's last error."""
        body = connection.receive_bytes(bodylen)
        message = body.decode("utf-8", "replace") or f"Server returned status 0x{status:02x}"
        connection.last_error = message
        return message
