"""
Binary Protocol Constants

Magic bytes, opcodes, status codes and struct formats of the binary
wire protocol. Every format is big-endian (network byte order); the
64-bit CAS field is packed with ">Q" so no host byte swapping is needed.
"""

import struct

# Command constants
CMD_GET = 0x00
CMD_SET = 0x01
CMD_ADD = 0x02
CMD_REPLACE = 0x03

COMMAND_NAMES = dict(((globals()[k], k) for k in list(globals()) if k.startswith("CMD_")))

REQ_MAGIC_BYTE = 0x80
RES_MAGIC_BYTE = 0x81

RAW_BYTES = 0x00

# magic, opcode, keylen, extralen, datatype, reserved, bodylen, opaque, cas
REQ_PKT_FMT = ">BBHBBHIIQ"
# magic, opcode, keylen, extralen, datatype, status, bodylen, opaque, cas
RES_PKT_FMT = ">BBHBBHIIQ"
HEADER_SIZE = struct.calcsize(REQ_PKT_FMT)
# The header sizes don't deviate
assert struct.calcsize(REQ_PKT_FMT) == struct.calcsize(RES_PKT_FMT) == 24

# Flags, expiration
SET_PKT_FMT = ">II"
SET_EXTRAS_SIZE = struct.calcsize(SET_PKT_FMT)

# flags
GET_RES_FMT = ">I"
GET_EXTRAS_SIZE = struct.calcsize(GET_RES_FMT)

# Response status codes
SUCCESS = 0x00
ERR_NOT_FOUND = 0x01
ERR_EXISTS = 0x02
ERR_TOO_BIG = 0x03
ERR_INVAL = 0x04
ERR_NOT_STORED = 0x05
ERR_UNKNOWN_CMD = 0x81
ERR_ENOMEM = 0x82

MAX_KEY_LENGTH = 0xFFFF
