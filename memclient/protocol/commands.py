"""
Protocol Item and Response Definitions

This module defines the data structures shared by both wire protocols:
the cache Item passed into every operation, the store command tags and
the Response returned by every public operation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Protocol(Enum):
    """Wire protocol spoken by a client for its whole lifetime."""
    TEXTUAL = "textual"
    BINARY = "binary"


class StoreCommand(Enum):
    """Store operations. The value is the textual protocol verb."""
    ADD = "add"
    SET = "set"
    REPLACE = "replace"


class ResponseStatus(Enum):
    """Enumeration of operation outcomes."""
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    NOT_STORED = "NOT_STORED"
    ERROR = "ERROR"


@dataclass
class Item:
    """
    One cache entry, owned by the caller.

    The library never replaces `data`; a successful get resizes the
    existing bytearray in place so that it holds the value exactly.

    Attributes:
        key: The key bytes (length is authoritative, no terminator)
        data: The value buffer
        flags: Opaque 32-bit value
        exptime: Expiration in seconds (0 = never)
        cas_id: Compare-and-swap token (0 = no CAS check)
    """
    key: bytes
    data: bytearray = field(default_factory=bytearray)
    flags: int = 0
    exptime: int = 0
    cas_id: int = 0

    def __post_init__(self):
        if isinstance(self.key, str):
            self.key = self.key.encode("utf-8")
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)

    @property
    def size(self) -> int:
        """Length of the value in bytes."""
        return len(self.data)

    def resize(self, size: int) -> None:
        """
        Resize the value buffer to exactly `size` bytes.

        Shrinking reuses the existing storage; the buffer only grows when
        its current length is insufficient. Newly added bytes are zero.

        A `data` attribute reassigned to some other bytes-like object is
        converted to a bytearray first.

        Args:
            size: The new length in bytes
        """
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)
        current = len(self.data)
        if size < current:
            del self.data[size:]
        elif size > current:
            self.data.extend(bytes(size - current))


@dataclass
class Response:
    """
    Outcome of a cache operation.

    Attributes:
        status: OK, NOT_FOUND, NOT_STORED or ERROR
        message: Human readable detail (empty on success)
    """
    status: ResponseStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.OK

    @classmethod
    def success(cls) -> "Response":
        """Create a successful response."""
        return cls(status=ResponseStatus.OK)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "Response":
        """Create a 'not found' response for get operations."""
        return cls(status=ResponseStatus.NOT_FOUND, message=message)

    @classmethod
    def not_stored(cls, message: str = "Item NOT stored") -> "Response":
        """Create a 'precondition failed' response for store operations."""
        return cls(status=ResponseStatus.NOT_STORED, message=message)

    @classmethod
    def error(cls, message: Optional[str]) -> "Response":
        """Create an error response."""
        return cls(status=ResponseStatus.ERROR, message=message or "")
