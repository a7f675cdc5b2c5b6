"""Protocol module for memclient."""

from .binary import BinaryProtocol
from .commands import Item, Protocol, Response, ResponseStatus, StoreCommand
from .textual import TextualProtocol

__all__ = [
    "BinaryProtocol",
    "Item",
    "Protocol",
    "Response",
    "ResponseStatus",
    "StoreCommand",
    "TextualProtocol",
]
