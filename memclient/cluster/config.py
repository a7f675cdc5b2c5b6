"""
Key Distribution Module

Maps a key to the index of the server connection that owns it.

The hash is a plain shift-and-add over the key bytes. It does not spread
keys evenly, but every client using it must agree on which server holds
which key, so it must not change. Adding or removing a server remaps most
keys.
"""

from ..errors import NoServerError

HASH_MASK = 0xFFFFFFFF


def simple_hash(key: bytes) -> int:
    """
    Compute the 32-bit routing hash of a key.

    The accumulator starts at the first byte, then every byte (the first
    one included) is folded in as ``acc = (acc << 4) + byte``, wrapping at
    32 bits.

    Bytes are unsigned and the whole key is hashed, so keys with bytes of
    0x80 and above or with embedded NULs can route differently from a C
    client that walks a signed, NUL-terminated char string.

    Args:
        key: The key bytes

    Returns:
        Unsigned 32-bit hash (0 for an empty key)
    """
    if not key:
        return 0
    acc = key[0]
    for byte in key:
        acc = ((acc << 4) + byte) & HASH_MASK
    return acc


def get_bucket_for_key(key: bytes, num_servers: int) -> int:
    """
    Pick the server index for a key.

    With a single server every key goes to it, whatever the hash.

    Args:
        key: The key bytes
        num_servers: Number of configured server connections

    Returns:
        Index into the connection list

    Raises:
        NoServerError: If there are no servers
    """
    if num_servers <= 0:
        raise NoServerError("No server available")
    if num_servers == 1:
        return 0
    return simple_hash(key) % num_servers
