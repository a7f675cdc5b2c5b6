"""
Client Errors

Exceptions raised inside the client. The public CacheClient operations
catch CacheError and report it as an ERROR Response, so callers normally
only see these when driving a ServerConnection or a codec directly.

Whenever a connection-level error (connect, transport or protocol) is
raised, the connection has already stored the message in `last_error`
and, for transport and protocol errors, closed its socket.
"""


class CacheError(Exception):
    """Base class for all client errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ResolutionError(CacheError):
    """The host/port pair could not be resolved to an endpoint."""


class ConnectError(CacheError):
    """Socket creation or the connect call failed."""


class TransportError(CacheError):
    """A send or receive failed, or the peer closed the connection."""


class ProtocolError(CacheError):
    """The bytes received do not match the expected framing."""


class NoServerError(CacheError):
    """The client has no server connection to route the key to."""


class InvalidKeyError(CacheError):
    """The key cannot be sent with the selected protocol."""


class ResourceError(CacheError):
    """A value buffer of the size announced by the server could not be allocated."""
