"""
memclient Configuration Settings

This module contains the configuration constants for the cache client.
Values that make sense per deployment can be overridden with environment
variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class Settings:
    """Client configuration settings."""

    # Default server used by the command line tool
    HOST: str = os.environ.get("MEMCLIENT_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("MEMCLIENT_PORT", "11211"))

    # Wire protocol: "textual" or "binary"
    PROTOCOL: str = os.environ.get("MEMCLIENT_PROTOCOL", "textual")

    # Connection settings
    BUFFER_SIZE: int = 65536  # Receive buffer per connection, never resized
    TCP_NODELAY: bool = True
    # Socket-level deadline in seconds. None keeps the sockets fully blocking.
    SOCKET_TIMEOUT: Optional[float] = _optional_float(
        os.environ.get("MEMCLIENT_SOCKET_TIMEOUT")
    )

    # Key settings (memcached rejects keys over 250 bytes)
    MAX_KEY_LENGTH: int = 250
    # Largest value accepted from a server (memcached's default item size limit)
    MAX_VALUE_LENGTH: int = int(os.environ.get("MEMCLIENT_MAX_VALUE_LENGTH", str(1024 * 1024)))

    # Logging settings
    DEBUG: bool = os.environ.get("MEMCLIENT_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("MEMCLIENT_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
