"""Configuration module for memclient."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
