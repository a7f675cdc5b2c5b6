"""
Cluster module for memclient.

This module provides the client side of a sharded cache:
- Key to server bucket selection
- The routing CacheClient
"""

from .config import get_bucket_for_key, simple_hash
from .router import CacheClient

__all__ = ['CacheClient', 'get_bucket_for_key', 'simple_hash']
