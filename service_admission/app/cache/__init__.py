"""
Cache package for the Admission Service.

Provides a small hand-written RESP client (codec, connection, pool) and the
typed operations the validation engine and device enforcer build on.
"""

from .connection import ConnectionPool, RespConnection
from .operations import CacheOperations

__all__ = ["CacheOperations", "ConnectionPool", "RespConnection"]
