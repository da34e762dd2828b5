"""
Typed cache operations over the RESP connection pool.

Reads resolve errors to "not found" so callers fall back to re-validation;
writes resolve errors to ``False``. Nothing here raises to the caller.
"""

from typing import TYPE_CHECKING, Optional, Union

from shared.errors import CacheError
from shared.logging import get_logger
from .connection import ConnectionPool
from .protocol import RespValue

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CachedValue = Union[bool, str, None]


def _encode_value(value: Union[bool, str, int]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CacheOperations:
    """Get/set/exists/delete and set-type commands with TTL semantics."""

    def __init__(self, pool: ConnectionPool, metrics: Optional["MetricsCollector"] = None):
        self.pool = pool
        self.metrics = metrics
        self.logger = get_logger("admission.cache.operations")

    async def _command(self, *args: object) -> RespValue:
        async with self.pool.acquire() as conn:
            return await conn.execute(*args)

    def _record_error(self, command: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_command_errors_total", command=command)

    async def get(self, key: str) -> CachedValue:
        """Return ``None`` when absent, a bool for "true"/"false", the raw string otherwise."""
        try:
            value = await self._command("GET", key)
        except CacheError as e:
            self._record_error("GET")
            self.logger.debug("GET failed", key=key, error=e.message)
            return None

        if value is None or value == "":
            return None
        if value == "true":
            return True
        if value == "false":
            return False
        return str(value)

    async def set(self, key: str, value: Union[bool, str, int], ttl: int) -> bool:
        """Replace the value and reset the TTL (SETEX)."""
        try:
            reply = await self._command("SETEX", key, int(ttl), _encode_value(value))
        except CacheError as e:
            self._record_error("SETEX")
            self.logger.warning("SETEX failed", key=key, error=e.message)
            return False
        return reply is not None

    async def exists(self, key: str) -> bool:
        try:
            return await self._command("EXISTS", key) == 1
        except CacheError as e:
            self._record_error("EXISTS")
            self.logger.debug("EXISTS failed", key=key, error=e.message)
            return False

    async def delete(self, key: str) -> bool:
        try:
            reply = await self._command("DEL", key)
        except CacheError as e:
            self._record_error("DEL")
            self.logger.warning("DEL failed", key=key, error=e.message)
            return False
        return reply is not None

    async def set_add(self, key: str, member: str, ttl: Optional[int] = None) -> bool:
        """
        Add ``member`` to the set at ``key``.

        When ``ttl`` is given the expiry is set with a separate EXPIRE, so the
        two writes are not atomic. A failed EXPIRE is logged but does not make
        the add fail.
        """
        try:
            reply = await self._command("SADD", key, member)
        except CacheError as e:
            self._record_error("SADD")
            self.logger.warning("SADD failed", key=key, error=e.message)
            return False

        if ttl is not None:
            await self.expire(key, ttl)

        return reply is not None

    async def set_cardinality(self, key: str) -> int:
        try:
            count = await self._command("SCARD", key)
        except CacheError as e:
            self._record_error("SCARD")
            self.logger.debug("SCARD failed", key=key, error=e.message)
            return 0
        return count if isinstance(count, int) else 0

    async def set_is_member(self, key: str, member: str) -> bool:
        try:
            return await self._command("SISMEMBER", key, member) == 1
        except CacheError as e:
            self._record_error("SISMEMBER")
            self.logger.debug("SISMEMBER failed", key=key, error=e.message)
            return False

    async def expire(self, key: str, ttl: int) -> bool:
        try:
            return await self._command("EXPIRE", key, int(ttl)) == 1
        except CacheError as e:
            self._record_error("EXPIRE")
            self.logger.warning("EXPIRE failed", key=key, error=e.message)
            return False

    async def ping(self) -> bool:
        """Health probe."""
        try:
            return await self._command("PING") == "PONG"
        except CacheError as e:
            self._record_error("PING")
            self.logger.warning("PING failed", error=e.message)
            return False
