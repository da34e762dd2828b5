"""
Tenant validation engine: cache first, remote authority on a miss.
"""

import re
from typing import TYPE_CHECKING, Optional

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from ..cache.operations import CacheOperations
from .api_client import ValidationApiClient, parse_validity

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


TENANT_CODE_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

VALIDATION_PREFIX = "v:"
BIND_PREFIX = "b:"


def is_valid_tenant_code(tenant_code: Optional[str]) -> bool:
    """Non-empty and only ASCII letters, digits, ``_`` and ``-``."""
    return bool(tenant_code) and TENANT_CODE_PATTERN.fullmatch(tenant_code) is not None


def validation_key(tenant_code: str) -> str:
    return f"{VALIDATION_PREFIX}{tenant_code}"


def bind_key(tenant_code: str, client_address: str) -> str:
    return f"{BIND_PREFIX}{tenant_code}:{client_address}"


class ValidationEngine:
    """Decides whether a tenant code is valid, caching both outcomes."""

    def __init__(
        self,
        cache: CacheOperations,
        api_client: ValidationApiClient,
        valid_ttl: int,
        negative_ttl: int,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.api_client = api_client
        self.valid_ttl = valid_ttl
        self.negative_ttl = negative_ttl
        self.metrics = metrics
        self.logger = get_logger("admission.validation.engine")

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    async def validate(self, tenant_code: str) -> bool:
        """Return the tenant's validity; any failure resolves to ``False``."""
        if not is_valid_tenant_code(tenant_code):
            self.logger.warning("Rejected malformed tenant code", tenant_code=tenant_code)
            return False

        cache_key = validation_key(tenant_code)

        cached = await self.cache.get(cache_key)
        if isinstance(cached, bool):
            self._count("validation_cache_lookups_total", result="hit")
            self.logger.debug("Validation cache hit", tenant_code=tenant_code, valid=cached)
            return cached
        if cached is not None:
            self.logger.warning("Ignoring non-boolean validation cache entry", tenant_code=tenant_code)

        self._count("validation_cache_lookups_total", result="miss")
        self.logger.debug("Validation cache miss, calling API", tenant_code=tenant_code)

        try:
            body = await self.api_client.validate(tenant_code)
        except ExternalServiceError as e:
            self._count("validation_api_calls_total", outcome="error")
            self.logger.warning("Validation API failed, caching negative result",
                                tenant_code=tenant_code, error=e.message)
            await self.cache.set(cache_key, False, self.negative_ttl)
            return False

        verdict = parse_validity(body)
        if verdict is None:
            self._count("validation_api_calls_total", outcome="unparseable")
            self.logger.warning("Could not parse validation response",
                                tenant_code=tenant_code, body=body[:200])
            is_valid = False
        else:
            self._count("validation_api_calls_total", outcome="valid" if verdict.valid else "invalid")
            is_valid = verdict.valid

        ttl = self.valid_ttl if is_valid else self.negative_ttl
        await self.cache.set(cache_key, is_valid, ttl)

        self.logger.info("Validated tenant via API", tenant_code=tenant_code, valid=is_valid, ttl=ttl)
        return is_valid

    async def bind_device(self, tenant_code: str, client_address: str) -> bool:
        """
        Register a tenant/device binding with the authority.

        Successful binds are memoized under ``b:{tenant}:{addr}`` for the
        valid TTL, so repeat binds do not reach the API. Failures are not
        cached.
        """
        if not is_valid_tenant_code(tenant_code) or not client_address:
            return False

        cache_key = bind_key(tenant_code, client_address)
        if await self.cache.exists(cache_key):
            self.logger.debug("Device already bound", tenant_code=tenant_code, client_address=client_address)
            return True

        try:
            await self.api_client.bind_device(tenant_code, client_address)
        except ExternalServiceError as e:
            self.logger.debug("Device bind API failed", tenant_code=tenant_code, error=e.message)
            return False

        await self.cache.set(cache_key, True, self.valid_ttl)
        self.logger.info("Device bound via API", tenant_code=tenant_code, client_address=client_address)
        return True
