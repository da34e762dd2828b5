"""
Single-active-device enforcement with automatic, time-bounded blocking.

Key structure:
    dev:{tenant}      set of active client addresses (TTL: device session)
    blocked:{tenant}  "true" while the tenant is blocked (TTL: block duration)

The membership check, cardinality read and add below are separate round
trips with no transaction around them. Two first-time connections from
different addresses can both see an empty set and both register. Both
sessions are then admitted as ``same_device`` until a connection from a
further address sees the set over the limit and blocks the tenant, or the
set expires. That window is accepted in exchange for simple round trips.
"""

from typing import TYPE_CHECKING, Optional

from shared.logging import get_logger
from ..cache.operations import CacheOperations
from ..decision import AdmissionDecision, AdmissionReason

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEVICE_PREFIX = "dev:"
BLOCK_PREFIX = "blocked:"


def device_key(tenant_code: str) -> str:
    return f"{DEVICE_PREFIX}{tenant_code}"


def block_key(tenant_code: str) -> str:
    return f"{BLOCK_PREFIX}{tenant_code}"


class DeviceLimitEnforcer:
    """Tracks active devices per tenant and blocks tenants that exceed the limit."""

    def __init__(
        self,
        cache: CacheOperations,
        max_devices: int = 1,
        device_session_ttl: int = 60,
        block_duration: int = 1800,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.max_devices = max_devices
        self.device_session_ttl = device_session_ttl
        self.block_duration = block_duration
        self.metrics = metrics
        self.logger = get_logger("admission.devices.enforcer")

    async def is_blocked(self, tenant_code: str) -> bool:
        return await self.cache.get(block_key(tenant_code)) is True

    async def block(self, tenant_code: str, reason: str) -> None:
        """Write the block flag and drop the tenant's device set."""
        await self.cache.set(block_key(tenant_code), True, self.block_duration)
        await self.cache.delete(device_key(tenant_code))

        if self.metrics:
            self.metrics.increment_counter("tenant_blocks_total")
        self.logger.warning(
            "Blocked tenant",
            tenant_code=tenant_code,
            reason=reason,
            duration_s=self.block_duration
        )

    async def check(self, tenant_code: str, client_address: str) -> AdmissionDecision:
        """Admit or reject ``client_address`` for an already-validated tenant."""
        if not tenant_code or not client_address:
            return AdmissionDecision.deny(AdmissionReason.MISSING_PARAMS)

        if await self.is_blocked(tenant_code):
            self.logger.info("Tenant is blocked", tenant_code=tenant_code, client_address=client_address)
            return AdmissionDecision.deny(AdmissionReason.TENANT_BLOCKED)

        key = device_key(tenant_code)

        if await self.cache.set_is_member(key, client_address):
            # Re-adding an existing member only refreshes the session TTL.
            await self.cache.set_add(key, client_address, self.device_session_ttl)
            return AdmissionDecision.allow(AdmissionReason.SAME_DEVICE)

        current_devices = await self.cache.set_cardinality(key)
        if current_devices >= self.max_devices:
            await self.block(
                tenant_code,
                f"Multiple devices detected. Current: {current_devices}, new address: {client_address}"
            )
            return AdmissionDecision.deny(AdmissionReason.DEVICE_LIMIT_EXCEEDED)

        await self.cache.set_add(key, client_address, self.device_session_ttl)
        self.logger.info("Registered device", tenant_code=tenant_code, client_address=client_address)
        return AdmissionDecision.allow(AdmissionReason.DEVICE_REGISTERED)
