"""
Admission orchestrator: one allow/deny decision per connection attempt.
"""

import time
from typing import TYPE_CHECKING, Optional

from shared.logging import get_logger, set_admission_context
from .cache.operations import CacheOperations
from .decision import AdmissionDecision, AdmissionReason
from .devices.enforcer import DeviceLimitEnforcer, block_key, device_key
from .validation.engine import ValidationEngine, is_valid_tenant_code

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class AdmissionController:
    """
    Sequences the admission checks.

    Order: tenant code shape, blocked flag, validation, device limit. The
    blocked flag is read again by the enforcer; the first read lets blocked
    tenants exit before any validation traffic.
    """

    def __init__(
        self,
        cache: CacheOperations,
        validation_engine: ValidationEngine,
        enforcer: DeviceLimitEnforcer,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.validation_engine = validation_engine
        self.enforcer = enforcer
        self.metrics = metrics
        self.logger = get_logger("admission.orchestrator")

    async def evaluate(self, tenant_code: Optional[str], client_address: Optional[str]) -> AdmissionDecision:
        """Return the decision for one connection attempt. Never raises."""
        start_time = time.time()
        set_admission_context(tenant_id=tenant_code, client_address=client_address)

        try:
            decision = await self._evaluate(tenant_code, client_address)
        except Exception as e:
            self.logger.error("Admission evaluation failed", error=str(e), exc_info=True)
            if self.metrics:
                self.metrics.record_error("admission_evaluation")
            decision = AdmissionDecision.deny(AdmissionReason.INTERNAL_ERROR)

        duration = time.time() - start_time
        if self.metrics:
            self.metrics.record_decision(decision.allowed, decision.reason.value, duration)

        log = self.logger.info if decision.allowed else self.logger.warning
        log(
            "Admission decision",
            tenant_code=tenant_code,
            client_address=client_address or "unknown",
            allowed=decision.allowed,
            reason=decision.reason.value,
            duration_ms=round(duration * 1000, 2)
        )
        return decision

    async def _evaluate(self, tenant_code: Optional[str], client_address: Optional[str]) -> AdmissionDecision:
        if not tenant_code:
            return AdmissionDecision.deny(AdmissionReason.NO_TENANT_CODE)
        if not is_valid_tenant_code(tenant_code):
            return AdmissionDecision.deny(AdmissionReason.INVALID_FORMAT)

        if await self.enforcer.is_blocked(tenant_code):
            return AdmissionDecision.deny(AdmissionReason.MULTI_DEVICE_BLOCKED)

        if not await self.validation_engine.validate(tenant_code):
            return AdmissionDecision.deny(AdmissionReason.INVALID_TENANT)

        return await self.enforcer.check(tenant_code, client_address)

    async def unblock(self, tenant_code: Optional[str]) -> bool:
        """
        Clear a tenant's block flag and device set.

        Idempotent. Returns ``True`` whenever the deletes were attempted, even
        if the keys did not exist or the cache was unreachable; returns
        ``False`` only for a missing or malformed tenant code.
        """
        if not is_valid_tenant_code(tenant_code):
            self.logger.warning("Unblock rejected: invalid tenant code", tenant_code=tenant_code)
            return False

        await self.cache.delete(block_key(tenant_code))
        await self.cache.delete(device_key(tenant_code))

        self.logger.info("Unblocked tenant", tenant_code=tenant_code)
        return True
