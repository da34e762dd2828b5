"""
Admission service for the tenant admission layer.
"""

import sys
from typing import Optional, Tuple

from fastapi import Header
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, load_config
from shared.errors import ConfigError, ValidationError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector

from .cache.connection import ConnectionPool
from .cache.operations import CacheOperations
from .devices.enforcer import DeviceLimitEnforcer
from .orchestrator import AdmissionController
from .validation.api_client import ValidationApiClient
from .validation.engine import ValidationEngine

SERVICE_NAME = "admission"
SERVICE_PORT = 8020


class AdmissionRequest(BaseModel):
    """Connection attempt as seen by the transport terminator."""
    tenant_code: Optional[str] = Field(None, description="Tenant code extracted from the connection")
    client_address: Optional[str] = Field(None, description="Client network address")


class AdmissionResponse(BaseModel):
    allowed: bool
    reason: str


def build_controller(config: ServiceConfig,
                     metrics: Optional[MetricsCollector] = None) -> Tuple[ConnectionPool, AdmissionController]:
    """Wire pool, cache, validation engine and enforcer into a controller."""
    pool = ConnectionPool(
        config.cache_host,
        config.cache_port,
        password=config.cache_password,
        timeout=config.cache_timeout,
        max_idle=config.cache_max_idle_connections,
    )
    cache = CacheOperations(pool, metrics=metrics)
    api_client = ValidationApiClient(
        config.api_base,
        config.validate_path,
        config.bind_device_path,
        timeout=config.http_timeout,
    )
    engine = ValidationEngine(
        cache,
        api_client,
        valid_ttl=config.valid_ttl_s,
        negative_ttl=config.negative_ttl_s,
        metrics=metrics,
    )
    enforcer = DeviceLimitEnforcer(
        cache,
        max_devices=config.max_devices_per_tenant,
        device_session_ttl=config.device_session_ttl_s,
        block_duration=config.block_duration_s,
        metrics=metrics,
    )
    controller = AdmissionController(cache, engine, enforcer, metrics=metrics)
    return pool, controller


class AdmissionService(BaseService):
    """Admission service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, metrics: Optional[MetricsCollector] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config, metrics=metrics)
        self.pool, self.controller = build_controller(self.config, metrics=self.metrics)

        @self.app.on_event("startup")
        async def _startup():
            self._log_policy()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.pool.close()

        self._setup_admission_routes()

        self.app.state.admission_service = self

    def _log_policy(self):
        self.logger.info(
            "Admission controller configured",
            api_base=self.config.api_base,
            valid_ttl_s=self.config.valid_ttl_s,
            negative_ttl_s=self.config.negative_ttl_s,
            max_devices_per_tenant=self.config.max_devices_per_tenant,
            device_session_ttl_s=self.config.device_session_ttl_s,
            block_duration_s=self.config.block_duration_s,
            cache=f"{self.config.cache_host}:{self.config.cache_port}",
        )

    def _setup_admission_routes(self):
        """Set up admission-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Tenant admission layer - Admission Service",
                "version": "1.0.0"
            }

        @self.app.post("/admission/evaluate", response_model=AdmissionResponse)
        async def evaluate(request: AdmissionRequest):
            """Allow/deny one connection attempt."""
            allowed, reason = await self.controller.evaluate(request.tenant_code, request.client_address)
            return AdmissionResponse(allowed=allowed, reason=reason.value)

        @self.app.post("/admission/bind")
        async def bind_device(request: AdmissionRequest):
            """Report a tenant/device binding to the validation authority."""
            bound = await self.controller.validation_engine.bind_device(
                request.tenant_code or "", request.client_address or ""
            )
            return {"bound": bound}

        @self.app.post("/admin/unblock")
        async def unblock(x_tenant_code: Optional[str] = Header(None)):
            """Clear a tenant's block flag and device set."""
            if not x_tenant_code:
                raise ValidationError("X-Tenant-Code header is required")
            success = await self.controller.unblock(x_tenant_code)
            if not success:
                raise ValidationError("Invalid tenant code", details={"tenant_code": x_tenant_code})
            return {"success": True, "tenant_code": x_tenant_code}

    async def _check_dependencies(self):
        """Check admission dependencies."""
        cache_ok = await self.controller.cache.ping()
        return {"cache": "ok" if cache_ok else "error"}


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = AdmissionService(config=config)
    return service.app


def main():
    try:
        config = load_config(SERVICE_NAME, SERVICE_PORT)
    except ConfigError as e:
        configure_logging(SERVICE_NAME)
        get_logger(SERVICE_NAME).critical("Refusing to start", error=e.message, fields=e.details.get("fields"))
        sys.exit(1)
    AdmissionService(config=config).run()


if __name__ == "__main__":
    main()
