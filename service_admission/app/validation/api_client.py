"""
Client for the remote tenant validation authority.
"""

import json
from typing import Any, Dict, Optional, Sequence

import httpx
from pydantic import BaseModel

from shared.errors import ExternalServiceError
from shared.logging import get_logger

# Probed in order; the first field holding a recognisable boolean wins.
VALIDITY_FIELDS: Sequence[str] = ("valid", "success", "status")


class ValidityVerdict(BaseModel):
    """Validity decoded from an authority response."""
    valid: bool
    field: str


def _coerce_bool(value: Any) -> Optional[bool]:
    # bool first: True/False are ints too
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return value == 1
    if isinstance(value, str) and value in ("0", "1"):
        return value == "1"
    return None


def parse_validity(body: str) -> Optional[ValidityVerdict]:
    """
    Decode the authority's JSON body into a verdict.

    Accepts ``true``/``false`` literals and ``1``/``0`` (bare or quoted) under
    the fields in ``VALIDITY_FIELDS``. Returns ``None`` when the body is not a
    JSON object or no field yields a boolean.
    """
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None

    for name in VALIDITY_FIELDS:
        if name not in payload:
            continue
        coerced = _coerce_bool(payload[name])
        if coerced is not None:
            return ValidityVerdict(valid=coerced, field=name)
    return None


class ValidationApiClient:
    """
    GET-only client for the validation and bind-device endpoints.

    Transport failures and non-200 responses raise ``ExternalServiceError``.
    """

    def __init__(self, api_base: str, validate_path: str, bind_device_path: str, timeout: float = 3.0):
        self.api_base = api_base.rstrip("/")
        self.validate_path = validate_path
        self.bind_device_path = bind_device_path
        self.timeout = timeout
        self.logger = get_logger("admission.validation.api_client")

    async def _get(self, path: str, params: Dict[str, str]) -> str:
        url = f"{self.api_base}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            self.logger.warning("Validation API request failed", url=url, error=str(e) or type(e).__name__)
            raise ExternalServiceError(
                "validation_api",
                "request failed",
                details={"url": url, "error": str(e) or type(e).__name__}
            )

        if response.status_code != 200:
            self.logger.warning("Validation API returned an error status", url=url, status_code=response.status_code)
            raise ExternalServiceError(
                "validation_api",
                f"HTTP {response.status_code}",
                details={"url": url, "status_code": response.status_code}
            )

        return response.text

    async def validate(self, tenant_code: str) -> str:
        """Fetch the raw validation response body for a tenant."""
        return await self._get(self.validate_path, {"code": tenant_code})

    async def bind_device(self, tenant_code: str, client_address: str) -> str:
        """Report a tenant/device binding to the authority."""
        return await self._get(self.bind_device_path, {"code": tenant_code, "ip": client_address})
