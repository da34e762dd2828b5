"""
Admission decision type and reason codes.
"""

from enum import Enum
from typing import NamedTuple


class AdmissionReason(str, Enum):
    """Every reason an admission decision can carry."""

    # Denials
    NO_TENANT_CODE = "no_tenant_code"
    INVALID_FORMAT = "invalid_format"
    MULTI_DEVICE_BLOCKED = "multi_device_blocked"
    INVALID_TENANT = "invalid_tenant"
    TENANT_BLOCKED = "tenant_blocked"
    DEVICE_LIMIT_EXCEEDED = "device_limit_exceeded"
    MISSING_PARAMS = "missing_params"
    INTERNAL_ERROR = "internal_error"

    # Admissions
    SAME_DEVICE = "same_device"
    DEVICE_REGISTERED = "device_registered"

    def __str__(self) -> str:
        return self.value


ALLOW_REASONS = frozenset({AdmissionReason.SAME_DEVICE, AdmissionReason.DEVICE_REGISTERED})


class AdmissionDecision(NamedTuple):
    """
    Outcome of one admission check. Unpacks as ``(allowed, reason)``.

    Build instances through ``allow``/``deny`` so a denial reason can never be
    paired with ``allowed=True``.
    """

    allowed: bool
    reason: AdmissionReason

    @classmethod
    def allow(cls, reason: AdmissionReason) -> "AdmissionDecision":
        if reason not in ALLOW_REASONS:
            raise ValueError(f"{reason} is not an admission reason")
        return cls(True, reason)

    @classmethod
    def deny(cls, reason: AdmissionReason = AdmissionReason.INTERNAL_ERROR) -> "AdmissionDecision":
        if reason in ALLOW_REASONS:
            raise ValueError(f"{reason} is not a denial reason")
        return cls(False, reason)
