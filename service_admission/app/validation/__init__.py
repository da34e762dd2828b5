"""
Tenant validation package.

Validates tenant codes against the remote authority, memoizing both
positive and negative outcomes in the cache:

- engine: cache-first validation with negative caching, plus the
  bind-device memoization used by the admin surface.
- api_client: GET-only HTTP client and the ordered-field response decoder.
"""

from .engine import ValidationEngine, is_valid_tenant_code
from .api_client import ValidationApiClient, ValidityVerdict, parse_validity

__all__ = [
    "ValidationApiClient",
    "ValidationEngine",
    "ValidityVerdict",
    "is_valid_tenant_code",
    "parse_validity",
]
