"""
Device-limit enforcement package.
"""

from .enforcer import DeviceLimitEnforcer

__all__ = ["DeviceLimitEnforcer"]
