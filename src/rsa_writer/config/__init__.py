"""Configuration package for RSA Writer.

Re-exports the most commonly used configuration symbols so that
callers can write::

    from rsa_writer.config import get_settings, Tier, TIER_DEFAULTS

without needing to know which sub-module each symbol lives in.
"""

from __future__ import annotations

from rsa_writer.config.settings import Settings, get_settings
from rsa_writer.config.tiers import (
    DEFAULT_STARTING_BALANCE,
    TIER_DEFAULTS,
    Phase,
    Tier,
    TierConfig,
    get_tier_config,
)

__all__ = [
    # settings
    "Settings",
    "get_settings",
    # tiers
    "Tier",
    "Phase",
    "TierConfig",
    "TIER_DEFAULTS",
    "DEFAULT_STARTING_BALANCE",
    "get_tier_config",
]
