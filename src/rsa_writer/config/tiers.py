"""Membership tier definitions and per-tier credit configuration.

Defines the four membership tiers an account can hold.  Metered tiers pay
for each successfully processed URL out of their credit balance; unmetered
tiers are never charged and never refused admission.

All costs are expressed in half-credit units (see
:mod:`rsa_writer.core.credits`), so ``1`` here means 0.5 credit.

Cost mapping:
  - FREE / STARTER:  0.5 credit per scraped URL, 0.5 credit per generated URL
  - PRO / AGENCY:    unmetered
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Tier(str, Enum):
    """Membership tier of an account.

    Attributes:
        FREE: Metered, starts with 5 credits, small batches only.
        STARTER: Metered with a larger batch cap.
        PRO: Unmetered subscription.
        AGENCY: Unmetered subscription for high-volume accounts.
    """

    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    AGENCY = "agency"


class Phase(str, Enum):
    """The two metered stages of a job's lifecycle."""

    SCRAPE = "scrape"
    GENERATE = "generate"


@dataclass(frozen=True)
class TierConfig:
    """Credit parameters for a single membership tier.

    Attributes:
        tier: The :class:`Tier` this configuration applies to.
        metered: Whether work is admitted against and debited from the
            account balance.
        scrape_unit_cost: Half-credit units charged per successfully scraped URL.
        generation_unit_cost: Half-credit units charged per URL with
            successfully generated copy.
        max_urls_per_batch: Upper bound on the URL count admitted into a
            single phase.  ``None`` means no cap.
    """

    tier: Tier
    metered: bool
    scrape_unit_cost: int
    generation_unit_cost: int
    max_urls_per_batch: Optional[int]

    def unit_cost(self, phase: Phase) -> int:
        """Return the per-URL cost of *phase* for this tier."""
        if phase is Phase.SCRAPE:
            return self.scrape_unit_cost
        return self.generation_unit_cost


TIER_DEFAULTS: dict[Tier, TierConfig] = {
    Tier.FREE: TierConfig(
        tier=Tier.FREE,
        metered=True,
        scrape_unit_cost=1,
        generation_unit_cost=1,
        max_urls_per_batch=5,
    ),
    Tier.STARTER: TierConfig(
        tier=Tier.STARTER,
        metered=True,
        scrape_unit_cost=1,
        generation_unit_cost=1,
        max_urls_per_batch=50,
    ),
    Tier.PRO: TierConfig(
        tier=Tier.PRO,
        metered=False,
        scrape_unit_cost=0,
        generation_unit_cost=0,
        max_urls_per_batch=None,
    ),
    Tier.AGENCY: TierConfig(
        tier=Tier.AGENCY,
        metered=False,
        scrape_unit_cost=0,
        generation_unit_cost=0,
        max_urls_per_batch=None,
    ),
}
"""Tier configurations used by the credit ledger for admission and settlement."""

#: Balance granted to a newly created account, in half-credit units (5 credits).
DEFAULT_STARTING_BALANCE: int = 10


def get_tier_config(tier: Tier | str) -> TierConfig:
    """Return the :class:`TierConfig` for *tier*, accepting the raw string value."""
    return TIER_DEFAULTS[Tier(tier)]
