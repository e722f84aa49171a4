"""Fixed-point credit arithmetic, admission control and settlement.

Balances and costs are plain integers counted in **half-credit units**: one
credit is ``UNITS_PER_CREDIT`` (2) units, so a balance of ``5`` is 2.5 credits.
No float ever touches a balance; :class:`~decimal.Decimal` is used only at
the edges, for parsing and display.

The ledger follows a check-then-settle pattern:

  1. Admission:   check_admission() runs once per phase, before any work,
                  against the *requested* unit count.  Nothing is written.
  2. Settlement:  settle() runs once per phase, after the phase's outcome is
                  known, and debits only the units that succeeded.

Units attempted but failed are never charged, and the balance is written
exactly once per phase rather than once per URL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from rsa_writer.config.tiers import Phase, TierConfig, get_tier_config
from rsa_writer.core.exceptions import BatchSizeExceededError, InsufficientCreditError
from rsa_writer.core.schemas import Account

logger = logging.getLogger(__name__)

#: Half-credit units per whole credit.
UNITS_PER_CREDIT: int = 2


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def credits_to_units(amount: Decimal | str | int) -> int:
    """Convert a credit amount (``"2.5"``, ``Decimal("3")``, ``4``) to units.

    Raises:
        ValueError: If *amount* is negative, not a number, or finer than
            half a credit.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Not a credit amount: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"Credit amount must be a non-negative number: {amount!r}")
    units = value * UNITS_PER_CREDIT
    if units != units.to_integral_value():
        raise ValueError(f"Credit amount must be a multiple of 0.5: {amount!r}")
    return int(units)


def units_to_credits(units: int) -> Decimal:
    """Convert half-credit units back to a :class:`Decimal` credit amount."""
    return Decimal(units) / UNITS_PER_CREDIT


def format_credits(units: int) -> str:
    """Render units for humans: ``5 -> "2.5"``, ``4 -> "2"``."""
    whole, half = divmod(units, UNITS_PER_CREDIT)
    return f"{whole}.5" if half else str(whole)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the phase may start.
        required: Units the phase would cost if every unit succeeded.
        reason: Human-readable rejection reason when not allowed.
    """

    allowed: bool
    required: int
    reason: Optional[str] = None


class CreditLedger:
    """Gates and accounts for metered work against an account balance.

    The ledger is stateless: it reads the :class:`Account` it is handed and
    returns decisions or new balances.  Persisting the new balance is the
    caller's job, exactly once per phase.
    """

    def tier_config(self, account: Account) -> TierConfig:
        return get_tier_config(account.tier)

    def unit_cost_for(self, account: Account, phase: Phase) -> int:
        """Return the per-URL cost of *phase* for *account*'s tier."""
        return self.tier_config(account).unit_cost(phase)

    def check_admission(
        self,
        account: Account,
        unit_count: int,
        unit_cost: int,
    ) -> AdmissionDecision:
        """Decide whether *account* may start a phase of *unit_count* units.

        Unmetered tiers are always admitted.  Metered tiers are admitted iff
        the batch is within the tier's size cap and the balance covers
        ``unit_count * unit_cost``.

        Args:
            account: The paying account.
            unit_count: Requested units (e.g. the number of valid URLs), not
                the eventual success count.
            unit_cost: Half-credit units per unit.

        Returns:
            An :class:`AdmissionDecision`.
        """
        if unit_count < 0 or unit_cost < 0:
            raise ValueError("unit_count and unit_cost must be non-negative")

        config = self.tier_config(account)
        required = unit_count * unit_cost

        if not config.metered:
            return AdmissionDecision(allowed=True, required=0)

        if config.max_urls_per_batch is not None and unit_count > config.max_urls_per_batch:
            reason = str(
                BatchSizeExceededError(unit_count, config.max_urls_per_batch, config.tier.value)
            )
            logger.info(
                "Admission rejected: batch size",
                extra={
                    "owner_id": account.owner_id,
                    "requested": unit_count,
                    "limit": config.max_urls_per_batch,
                },
            )
            return AdmissionDecision(allowed=False, required=required, reason=reason)

        if account.balance < required:
            reason = str(InsufficientCreditError(required, account.balance, account.owner_id))
            logger.info(
                "Admission rejected: insufficient credits",
                extra={
                    "owner_id": account.owner_id,
                    "required": required,
                    "available": account.balance,
                },
            )
            return AdmissionDecision(allowed=False, required=required, reason=reason)

        return AdmissionDecision(allowed=True, required=required)

    def settlement_debit(self, account: Account, success_count: int, unit_cost: int) -> int:
        """Return the units a finished phase owes, before any clamping.

        Zero for unmetered tiers and for phases with zero successes.  The
        pipeline hands a non-zero result to the account repository's atomic
        ``debit`` so concurrent settlements on one account cannot overwrite
        each other.
        """
        if success_count < 0 or unit_cost < 0:
            raise ValueError("success_count and unit_cost must be non-negative")
        if not self.tier_config(account).metered:
            return 0
        return success_count * unit_cost

    def settle(self, account: Account, success_count: int, unit_cost: int) -> int:
        """Return the balance after charging for *success_count* units.

        No-op (returns the current balance) for unmetered tiers and for
        phases with zero successes.  If another phase settled against the
        same account since this one was admitted and the debit would now
        overdraw it, the debit is clamped so the balance stops at zero.

        Args:
            account: The paying account, as loaded after the phase finished.
            success_count: Units that actually succeeded.
            unit_cost: Half-credit units per unit.

        Returns:
            The new balance in half-credit units.
        """
        config = self.tier_config(account)
        debit = self.settlement_debit(account, success_count, unit_cost)
        if debit == 0:
            return account.balance

        if debit > account.balance:
            logger.warning(
                "Settlement clamped to available balance",
                extra={
                    "owner_id": account.owner_id,
                    "debit": debit,
                    "available": account.balance,
                },
            )
            debit = account.balance

        new_balance = account.balance - debit
        logger.info(
            "Credits settled",
            extra={
                "owner_id": account.owner_id,
                "tier": config.tier.value,
                "success_count": success_count,
                "unit_cost": unit_cost,
                "debited": debit,
                "balance": new_balance,
            },
        )
        return new_balance
