"""
valuation.py - Collateral valuation and health factors

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take prices, amounts and risk parameters explicitly
   - Integer fixed-point arithmetic, truncating division
   - Trivially testable, stress-testable

2. SERVICES (ValuationService, HealthFactorCalculator):
   - Read a fresh price from the asset's feed on every call
   - Read balances from the collateral and debt ledgers
   - Delegate the arithmetic to the pure functions

Key Formulas:
    usd_value         = price * ADDITIONAL_FEED_PRECISION * amount // PRECISION
    token_amount      = usd * PRECISION // (price * ADDITIONAL_FEED_PRECISION)
    adjusted_value    = collateral_value * threshold // liquidation_precision
    health_factor     = adjusted_value * PRECISION // debt      (debt > 0)
                      = MAX_HEALTH_FACTOR                       (debt == 0)
"""

from __future__ import annotations
from typing import Dict, Mapping, Tuple

from .core import (
    PriceFeed, RiskParameters,
    PRECISION, ADDITIONAL_FEED_PRECISION, MAX_HEALTH_FACTOR,
    OracleError, ValidationError,
)
from .accounts import CollateralLedger, DebtLedger


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_usd_value(price: int, amount: int) -> int:
    """
    USD value (18 decimals) of amount base units at an 8-decimal price.

    Example:
        calculate_usd_value(2000 * 10**8, 15 * 10**18) == 30000 * 10**18
    """
    return price * ADDITIONAL_FEED_PRECISION * amount // PRECISION


def calculate_token_amount_from_usd(price: int, usd_amount: int) -> int:
    """Base units of an asset worth usd_amount (18 decimals) at an 8-decimal price."""
    return usd_amount * PRECISION // (price * ADDITIONAL_FEED_PRECISION)


def calculate_health_factor(
    total_dsc_minted: int,
    collateral_value_usd: int,
    params: RiskParameters = RiskParameters(),
) -> int:
    """
    Scaled ratio of threshold-adjusted collateral value to debt.

    An account without debt is unconditionally solvent and reports
    MAX_HEALTH_FACTOR; the division is never attempted.
    """
    if total_dsc_minted == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value_usd * params.liquidation_threshold // params.liquidation_precision
    return adjusted * PRECISION // total_dsc_minted


def calculate_liquidation_seizure(
    price: int,
    debt_to_cover: int,
    params: RiskParameters = RiskParameters(),
) -> int:
    """
    Collateral paid to a liquidator for covering debt_to_cover.

    The debt's worth of collateral plus the liquidation bonus on top of it.
    """
    collateral_seized = calculate_token_amount_from_usd(price, debt_to_cover)
    bonus = collateral_seized * params.liquidation_bonus // params.liquidation_precision
    return collateral_seized + bonus


# ============================================================================
# SERVICES
# ============================================================================

class ValuationService:
    """
    Converts between asset quantities and USD using each asset's price feed.

    No price is cached: every conversion performs a fresh feed read.
    """

    def __init__(self, price_feeds: Mapping[str, PriceFeed], collateral: CollateralLedger):
        self._feeds: Dict[str, PriceFeed] = dict(price_feeds)
        self._collateral = collateral

    def price_feed(self, asset: str) -> PriceFeed:
        if asset not in self._feeds:
            raise ValidationError(f"token not allowed: {asset}")
        return self._feeds[asset]

    def price(self, asset: str) -> int:
        """
        Latest 8-decimal USD price of asset.

        Raises:
            ValidationError: If asset has no feed
            OracleError: If the feed answer is not positive
        """
        answer, _ = self.price_feed(asset).latest_price()
        if answer <= 0:
            raise OracleError(f"invalid price for {asset}: {answer}")
        return answer

    def usd_value(self, asset: str, amount: int) -> int:
        _require_non_negative(amount)
        return calculate_usd_value(self.price(asset), amount)

    def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        _require_non_negative(usd_amount)
        return calculate_token_amount_from_usd(self.price(asset), usd_amount)

    def account_collateral_value(self, account: str) -> int:
        """
        Sum of the USD value of every collateral asset account has deposited.

        Assets the account does not hold are not priced, so a broken feed only
        affects the accounts exposed to it.
        """
        total = 0
        for asset, amount in self._collateral.holdings(account).items():
            if amount == 0:
                continue
            total += self.usd_value(asset, amount)
        return total


class HealthFactorCalculator:
    """Derives an account's health factor from the ledgers and current prices."""

    def __init__(self, valuation: ValuationService, debts: DebtLedger, params: RiskParameters):
        self._valuation = valuation
        self._debts = debts
        self.params = params

    def account_information(self, account: str) -> Tuple[int, int]:
        """Return (total_dsc_minted, collateral_value_usd)."""
        return self._debts.debt(account), self._valuation.account_collateral_value(account)

    def health_factor(self, account: str) -> int:
        debt = self._debts.debt(account)
        if debt == 0:
            return MAX_HEALTH_FACTOR
        value = self._valuation.account_collateral_value(account)
        return calculate_health_factor(debt, value, self.params)

    def is_solvent(self, account: str) -> bool:
        return self.health_factor(account) >= self.params.min_health_factor


def _require_non_negative(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"amount must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise ValidationError(f"amount cannot be negative, got {amount}")
