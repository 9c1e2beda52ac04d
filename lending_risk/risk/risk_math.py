"""Position risk math: LTV, health factor, borrow/withdraw bounds, share conversion.

Every function is pure and works on :class:`decimal.Decimal` through contexts
owned by the :class:`RiskMath` instance, so the process-wide decimal context is
never read or modified.

Rounding policy:

* values handed to a user (borrowable, withdrawable, shares minted, assets
  redeemed) round down;
* minimum collateral that must stay locked rounds up.
"""
from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, Context, Decimal
from typing import Mapping, Union

from ..errors import InvalidAmount, MissingPrice
from ..models import Position, PriceQuote
from ..units import to_decimal
from .validation import to_non_negative

DEFAULT_PRECISION = 36
ZERO = Decimal(0)
ONE = Decimal(1)

PriceMap = Mapping[str, Union[Decimal, PriceQuote]]


class RiskMath:
    """Stateless risk calculator with explicit precision."""

    def __init__(self, precision: int = DEFAULT_PRECISION) -> None:
        if precision < 1:
            raise ValueError("precision must be positive")
        self.precision = precision
        self._down = Context(prec=precision, rounding=ROUND_DOWN)
        self._up = Context(prec=precision, rounding=ROUND_CEILING)

    @property
    def context(self) -> Context:
        """Round-down context for callers composing their own arithmetic."""
        return self._down

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    @staticmethod
    def price_of(prices: PriceMap, asset: str) -> Decimal:
        """Look up a strictly positive price for ``asset``."""
        quote = prices.get(asset)
        if quote is None:
            raise MissingPrice(f"Price not available for asset: {asset}", asset=asset)
        price = quote.price if isinstance(quote, PriceQuote) else to_decimal(quote, asset)
        if price <= 0:
            raise InvalidAmount(f"Price for {asset} must be positive", asset=asset)
        return price

    def collateral_value(self, position: Position, prices: PriceMap) -> Decimal:
        price = self.price_of(prices, position.collateral_asset)
        return self._down.multiply(position.collateral_amount, price)

    def debt_value(self, position: Position, prices: PriceMap) -> Decimal:
        price = self.price_of(prices, position.debt_asset)
        return self._down.multiply(position.debt_amount, price)

    # ------------------------------------------------------------------
    # Ratios
    # ------------------------------------------------------------------

    def ltv(self, position: Position, prices: PriceMap) -> Decimal:
        """Debt value over collateral value; 0 when there is no collateral value."""
        collateral_value = self.collateral_value(position, prices)
        debt_value = self.debt_value(position, prices)
        if collateral_value == 0:
            return ZERO
        return self._down.divide(debt_value, collateral_value)

    def health_factor(
        self,
        position: Position,
        prices: PriceMap,
        liquidation_threshold: Decimal,
    ) -> Decimal | None:
        """Risk-adjusted collateral over debt; ``None`` means no debt (infinite)."""
        if not position.has_debt:
            return None
        threshold = to_non_negative(liquidation_threshold, "liquidation_threshold")
        adjusted = self._down.multiply(
            self.collateral_value(position, prices), threshold
        )
        return self._down.divide(adjusted, self.debt_value(position, prices))

    @staticmethod
    def is_liquidatable(health_factor: Decimal | None) -> bool:
        """Eligible iff the health factor is defined and strictly below 1."""
        return health_factor is not None and health_factor < ONE

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def max_borrowable(
        self,
        collateral_amount: Decimal,
        collateral_price: Decimal,
        debt_price: Decimal,
        max_ltv: Decimal,
    ) -> Decimal:
        """Debt-asset amount the collateral supports at ``max_ltv``."""
        amount = to_non_negative(collateral_amount, "collateral_amount")
        c_price = to_non_negative(collateral_price, "collateral_price")
        d_price = to_decimal(debt_price, "debt_price")
        ltv = to_non_negative(max_ltv, "max_ltv")
        if d_price <= 0:
            raise InvalidAmount("debt_price must be positive", debt_price=str(d_price))
        if ltv == 0 or amount == 0 or c_price == 0:
            return ZERO
        borrow_value = self._down.multiply(self._down.multiply(amount, c_price), ltv)
        return self._down.divide(borrow_value, d_price)

    def min_collateral(
        self,
        position: Position,
        prices: PriceMap,
        liquidation_threshold: Decimal,
    ) -> Decimal:
        """Smallest collateral amount keeping the health factor at or above 1."""
        if not position.has_debt:
            return ZERO
        threshold = to_decimal(liquidation_threshold, "liquidation_threshold")
        if threshold <= 0:
            raise InvalidAmount("liquidation_threshold must be positive")
        collateral_price = self.price_of(prices, position.collateral_asset)
        debt_price = self.price_of(prices, position.debt_asset)
        debt_value = self._up.multiply(position.debt_amount, debt_price)
        min_value = self._up.divide(debt_value, threshold)
        return self._up.divide(min_value, collateral_price)

    def max_withdrawable(
        self,
        position: Position,
        prices: PriceMap,
        liquidation_threshold: Decimal,
    ) -> Decimal:
        """Collateral that can leave the position without pushing HF below 1."""
        if not position.has_debt:
            return position.collateral_amount
        required = self.min_collateral(position, prices, liquidation_threshold)
        free = self._down.subtract(position.collateral_amount, required)
        return max(ZERO, free)

    # ------------------------------------------------------------------
    # Share / asset conversion
    # ------------------------------------------------------------------

    def shares_for_assets(
        self, assets: Decimal, exchange_rate: Decimal, decimals: int | None = None
    ) -> Decimal:
        """Shares minted for ``assets``; rounds down in favor of the pool."""
        amount = to_non_negative(assets, "assets")
        rate = self._exchange_rate(exchange_rate)
        return self._floor(self._down.divide(amount, rate), decimals)

    def assets_for_shares(
        self, shares: Decimal, exchange_rate: Decimal, decimals: int | None = None
    ) -> Decimal:
        """Assets redeemed for ``shares``; rounds down in favor of the pool."""
        amount = to_non_negative(shares, "shares")
        rate = self._exchange_rate(exchange_rate)
        return self._floor(self._down.multiply(amount, rate), decimals)

    @staticmethod
    def _exchange_rate(value: Decimal) -> Decimal:
        rate = to_decimal(value, "exchange_rate")
        if rate <= 0:
            raise InvalidAmount("exchange_rate must be positive", exchange_rate=str(rate))
        return rate

    def _floor(self, value: Decimal, decimals: int | None) -> Decimal:
        if decimals is None:
            return value
        return value.quantize(
            Decimal(f"1E-{decimals}"), rounding=ROUND_DOWN, context=self._down
        )
