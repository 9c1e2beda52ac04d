"""Liquidation scanner — finds under-collateralized positions and sizes payouts."""
from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import (
    InsufficientCollateral,
    InvalidAmount,
    PositionNotLiquidatable,
    RiskEngineError,
)
from ..interfaces.chain import PoolReader
from ..interfaces.position_store import PositionStore
from ..interfaces.price_oracle import PriceSource
from ..models import (
    LiquidationEvent,
    LiquidationOpportunity,
    LiquidationProposal,
    Position,
    Seizure,
)
from ..risk import RiskMath, validate_address, validate_amount
from ..risk.risk_math import PriceMap
from ..risk.validation import to_non_negative

logger = logging.getLogger(__name__)


class LiquidationScanner:
    """Compute liquidation eligibility and amounts; never submits transactions."""

    def __init__(
        self,
        store: PositionStore,
        oracle: PriceSource,
        pools: PoolReader,
        math: RiskMath,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._pools = pools
        self._math = math

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def find_liquidatable_positions(self) -> list[LiquidationOpportunity]:
        """Active positions with HF < 1, most profitable first."""
        positions = [
            p for p in await self._store.load_active_positions() if p.is_active and p.has_debt
        ]
        if not positions:
            return []

        assets = {p.collateral_asset for p in positions} | {p.debt_asset for p in positions}
        batch = await self._oracle.get_prices(sorted(assets))

        opportunities: list[LiquidationOpportunity] = []
        for position in positions:
            try:
                opportunity = await self._evaluate(position, batch.prices)
            except RiskEngineError as e:
                logger.warning("Skipping position %s during scan: %s", position.id, e)
                continue
            if opportunity is not None:
                opportunities.append(opportunity)

        opportunities.sort(key=lambda o: o.potential_profit, reverse=True)
        logger.info(
            "Liquidation scan: %d of %d positions eligible",
            len(opportunities),
            len(positions),
        )
        return opportunities

    async def _evaluate(
        self, position: Position, prices: PriceMap
    ) -> LiquidationOpportunity | None:
        pool = await self._pools.read_pool(position.pool_address)
        hf = self._math.health_factor(position, prices, pool.liquidation_threshold)
        if not self._math.is_liquidatable(hf):
            return None

        ctx = self._math.context
        collateral_value = self._math.collateral_value(position, prices)
        debt_value = self._math.debt_value(position, prices)
        payout = ctx.multiply(debt_value, ctx.add(Decimal(1), pool.liquidation_bonus))
        profit = ctx.subtract(min(payout, collateral_value), debt_value)
        return LiquidationOpportunity(
            position=position,
            health_factor=hf,
            collateral_value=collateral_value,
            debt_value=debt_value,
            liquidation_bonus=pool.liquidation_bonus,
            potential_profit=profit,
            collateral_price=self._math.price_of(prices, position.collateral_asset),
            debt_price=self._math.price_of(prices, position.debt_asset),
        )

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def compute_seizure(
        self,
        debt_to_cover: Decimal,
        collateral_price: Decimal,
        debt_price: Decimal,
        liquidation_bonus: Decimal,
        available_collateral: Decimal | None = None,
    ) -> Seizure:
        """Collateral owed to a liquidator covering ``debt_to_cover``."""
        debt = to_non_negative(debt_to_cover, "debt_to_cover")
        c_price = to_non_negative(collateral_price, "collateral_price")
        d_price = to_non_negative(debt_price, "debt_price")
        bonus_rate = to_non_negative(liquidation_bonus, "liquidation_bonus")
        if c_price == 0:
            raise InvalidAmount("collateral_price must be positive")

        ctx = self._math.context
        base = ctx.divide(ctx.multiply(debt, d_price), c_price)
        bonus = ctx.multiply(base, bonus_rate)
        total = ctx.add(base, bonus)

        if available_collateral is not None and total > available_collateral:
            raise InsufficientCollateral(
                "Seizure exceeds available collateral",
                required=str(total),
                available=str(available_collateral),
            )
        return Seizure(base=base, bonus=bonus, total=total)

    async def propose_liquidation(
        self, position: Position, debt_to_cover: Decimal | None = None
    ) -> LiquidationProposal:
        """Size a liquidation of ``position`` at current prices."""
        if not position.is_active or not position.has_debt:
            raise PositionNotLiquidatable(
                "Position is not active or has no debt", position_id=position.id
            )

        pool = await self._pools.read_pool(position.pool_address)
        batch = await self._oracle.get_prices(
            [position.collateral_asset, position.debt_asset]
        )
        if batch.errors:
            raise next(iter(batch.errors.values()))

        hf = self._math.health_factor(position, batch.prices, pool.liquidation_threshold)
        if not self._math.is_liquidatable(hf):
            raise PositionNotLiquidatable(
                "Position is not eligible for liquidation",
                position_id=position.id,
                health_factor=str(hf),
            )

        amount = position.debt_amount if debt_to_cover is None else validate_amount(
            debt_to_cover, "debt_to_cover"
        )
        if amount > position.debt_amount:
            raise InvalidAmount(
                "debt_to_cover exceeds outstanding debt",
                debt_to_cover=str(amount),
                debt=str(position.debt_amount),
            )

        collateral_price = self._math.price_of(batch.prices, position.collateral_asset)
        debt_price = self._math.price_of(batch.prices, position.debt_asset)
        seizure = self.compute_seizure(
            amount,
            collateral_price,
            debt_price,
            pool.liquidation_bonus,
            available_collateral=position.collateral_amount,
        )

        proposal = LiquidationProposal(
            position_id=position.id,
            pool_address=position.pool_address,
            debt_to_cover=amount,
            collateral_to_seize=seizure.total,
            bonus_amount=seizure.bonus,
            collateral_price=collateral_price,
            debt_price=debt_price,
            health_factor=hf,
            is_full_liquidation=amount == position.debt_amount,
        )
        logger.info(
            "Liquidation proposal for %s: cover %s, seize %s (HF %s)",
            position.id,
            amount,
            seizure.total,
            hf,
        )
        return proposal

    def record_liquidation(
        self, proposal: LiquidationProposal, liquidator: str, transaction_ref: str
    ) -> LiquidationEvent:
        """Build the immutable event for a confirmed liquidation."""
        validate_address(liquidator, "liquidator")
        validate_address(transaction_ref, "transaction_ref")
        return LiquidationEvent(
            position_id=proposal.position_id,
            liquidator=liquidator,
            collateral_seized=proposal.collateral_to_seize,
            debt_repaid=proposal.debt_to_cover,
            bonus_amount=proposal.bonus_amount,
            transaction_ref=transaction_ref,
        )
