"""Safety guards for user operations.

Each guard either returns quietly or raises a :class:`SafetyError` subclass.
They are pure: callers pass in the pool snapshot and prices they want checked.
"""
from __future__ import annotations

from decimal import Decimal

from ..errors import (
    HealthFactorBelowOne,
    InsufficientCollateral,
    InsufficientLiquidity,
    LTVExceeded,
    PoolNotActive,
)
from ..models import Pool, Position
from .risk_math import PriceMap, RiskMath
from .validation import validate_amount


def check_pool_invariants(pool: Pool) -> None:
    if pool.liquidation_threshold < pool.max_ltv:
        raise LTVExceeded(
            "Pool liquidation threshold is below max LTV",
            pool=pool.address,
            max_ltv=str(pool.max_ltv),
            liquidation_threshold=str(pool.liquidation_threshold),
        )
    if pool.total_borrowed > pool.total_supplied:
        raise InsufficientLiquidity(
            "Pool has borrowed more than supplied",
            pool=pool.address,
            total_supplied=str(pool.total_supplied),
            total_borrowed=str(pool.total_borrowed),
        )


def check_borrow(
    math: RiskMath,
    position: Position,
    pool: Pool,
    prices: PriceMap,
    amount: Decimal,
) -> Decimal:
    """Validate borrowing ``amount`` more; returns the resulting total debt."""
    if not pool.is_active:
        raise PoolNotActive("Pool is not active", pool=pool.address)
    requested = validate_amount(amount)
    if requested > pool.available_liquidity:
        raise InsufficientLiquidity(
            "Borrow exceeds available pool liquidity",
            requested=str(requested),
            available=str(pool.available_liquidity),
        )

    limit = math.max_borrowable(
        position.collateral_amount,
        math.price_of(prices, position.collateral_asset),
        math.price_of(prices, position.debt_asset),
        pool.max_ltv,
    )
    new_debt = math.context.add(position.debt_amount, requested)
    if new_debt > limit:
        raise LTVExceeded(
            "Borrow would exceed max LTV",
            requested=str(requested),
            new_debt=str(new_debt),
            max_borrowable=str(limit),
            max_ltv=str(pool.max_ltv),
        )
    return new_debt


def check_withdraw(
    math: RiskMath,
    position: Position,
    pool: Pool,
    prices: PriceMap,
    amount: Decimal,
) -> Decimal:
    """Validate withdrawing ``amount`` collateral; returns the remaining collateral."""
    requested = validate_amount(amount)
    if requested > position.collateral_amount:
        raise InsufficientCollateral(
            "Withdraw exceeds deposited collateral",
            requested=str(requested),
            available=str(position.collateral_amount),
        )

    limit = math.max_withdrawable(position, prices, pool.liquidation_threshold)
    if requested > limit:
        raise HealthFactorBelowOne(
            "Withdraw would push health factor below 1",
            requested=str(requested),
            max_withdrawable=str(limit),
        )
    return math.context.subtract(position.collateral_amount, requested)
