"""Data models — all frozen (immutable)."""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum

from .errors import InvalidAmount
from .units import to_decimal


class PositionStatus(str, Enum):
    ACTIVE = "active"
    LIQUIDATED = "liquidated"
    CLOSED = "closed"


class AggregationMode(int, Enum):
    """Pragma aggregation modes, encoded as the contract expects them."""

    MEDIAN = 0
    MEAN = 1


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    LIQUIDATABLE = "liquidatable"


class MonitorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class Position:
    """A user's exposure in one pool."""

    id: str
    user_id: str
    pool_address: str
    collateral_asset: str
    collateral_amount: Decimal
    debt_asset: str
    debt_amount: Decimal
    health_factor: Decimal | None = None
    status: PositionStatus = PositionStatus.ACTIVE

    def __post_init__(self) -> None:
        collateral = to_decimal(self.collateral_amount, "collateral_amount")
        debt = to_decimal(self.debt_amount, "debt_amount")
        if collateral < 0:
            raise InvalidAmount(
                "collateral_amount must not be negative", position_id=self.id
            )
        if debt < 0:
            raise InvalidAmount("debt_amount must not be negative", position_id=self.id)
        object.__setattr__(self, "collateral_amount", collateral)
        object.__setattr__(self, "debt_amount", debt)
        object.__setattr__(self, "status", PositionStatus(self.status))
        if debt == 0:
            object.__setattr__(self, "health_factor", None)
        elif self.health_factor is not None:
            object.__setattr__(
                self,
                "health_factor",
                to_decimal(self.health_factor, "health_factor"),
            )

    @property
    def has_debt(self) -> bool:
        return self.debt_amount > 0

    @property
    def is_active(self) -> bool:
        return self.status is PositionStatus.ACTIVE

    def with_health_factor(self, health_factor: Decimal | None) -> Position:
        """Return a copy carrying a recomputed health factor."""
        return replace(self, health_factor=health_factor)


@dataclass(frozen=True)
class Pool:
    """Collateral/debt pair configuration plus liquidity totals."""

    address: str
    collateral_asset: str
    debt_asset: str
    max_ltv: Decimal
    liquidation_threshold: Decimal
    liquidation_bonus: Decimal
    total_supplied: Decimal = Decimal(0)
    total_borrowed: Decimal = Decimal(0)
    vtoken_address: str = ""
    is_active: bool = True

    def __post_init__(self) -> None:
        for name in (
            "max_ltv",
            "liquidation_threshold",
            "liquidation_bonus",
            "total_supplied",
            "total_borrowed",
        ):
            object.__setattr__(self, name, to_decimal(getattr(self, name), name))

    @property
    def available_liquidity(self) -> Decimal:
        return self.total_supplied - self.total_borrowed


@dataclass(frozen=True)
class OracleResponse:
    """Raw tuple returned by the price oracle contract."""

    price: int
    decimals: int
    last_updated: int
    num_sources: int
    expiration: int | None = None


@dataclass(frozen=True)
class PriceQuote:
    """Validated price for one asset."""

    asset: str
    price: Decimal
    decimals: int
    raw_price: int
    last_updated: int
    num_sources: int
    expiration: int | None = None
    aggregation: AggregationMode = AggregationMode.MEDIAN
    cached: bool = False
    degraded: bool = False

    def age(self, now: float | None = None) -> float:
        current = time.time() if now is None else now
        return current - self.last_updated


@dataclass(frozen=True)
class Seizure:
    """Collateral split produced by a liquidation of ``debt_to_cover``."""

    base: Decimal
    bonus: Decimal
    total: Decimal


@dataclass(frozen=True)
class LiquidationOpportunity:
    position: Position
    health_factor: Decimal
    collateral_value: Decimal
    debt_value: Decimal
    liquidation_bonus: Decimal
    potential_profit: Decimal
    collateral_price: Decimal
    debt_price: Decimal


@dataclass(frozen=True)
class LiquidationProposal:
    """Amounts an external executor needs to submit a liquidation."""

    position_id: str
    pool_address: str
    debt_to_cover: Decimal
    collateral_to_seize: Decimal
    bonus_amount: Decimal
    collateral_price: Decimal
    debt_price: Decimal
    health_factor: Decimal
    is_full_liquidation: bool


@dataclass(frozen=True)
class LiquidationEvent:
    position_id: str
    liquidator: str
    collateral_seized: Decimal
    debt_repaid: Decimal
    bonus_amount: Decimal
    transaction_ref: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Alert:
    """Health alert raised by the position monitor."""

    severity: HealthStatus
    priority: str
    position_id: str
    user_id: str
    pool_address: str
    collateral_asset: str
    debt_asset: str
    health_factor: Decimal
    threshold: Decimal
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class BatchPriceResult:
    """Outcome of a batch price fetch: partial prices plus per-asset errors."""

    prices: dict[str, PriceQuote]
    errors: dict[str, Exception]

    @property
    def ok(self) -> bool:
        return not self.errors
