"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import pytest

from lending_risk.config import (
    AppConfig,
    ChainConfig,
    EmailConfig,
    MonitorConfig,
    NotificationsConfig,
    OracleConfig,
    PoolConfig,
    TelegramConfig,
    ThresholdsConfig,
)
from lending_risk.errors import PoolNotFound
from lending_risk.models import BatchPriceResult, Pool, Position, PriceQuote
from lending_risk.risk import RiskMath

POOL_ADDRESS = "0x04dcb4e9a2a5c7f3"
ORACLE_ADDRESS = "0x02a85bd616f912537c"
VTOKEN_ADDRESS = "0x0581a1b2c3d4e5f6"
NOW = 1_700_000_000


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_thresholds() -> ThresholdsConfig:
    return ThresholdsConfig()


@pytest.fixture()
def sample_pool_config() -> PoolConfig:
    return PoolConfig(
        address=POOL_ADDRESS,
        collateral_asset="ETH",
        debt_asset="USDC",
        max_ltv=Decimal("0.75"),
        liquidation_threshold=Decimal("0.80"),
        liquidation_bonus=Decimal("0.05"),
        vtoken_address=VTOKEN_ADDRESS,
    )


@pytest.fixture()
def sample_oracle_config() -> OracleConfig:
    return OracleConfig(address=ORACLE_ADDRESS)


@pytest.fixture()
def sample_app_config(
    sample_thresholds: ThresholdsConfig,
    sample_pool_config: PoolConfig,
    sample_oracle_config: OracleConfig,
) -> AppConfig:
    return AppConfig(
        monitor=MonitorConfig(interval_seconds=60, thresholds=sample_thresholds),
        oracle=sample_oracle_config,
        chain=ChainConfig(
            rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
            rpc_timeout=10,
            rpc_retries=1,
        ),
        pools={"eth_usdc": sample_pool_config},
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
            email=EmailConfig(enabled=False),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def risk_math() -> RiskMath:
    return RiskMath()


@pytest.fixture()
def sample_pool() -> Pool:
    return Pool(
        address=POOL_ADDRESS,
        collateral_asset="ETH",
        debt_asset="USDC",
        max_ltv=Decimal("0.75"),
        liquidation_threshold=Decimal("0.80"),
        liquidation_bonus=Decimal("0.05"),
        total_supplied=Decimal("1000000"),
        total_borrowed=Decimal("250000"),
    )


def make_position(
    position_id: str = "pos-1",
    collateral: str = "1.5",
    debt: str = "1000",
    **overrides,
) -> Position:
    fields = dict(
        id=position_id,
        user_id="user-1",
        pool_address=POOL_ADDRESS,
        collateral_asset="ETH",
        collateral_amount=collateral,
        debt_asset="USDC",
        debt_amount=debt,
    )
    fields.update(overrides)
    return Position(**fields)


def make_quote(asset: str, price: str, num_sources: int = 5) -> PriceQuote:
    return PriceQuote(
        asset=asset,
        price=Decimal(price),
        decimals=8,
        raw_price=int(Decimal(price) * 10**8),
        last_updated=NOW,
        num_sources=num_sources,
    )


@pytest.fixture()
def sample_position() -> Position:
    """1.5 ETH collateral against 1000 USDC debt."""
    return make_position()


@pytest.fixture()
def eth_usdc_prices() -> dict[str, Decimal]:
    return {"ETH": Decimal("2500"), "USDC": Decimal("1")}


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class InMemoryPositionStore:
    def __init__(self, positions: Iterable[Position] = ()) -> None:
        self.positions = {p.id: p for p in positions}
        self.saved: list[Position] = []

    async def load_active_positions(self) -> list[Position]:
        return [p for p in self.positions.values() if p.is_active]

    async def save_position(self, position: Position) -> None:
        self.positions[position.id] = position
        self.saved.append(position)


class StaticPriceSource:
    """Serves fixed prices; assets listed in ``failing`` raise their error."""

    def __init__(
        self,
        prices: dict[str, str],
        failing: dict[str, Exception] | None = None,
    ) -> None:
        self.prices = dict(prices)
        self.failing = dict(failing or {})
        self.calls: list[list[str]] = []

    async def get_price(self, asset, *, skip_cache=False, min_sources=None) -> PriceQuote:
        if asset in self.failing:
            raise self.failing[asset]
        return make_quote(asset, self.prices[asset])

    async def get_prices(
        self, assets, *, skip_cache=False, min_sources=None
    ) -> BatchPriceResult:
        assets = list(assets)
        self.calls.append(assets)
        prices: dict[str, PriceQuote] = {}
        errors: dict[str, Exception] = {}
        for asset in assets:
            try:
                prices[asset] = await self.get_price(asset)
            except Exception as e:
                errors[asset] = e
        return BatchPriceResult(prices=prices, errors=errors)


class StaticPoolReader:
    def __init__(self, pools: Iterable[Pool]) -> None:
        self.pools = {p.address: p for p in pools}

    async def read_pool(self, address: str) -> Pool:
        try:
            return self.pools[address]
        except KeyError:
            raise PoolNotFound(f"Pool not found: {address}") from None


@pytest.fixture()
def price_source() -> StaticPriceSource:
    return StaticPriceSource({"ETH": "2500", "USDC": "1"})


@pytest.fixture()
def pool_reader(sample_pool: Pool) -> StaticPoolReader:
    return StaticPoolReader([sample_pool])


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      interval_seconds: 30
      thresholds:
        warning: 1.2
        critical: 1.05
        liquidation: 1.0
    oracle:
      address: "0x02a85bd616f912537c"
      staleness_tolerance: 300
      cache_ttl: 60
      min_sources: 3
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    pools:
      eth_usdc:
        address: "0x04dcb4e9a2a5c7f3"
        collateral_asset: eth
        debt_asset: usdc
        max_ltv: 0.75
        liquidation_threshold: 0.8
        liquidation_bonus: 0.05
    token_decimals: {USDC: 6}
    storage:
      positions_file: positions.yaml
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
