"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Pragma pair identifiers (felt252 encoding of "<ASSET>/USD").
DEFAULT_ASSET_IDENTIFIERS: dict[str, str] = {
    "ETH": "19514442401534788",
    "BTC": "18669995996566340",
    "USDC": "6148333044652921668",
    "USDT": "6148333044652922708",
    "STRK": "6004514686061859652",
    "DAI": "19212080998863684",
}

DEFAULT_TOKEN_DECIMALS: dict[str, int] = {
    "ETH": 18,
    "BTC": 8,
    "USDC": 6,
    "USDT": 6,
    "STRK": 18,
    "DAI": 18,
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThresholdsConfig:
    warning: Decimal = Decimal("1.2")
    critical: Decimal = Decimal("1.05")
    liquidation: Decimal = Decimal("1.0")


@dataclass(frozen=True)
class MonitorConfig:
    interval_seconds: int = 60
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    notify_timeout: float = 10.0


@dataclass(frozen=True)
class OracleConfig:
    address: str = ""
    staleness_tolerance: int = 300
    cache_ttl: float = 60.0
    min_sources: int = 3
    timeout: float = 10.0
    probe_asset: str = "ETH"
    assets: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ASSET_IDENTIFIERS)
    )


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    rpc_retries: int = 3


@dataclass(frozen=True)
class PoolConfig:
    address: str = ""
    collateral_asset: str = ""
    debt_asset: str = ""
    max_ltv: Decimal = Decimal("0.75")
    liquidation_threshold: Decimal = Decimal("0.80")
    liquidation_bonus: Decimal = Decimal("0.05")
    vtoken_address: str = ""
    debt_entrypoint: str = "total_debt"
    is_active: bool = True


@dataclass(frozen=True)
class StorageConfig:
    positions_file: str = "positions.yaml"


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    pools: dict[str, PoolConfig] = field(default_factory=dict)
    token_decimals: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_TOKEN_DECIMALS)
    )
    precision: int = 36
    storage: StorageConfig = field(default_factory=StorageConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def pool_by_address(self, address: str) -> PoolConfig | None:
        for pool in self.pools.values():
            if pool.address.lower() == address.lower():
                return pool
        return None


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _decimal(raw: Any, default: str) -> Decimal:
    # str() first so YAML floats like 0.8 stay 0.8 rather than 0.8000000000000000444
    return Decimal(str(raw)) if raw is not None else Decimal(default)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_thresholds(raw: dict[str, Any]) -> ThresholdsConfig:
    return ThresholdsConfig(
        warning=_decimal(raw.get("warning"), "1.2"),
        critical=_decimal(raw.get("critical"), "1.05"),
        liquidation=_decimal(raw.get("liquidation"), "1.0"),
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        interval_seconds=int(raw.get("interval_seconds", 60)),
        thresholds=_build_thresholds(raw.get("thresholds", {})),
        notify_timeout=float(raw.get("notify_timeout", 10.0)),
    )


def _build_oracle(raw: dict[str, Any]) -> OracleConfig:
    assets = raw.get("assets")
    return OracleConfig(
        address=raw.get("address", ""),
        staleness_tolerance=int(raw.get("staleness_tolerance", 300)),
        cache_ttl=float(raw.get("cache_ttl", 60.0)),
        min_sources=int(raw.get("min_sources", 3)),
        timeout=float(raw.get("timeout", 10.0)),
        probe_asset=str(raw.get("probe_asset", "ETH")).upper(),
        assets=(
            {str(k).upper(): str(v) for k, v in assets.items()}
            if assets
            else dict(DEFAULT_ASSET_IDENTIFIERS)
        ),
    )


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=tuple(e for e in raw.get("rpc_endpoints", []) if e),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        rpc_retries=int(raw.get("rpc_retries", 3)),
    )


def _build_pools(raw: dict[str, Any]) -> dict[str, PoolConfig]:
    pools: dict[str, PoolConfig] = {}
    for name, cfg in raw.items():
        pools[name] = PoolConfig(
            address=cfg.get("address", ""),
            collateral_asset=str(cfg.get("collateral_asset", "")).upper(),
            debt_asset=str(cfg.get("debt_asset", "")).upper(),
            max_ltv=_decimal(cfg.get("max_ltv"), "0.75"),
            liquidation_threshold=_decimal(cfg.get("liquidation_threshold"), "0.80"),
            liquidation_bonus=_decimal(cfg.get("liquidation_bonus"), "0.05"),
            vtoken_address=cfg.get("vtoken_address", ""),
            debt_entrypoint=cfg.get("debt_entrypoint", "total_debt"),
            is_active=bool(cfg.get("is_active", True)),
        )
    return pools


def _build_token_decimals(raw: dict[str, Any] | None) -> dict[str, int]:
    decimals = dict(DEFAULT_TOKEN_DECIMALS)
    for symbol, value in (raw or {}).items():
        decimals[str(symbol).upper()] = int(value)
    return decimals


def _build_storage(raw: dict[str, Any]) -> StorageConfig:
    return StorageConfig(positions_file=raw.get("positions_file", "positions.yaml"))


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=tg.get("chat_id", ""),
        ),
        email=EmailConfig(
            enabled=bool(em.get("enabled", False)),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor", {})),
        oracle=_build_oracle(raw.get("oracle", {})),
        chain=_build_chain(raw.get("chain", {})),
        pools=_build_pools(raw.get("pools", {})),
        token_decimals=_build_token_decimals(raw.get("token_decimals")),
        precision=int(raw.get("precision", 36)),
        storage=_build_storage(raw.get("storage", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.pools:
        raise ValueError("At least one pool must be configured")

    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    if cfg.precision < 28:
        raise ValueError("precision must be at least 28 significant digits")

    t = cfg.monitor.thresholds
    if not (0 < t.liquidation < t.critical < t.warning):
        raise ValueError(
            "Thresholds must satisfy 0 < liquidation < critical < warning"
        )
    if cfg.monitor.interval_seconds <= 0:
        raise ValueError("monitor.interval_seconds must be positive")
    if cfg.monitor.notify_timeout <= 0:
        raise ValueError("monitor.notify_timeout must be positive")

    o = cfg.oracle
    if o.staleness_tolerance <= 0 or o.cache_ttl <= 0 or o.timeout <= 0:
        raise ValueError("Oracle staleness_tolerance, cache_ttl and timeout must be positive")
    if o.min_sources < 1:
        raise ValueError("oracle.min_sources must be at least 1")
    for symbol, pair_id in o.assets.items():
        try:
            int(pair_id, 0)
        except (TypeError, ValueError):
            raise ValueError(
                f"Oracle asset '{symbol}' has an invalid pair id: {pair_id!r}"
            ) from None

    for name, pool in cfg.pools.items():
        if not pool.address:
            raise ValueError(f"Pool '{name}' has no address")
        for asset in (pool.collateral_asset, pool.debt_asset):
            if asset not in o.assets:
                raise ValueError(f"Pool '{name}' references unknown asset '{asset}'")
        if not (0 <= pool.max_ltv <= 1):
            raise ValueError(f"Pool '{name}' max_ltv must be within [0, 1]")
        if not (0 < pool.liquidation_threshold <= 1):
            raise ValueError(f"Pool '{name}' liquidation_threshold must be within (0, 1]")
        if pool.liquidation_threshold < pool.max_ltv:
            raise ValueError(
                f"Pool '{name}' liquidation_threshold must be >= max_ltv"
            )
        if not (0 <= pool.liquidation_bonus <= 1):
            raise ValueError(f"Pool '{name}' liquidation_bonus must be within [0, 1]")
