"""Wire the engine's components from an :class:`AppConfig`."""
from __future__ import annotations

from dataclasses import dataclass

from .chains.starknet import StarknetChainReader, StarknetClient
from .config import AppConfig
from .interfaces.notifier import Notifier
from .notifications import EmailNotifier, TelegramNotifier
from .oracles import PriceCache, PriceOracleClient
from .risk import RiskMath
from .services import LiquidationScanner, PoolRegistry, PositionMonitor
from .storage import YamlPositionStore


@dataclass
class Engine:
    oracle: PriceOracleClient
    pools: PoolRegistry
    store: YamlPositionStore
    math: RiskMath
    monitor: PositionMonitor
    scanner: LiquidationScanner


def build_notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    if config.notifications.email.enabled:
        notifiers.append(EmailNotifier(config.notifications.email))
    return notifiers


def build_engine(config: AppConfig) -> Engine:
    client = StarknetClient(config.chain)
    reader = StarknetChainReader(client, config)
    math = RiskMath(config.precision)
    oracle = PriceOracleClient(
        reader,
        config.oracle,
        cache=PriceCache(config.oracle.cache_ttl),
        precision=config.precision,
    )
    pools = PoolRegistry(config, reader)
    store = YamlPositionStore(config.storage.positions_file)
    monitor = PositionMonitor(
        store, oracle, pools, build_notifiers(config), math, config.monitor
    )
    scanner = LiquidationScanner(store, oracle, pools, math)
    return Engine(
        oracle=oracle,
        pools=pools,
        store=store,
        math=math,
        monitor=monitor,
        scanner=scanner,
    )
