"""Pool lookup with periodic refresh of on-chain liquidity totals."""
from __future__ import annotations

import logging
import time
from typing import Callable

from ..config import AppConfig
from ..errors import PoolNotFound, RiskEngineError
from ..interfaces.chain import PoolReader
from ..models import Pool

logger = logging.getLogger(__name__)


def _pools_from_config(config: AppConfig) -> dict[str, Pool]:
    return {
        cfg.address.lower(): Pool(
            address=cfg.address,
            collateral_asset=cfg.collateral_asset,
            debt_asset=cfg.debt_asset,
            max_ltv=cfg.max_ltv,
            liquidation_threshold=cfg.liquidation_threshold,
            liquidation_bonus=cfg.liquidation_bonus,
            vtoken_address=cfg.vtoken_address,
            is_active=cfg.is_active,
        )
        for cfg in config.pools.values()
    }


class PoolRegistry:
    """Serve pools from configuration, refreshed through a chain reader.

    A failed refresh keeps the previous snapshot; risk parameters always come
    from configuration.
    """

    def __init__(
        self,
        config: AppConfig,
        reader: PoolReader | None = None,
        refresh_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pools = _pools_from_config(config)
        self._reader = reader
        self._refresh_seconds = refresh_seconds
        self._clock = clock
        self._refreshed_at: dict[str, float] = {}

    @property
    def pools(self) -> list[Pool]:
        return list(self._pools.values())

    async def read_pool(self, address: str) -> Pool:
        key = address.lower()
        pool = self._pools.get(key)
        if pool is None:
            raise PoolNotFound(f"Pool not found: {address}", pool=address)

        if self._reader is None:
            return pool

        now = self._clock()
        last = self._refreshed_at.get(key)
        if last is not None and now - last < self._refresh_seconds:
            return pool

        try:
            pool = await self._reader.read_pool(pool.address)
        except RiskEngineError as e:
            logger.warning("Pool refresh failed for %s, using last snapshot: %s", address, e)
            return pool

        self._pools[key] = pool
        self._refreshed_at[key] = now
        return pool
