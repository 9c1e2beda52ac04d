"""Pragma price oracle client with aggregation fallback and caching."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from decimal import ROUND_DOWN, Context
from typing import Any, Callable, Iterable

from ..config import OracleConfig
from ..errors import (
    InfrastructureError,
    InsufficientSources,
    NetworkTimeout,
    OracleError,
    OracleUnavailable,
    StalePrice,
    UnsupportedAsset,
    ZeroPrice,
)
from ..interfaces.chain import OracleReader
from ..models import AggregationMode, BatchPriceResult, OracleResponse, PriceQuote
from ..units import from_fixed_point
from .cache import PriceCache

logger = logging.getLogger(__name__)

_FALLBACK_MODES = (AggregationMode.MEDIAN, AggregationMode.MEAN)


def _specificity(error: OracleError) -> int:
    if isinstance(error, NetworkTimeout):
        return 1
    if isinstance(error, OracleUnavailable):
        return 0
    return 2


class PriceOracleClient:
    """Fetch validated prices, trying MEDIAN then MEAN aggregation.

    When both aggregations fail the last cached quote is served with
    ``degraded=True``; with nothing cached the most specific error is raised.
    """

    def __init__(
        self,
        reader: OracleReader,
        config: OracleConfig,
        cache: PriceCache | None = None,
        clock: Callable[[], float] = time.time,
        precision: int = 36,
    ) -> None:
        self._reader = reader
        self._config = config
        self._clock = clock
        self._cache = cache if cache is not None else PriceCache(config.cache_ttl, clock)
        self._context = Context(prec=precision, rounding=ROUND_DOWN)
        self._assets = {k.upper(): v for k, v in config.assets.items()}

    @property
    def cache(self) -> PriceCache:
        return self._cache

    @property
    def supported_assets(self) -> list[str]:
        return sorted(self._assets)

    def _asset_id(self, asset: str) -> str:
        asset_id = self._assets.get(asset)
        if asset_id is None:
            raise UnsupportedAsset(f"Unsupported asset: {asset}", asset=asset)
        return asset_id

    async def _fetch(self, asset_id: str, mode: AggregationMode) -> OracleResponse:
        try:
            return await asyncio.wait_for(
                self._reader.query(asset_id, mode), timeout=self._config.timeout
            )
        except asyncio.TimeoutError as e:
            raise NetworkTimeout(
                f"Oracle query timed out after {self._config.timeout}s",
                asset_id=asset_id,
                mode=mode.name,
            ) from e
        except (InfrastructureError, OSError) as e:
            raise OracleUnavailable(
                f"Oracle query failed: {e}", asset_id=asset_id, mode=mode.name
            ) from e

    def _validate(
        self,
        asset: str,
        response: OracleResponse,
        mode: AggregationMode,
        min_sources: int,
    ) -> PriceQuote:
        if response.price <= 0:
            raise ZeroPrice(f"Oracle returned zero price for {asset}", asset=asset)

        now = self._clock()
        age = now - response.last_updated
        if age > self._config.staleness_tolerance:
            raise StalePrice(
                f"Price for {asset} is stale ({age:.0f}s old)",
                asset=asset,
                age=age,
                tolerance=self._config.staleness_tolerance,
            )

        if response.num_sources < min_sources:
            raise InsufficientSources(
                f"Price for {asset} aggregated from {response.num_sources} sources, "
                f"need {min_sources}",
                asset=asset,
                num_sources=response.num_sources,
                min_sources=min_sources,
            )

        if response.expiration and response.expiration < now:
            raise StalePrice(
                f"Price for {asset} expired", asset=asset, expiration=response.expiration
            )

        return PriceQuote(
            asset=asset,
            price=from_fixed_point(response.price, response.decimals, self._context),
            decimals=response.decimals,
            raw_price=response.price,
            last_updated=response.last_updated,
            num_sources=response.num_sources,
            expiration=response.expiration,
            aggregation=mode,
        )

    async def get_price(
        self, asset: str, *, skip_cache: bool = False, min_sources: int | None = None
    ) -> PriceQuote:
        """Return a validated quote for ``asset``."""
        symbol = asset.upper()
        asset_id = self._asset_id(symbol)
        required = self._config.min_sources if min_sources is None else min_sources

        if not skip_cache:
            cached = self._cache.get(symbol)
            if cached is not None and cached.num_sources >= required:
                logger.debug("Cache hit for %s", symbol)
                return replace(cached, cached=True)

        failures: list[OracleError] = []
        for mode in _FALLBACK_MODES:
            try:
                response = await self._fetch(asset_id, mode)
                quote = self._validate(symbol, response, mode, required)
            except OracleError as e:
                logger.warning("%s aggregation failed for %s: %s", mode.name, symbol, e)
                failures.append(e)
                continue
            # Quotes accepted under a relaxed minimum never reach other callers.
            if quote.num_sources >= self._config.min_sources:
                self._cache.put(quote)
            return quote

        stale = self._cache.get_any(symbol)
        if stale is not None and stale.num_sources >= required:
            logger.warning(
                "Serving cached price for %s in degraded mode (updated at %d)",
                symbol,
                stale.last_updated,
            )
            return replace(stale, cached=True, degraded=True)

        # Ties go to the later aggregation.
        raise max(reversed(failures), key=_specificity)

    async def get_prices(
        self,
        assets: Iterable[str],
        *,
        skip_cache: bool = False,
        min_sources: int | None = None,
    ) -> BatchPriceResult:
        """Fetch several assets concurrently; failures are reported per asset."""
        symbols = list(dict.fromkeys(a.upper() for a in assets))
        results = await asyncio.gather(
            *(
                self.get_price(s, skip_cache=skip_cache, min_sources=min_sources)
                for s in symbols
            ),
            return_exceptions=True,
        )

        prices: dict[str, PriceQuote] = {}
        errors: dict[str, Exception] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                errors[symbol] = result
            else:
                prices[symbol] = result

        if errors:
            logger.warning(
                "Price fetch failed for %s", ", ".join(sorted(errors))
            )
        return BatchPriceResult(prices=prices, errors=errors)

    async def health_check(self) -> dict[str, Any]:
        """Probe the oracle with an uncached single-source query."""
        asset = self._config.probe_asset
        try:
            quote = await self.get_price(asset, skip_cache=True, min_sources=1)
        except OracleError as e:
            logger.error("Oracle health check failed: %s", e)
            return {"healthy": False, "asset": asset, "error": str(e), "code": e.code}
        return {
            "healthy": not quote.degraded,
            "asset": asset,
            "price": str(quote.price),
            "num_sources": quote.num_sources,
            "last_updated": quote.last_updated,
            "degraded": quote.degraded,
        }
