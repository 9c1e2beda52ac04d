"""Price source protocol — what the scanner and monitor need from the oracle."""
from typing import Iterable, Protocol

from ..models import BatchPriceResult, PriceQuote


class PriceSource(Protocol):
    """Abstract interface for fetching validated asset prices."""

    async def get_price(
        self, asset: str, *, skip_cache: bool = False, min_sources: int | None = None
    ) -> PriceQuote: ...

    async def get_prices(
        self,
        assets: Iterable[str],
        *,
        skip_cache: bool = False,
        min_sources: int | None = None,
    ) -> BatchPriceResult: ...
