"""Chain state readers — one typed protocol per contract capability."""
from decimal import Decimal
from typing import Protocol

from ..models import AggregationMode, OracleResponse, Pool


class PoolReader(Protocol):
    """Reads lending pool configuration and liquidity totals."""

    async def read_pool(self, address: str) -> Pool: ...


class VaultReader(Protocol):
    """Reads the share/asset exchange rate of a vault token."""

    async def read_vault_exchange_rate(self, address: str) -> Decimal: ...


class OracleReader(Protocol):
    """Queries the price oracle contract."""

    async def query(self, asset_id: str, mode: AggregationMode) -> OracleResponse: ...
