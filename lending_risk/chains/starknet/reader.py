"""Typed contract reads on top of :class:`StarknetClient`.

Implements the pool, vault and oracle reader protocols.
"""
from __future__ import annotations

import logging
from decimal import ROUND_DOWN, Context, Decimal

from ...config import AppConfig
from ...errors import ChainReadError, PoolNotFound
from ...models import AggregationMode, OracleResponse, Pool
from ...units import from_fixed_point, join_u256
from .client import StarknetClient

logger = logging.getLogger(__name__)

# Cairo enum variant indices used in calldata and return values.
_DATA_TYPE_SPOT_ENTRY = 0
_OPTION_SOME = 0


class StarknetChainReader:
    """Read Pragma prices, vToken exchange rates and pool totals."""

    def __init__(self, client: StarknetClient, config: AppConfig) -> None:
        self._client = client
        self._config = config
        self._oracle_address = config.oracle.address
        self._context = Context(prec=config.precision, rounding=ROUND_DOWN)

    # ------------------------------------------------------------------
    # Oracle
    # ------------------------------------------------------------------

    async def query(self, asset_id: str, mode: AggregationMode) -> OracleResponse:
        """Call ``get_data(DataType::SpotEntry(asset_id), mode)`` on the oracle."""
        felts = await self._client.call(
            self._oracle_address,
            "get_data",
            [_DATA_TYPE_SPOT_ENTRY, int(asset_id, 0), int(mode)],
        )
        return self._parse_pragma_response(felts)

    @staticmethod
    def _parse_pragma_response(felts: list[int]) -> OracleResponse:
        # price, decimals, last_updated_timestamp, num_sources_aggregated,
        # expiration_timestamp: Option<u64>
        if len(felts) < 5:
            raise ChainReadError(
                f"Malformed oracle response: expected at least 5 felts, got {len(felts)}"
            )
        price, decimals, last_updated, num_sources, option_tag = felts[:5]
        expiration = None
        if option_tag == _OPTION_SOME:
            if len(felts) < 6:
                raise ChainReadError("Oracle response is missing the expiration value")
            expiration = felts[5]
        return OracleResponse(
            price=price,
            decimals=decimals,
            last_updated=last_updated,
            num_sources=num_sources,
            expiration=expiration,
        )

    # ------------------------------------------------------------------
    # Vault
    # ------------------------------------------------------------------

    async def _read_u256(self, address: str, function_name: str) -> int:
        felts = await self._client.call(address, function_name)
        if len(felts) < 2:
            raise ChainReadError(
                f"Expected u256 from {function_name}, got {len(felts)} felts",
                contract=address,
            )
        return join_u256(felts[0], felts[1])

    async def read_vault_exchange_rate(self, address: str) -> Decimal:
        """Assets per share of an ERC-4626 vToken; 1 when nothing is minted."""
        total_assets = await self._read_u256(address, "total_assets")
        total_supply = await self._read_u256(address, "total_supply")
        if total_supply == 0:
            return Decimal(1)
        rate = self._context.divide(Decimal(total_assets), Decimal(total_supply))
        logger.debug("vToken %s exchange rate: %s", address, rate)
        return rate

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------

    async def read_pool(self, address: str) -> Pool:
        """Configured risk parameters merged with on-chain liquidity totals."""
        pool_cfg = self._config.pool_by_address(address)
        if pool_cfg is None:
            raise PoolNotFound(f"Pool not configured: {address}", pool=address)

        total_supplied = Decimal(0)
        total_borrowed = Decimal(0)
        if pool_cfg.vtoken_address:
            decimals = self._config.token_decimals.get(pool_cfg.debt_asset, 18)
            supplied_raw = await self._read_u256(pool_cfg.vtoken_address, "total_assets")
            borrowed_raw = await self._read_u256(pool_cfg.address, pool_cfg.debt_entrypoint)
            total_supplied = from_fixed_point(supplied_raw, decimals)
            total_borrowed = from_fixed_point(borrowed_raw, decimals)

        return Pool(
            address=pool_cfg.address,
            collateral_asset=pool_cfg.collateral_asset,
            debt_asset=pool_cfg.debt_asset,
            max_ltv=pool_cfg.max_ltv,
            liquidation_threshold=pool_cfg.liquidation_threshold,
            liquidation_bonus=pool_cfg.liquidation_bonus,
            total_supplied=total_supplied,
            total_borrowed=total_borrowed,
            vtoken_address=pool_cfg.vtoken_address,
            is_active=pool_cfg.is_active,
        )
