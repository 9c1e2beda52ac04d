"""Starknet JSON-RPC client with endpoint fallback and retries."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Sequence

import aiohttp
import backoff
import certifi
from eth_utils import keccak

from ...config import ChainConfig
from ...errors import ChainReadError

logger = logging.getLogger(__name__)

_MASK_250 = (1 << 250) - 1


def get_selector_from_name(name: str) -> int:
    """Entry point selector: keccak256 of the function name truncated to 250 bits."""
    return int.from_bytes(keccak(text=name), "big") & _MASK_250


def _to_felt_hex(value: int | str) -> str:
    if isinstance(value, str):
        value = int(value, 16) if value.startswith("0x") else int(value)
    return hex(value)


class StarknetClient:
    """Starknet RPC client with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.retries = max(1, config.rpc_retries)
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: Any) -> Any:
        """Make an RPC call; every endpoint is tried on each attempt."""

        @backoff.on_exception(
            backoff.expo,
            ChainReadError,
            max_tries=self.retries,
            jitter=backoff.full_jitter,
            on_backoff=lambda details: logger.warning(
                "RPC %s failed (attempt %d), backing off %.1fs",
                method,
                details["tries"],
                details["wait"],
            ),
        )
        async def _call_with_retry() -> Any:
            return await self._call_endpoints(method, params)

        return await _call_with_retry()

    async def _call_endpoints(self, method: str, params: Any) -> Any:
        if not self.endpoints:
            raise ChainReadError("No RPC endpoints configured")

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise ChainReadError(
                                f"RPC Error: {result['error']}", method=method
                            )

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise ChainReadError(
            f"All RPC endpoints failed. Last error: {last_error}", method=method
        )

    async def call(
        self,
        contract_address: str,
        function_name: str,
        calldata: Sequence[int | str] = (),
        block_id: str = "latest",
    ) -> list[int]:
        """Call a view function and return the raw felts as integers."""
        request = {
            "contract_address": contract_address,
            "entry_point_selector": hex(get_selector_from_name(function_name)),
            "calldata": [_to_felt_hex(v) for v in calldata],
        }
        result = await self.rpc_call(
            "starknet_call", {"request": request, "block_id": block_id}
        )
        if not isinstance(result, list):
            raise ChainReadError(
                f"Unexpected starknet_call result for {function_name}: {result!r}",
                contract=contract_address,
            )
        return [int(felt, 16) for felt in result]
