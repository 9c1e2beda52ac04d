"""Integration tests for the Starknet client — RPC fallback, retries and call encoding."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lending_risk.chains.starknet.client import StarknetClient, get_selector_from_name
from lending_risk.config import ChainConfig
from lending_risk.errors import ChainReadError

CLIENT_MODULE = "lending_risk.chains.starknet.client"


@pytest.fixture()
def client() -> StarknetClient:
    return StarknetClient(
        ChainConfig(
            rpc_endpoints=(
                "https://rpc1.example.com",
                "https://rpc2.example.com",
                "https://rpc3.example.com",
            ),
            rpc_timeout=5,
            rpc_retries=1,
        )
    )


def _response(data: dict) -> AsyncMock:
    response = AsyncMock()
    response.json = AsyncMock(return_value=data)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def _mock_session(response_data: dict | None = None, error: Exception | None = None):
    """Create a mock aiohttp session that returns given data or raises error."""
    mock_session = AsyncMock()
    if error:
        mock_session.post = MagicMock(side_effect=error)
    else:
        mock_session.post = MagicMock(return_value=_response(response_data or {}))
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestSelector:
    def test_known_selector(self) -> None:
        assert get_selector_from_name("transfer") == int(
            "0x83afd3f4caedc6eebf44246fe54e38c95e3179a5ec9ea81740eca5b482d12e", 16
        )

    def test_fits_in_250_bits(self) -> None:
        for name in ("get_data", "total_assets", "total_supply", "total_debt"):
            assert 0 < get_selector_from_name(name) < 2**250


class TestRpcCall:
    @pytest.mark.asyncio
    async def test_successful_call(self, client: StarknetClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": ["0x1"]})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                result = await client.rpc_call("starknet_call", {})

        assert result == ["0x1"]
        payload = mock_session.post.call_args[1]["json"]
        assert payload["method"] == "starknet_call"
        assert payload["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_rpc_error_raises(self, client: StarknetClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "error": {"code": 21, "message": "Invalid message selector"}}
        )

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(ChainReadError, match="All RPC endpoints failed"):
                    await client.rpc_call("starknet_call", {})

        assert mock_session.post.call_count == 3

    @pytest.mark.asyncio
    async def test_fallback_on_connection_error(self, client: StarknetClient) -> None:
        """When the first endpoint fails, the next one is tried and remembered."""
        success = _response({"jsonrpc": "2.0", "result": ["0x2"]})
        call_count = 0

        def side_effect(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise ConnectionError("first endpoint down")
            return success

        mock_session = _mock_session()
        mock_session.post = MagicMock(side_effect=side_effect)

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                result = await client.rpc_call("starknet_call", {})

        assert result == ["0x2"]
        assert client.current_rpc_index == 1
        assert mock_session.post.call_args[0][0] == "https://rpc2.example.com"

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, client: StarknetClient) -> None:
        mock_session = _mock_session(error=ConnectionError("down"))

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(ChainReadError, match="All RPC endpoints failed"):
                    await client.rpc_call("starknet_call", {})

    @pytest.mark.asyncio
    async def test_no_endpoints(self) -> None:
        client = StarknetClient(ChainConfig(rpc_endpoints=(), rpc_retries=1))
        with pytest.raises(ChainReadError, match="No RPC endpoints"):
            await client.rpc_call("starknet_call", {})

    @pytest.mark.asyncio
    async def test_retries_after_full_round_fails(self) -> None:
        client = StarknetClient(
            ChainConfig(rpc_endpoints=("https://only.example.com",), rpc_retries=2)
        )
        success = _response({"jsonrpc": "2.0", "result": ["0x3"]})
        mock_session = _mock_session()
        mock_session.post = MagicMock(side_effect=[ConnectionError("blip"), success])

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                result = await client.rpc_call("starknet_call", {})

        assert result == ["0x3"]
        assert mock_session.post.call_count == 2


class TestCall:
    @pytest.mark.asyncio
    async def test_encodes_request_and_parses_felts(self, client: StarknetClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": ["0x10", "0x0"]})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                result = await client.call("0xabc", "total_assets", [0, 255, "0x1f"])

        assert result == [16, 0]
        params = mock_session.post.call_args[1]["json"]["params"]
        assert params["block_id"] == "latest"
        assert params["request"]["contract_address"] == "0xabc"
        assert params["request"]["entry_point_selector"] == hex(
            get_selector_from_name("total_assets")
        )
        assert params["request"]["calldata"] == ["0x0", "0xff", "0x1f"]

    @pytest.mark.asyncio
    async def test_unexpected_result_raises(self, client: StarknetClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": {"unexpected": True}})

        with patch(f"{CLIENT_MODULE}.aiohttp.ClientSession", return_value=mock_session):
            with patch(f"{CLIENT_MODULE}.aiohttp.TCPConnector"):
                with pytest.raises(ChainReadError, match="Unexpected starknet_call result"):
                    await client.call("0xabc", "total_assets")
