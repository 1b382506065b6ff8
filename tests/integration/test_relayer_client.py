"""Integration tests for the relayer client — JSON-RPC fallback and result mapping."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lp_migration.config import RelayerConfig
from lp_migration.errors import RelayerError
from lp_migration.relayer import RelayerClient


@pytest.fixture()
def client() -> RelayerClient:
    return RelayerClient(
        RelayerConfig(
            endpoints=("https://relay1.example.com", "https://relay2.example.com"),
            timeout=5,
        )
    )


def _response(data: dict):
    response = AsyncMock()
    response.json = AsyncMock(return_value=data)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def _mock_session(post):
    mock_session = AsyncMock()
    mock_session.post = post
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestRpcCall:
    @pytest.mark.asyncio
    async def test_successful_call(self, client: RelayerClient) -> None:
        post = MagicMock(return_value=_response({"jsonrpc": "2.0", "result": {"txId": "abc"}}))
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                result = await client.rpc_call("lp_claimFees", [])

        assert result == {"txId": "abc"}
        payload = post.call_args.kwargs["json"]
        assert payload["method"] == "lp_claimFees"
        assert payload["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_fallback_on_connection_error(self, client: RelayerClient) -> None:
        post = MagicMock(
            side_effect=[ConnectionError("first down"), _response({"result": {"ok": True}})]
        )
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                result = await client.rpc_call("lp_claimFees", [])

        assert result == {"ok": True}
        assert client.current_rpc_index == 1

    @pytest.mark.asyncio
    async def test_rpc_error_not_resubmitted(self, client: RelayerClient) -> None:
        post = MagicMock(
            return_value=_response({"error": {"code": -32000, "message": "insufficient balance"}})
        )
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                result = await client.rpc_call("lp_addLiquidity", [])

        assert result["error"]["message"] == "insufficient balance"
        assert post.call_count == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, client: RelayerClient) -> None:
        post = MagicMock(side_effect=ConnectionError("down"))
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                with pytest.raises(RelayerError, match="All relayer endpoints failed"):
                    await client.rpc_call("lp_claimFees", [])


class TestLiquidityOperations:
    @pytest.mark.asyncio
    async def test_remove_liquidity_maps_amounts(self, client: RelayerClient, position_factory) -> None:
        post = MagicMock(
            return_value=_response(
                {"result": {"txId": "tx-9", "amounts": {"SOL": "30", "USDC": 5000}}}
            )
        )
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                result = await client.remove_liquidity(position_factory(), "0xUSER")

        assert result.success
        assert result.tx_id == "tx-9"
        assert result.amounts == {"SOL": 30.0, "USDC": 5000.0}
        params = post.call_args.kwargs["json"]["params"][0]
        assert params["position"]["pool_address"] == "pool-A"
        assert params["owner"] == "0xUSER"

    @pytest.mark.asyncio
    async def test_rejection_becomes_failed_result(self, client: RelayerClient) -> None:
        post = MagicMock(return_value=_response({"error": {"message": "pool paused"}}))
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                result = await client.add_liquidity("pool-B", {"SOL": 1.0}, "0xUSER")

        assert not result.success
        assert result.error == "pool paused"

    @pytest.mark.asyncio
    async def test_unreachable_relayer_becomes_failed_result(
        self, client: RelayerClient, position_factory
    ) -> None:
        post = MagicMock(side_effect=ConnectionError("down"))
        with patch("lp_migration.relayer.client.aiohttp.ClientSession", return_value=_mock_session(post)):
            with patch("lp_migration.relayer.client.aiohttp.TCPConnector"):
                result = await client.claim_fees(position_factory(), "0xUSER")

        assert not result.success
        assert "All relayer endpoints failed" in result.error
