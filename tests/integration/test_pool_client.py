"""Integration tests for the pool metrics client — endpoint fallback and parsing."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lp_migration.config import PoolQueryConfig
from lp_migration.errors import PoolQueryError
from lp_migration.pools import HttpPoolQuery


@pytest.fixture()
def client() -> HttpPoolQuery:
    return HttpPoolQuery(
        PoolQueryConfig(
            endpoints=("https://pools1.example.com/", "https://pools2.example.com"),
            timeout=5,
        )
    )


def _response(data: dict, status: int = 200):
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=data)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def _mock_session(get):
    mock_session = AsyncMock()
    mock_session.get = get
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


POOL = {
    "address": "pool-B",
    "pair": "SOL/USDC",
    "apr": "11.5",
    "tvl": 2500000,
    "volume24h": 1500000,
    "feeTier": 0.0025,
}


class TestGetPoolMetrics:
    @pytest.mark.asyncio
    async def test_parses_wrapped_pool(self, client: HttpPoolQuery) -> None:
        get = MagicMock(return_value=_response({"pool": POOL}))
        with patch("lp_migration.pools.client.aiohttp.ClientSession", return_value=_mock_session(get)):
            with patch("lp_migration.pools.client.aiohttp.TCPConnector"):
                metrics = await client.get_pool_metrics("pool-B")

        assert metrics.address == "pool-B"
        assert metrics.apr == 11.5
        assert get.call_args.args[0] == "https://pools1.example.com/pools/pool-B"

    @pytest.mark.asyncio
    async def test_fallback_on_http_error(self, client: HttpPoolQuery) -> None:
        get = MagicMock(side_effect=[_response({}, status=503), _response(POOL)])
        with patch("lp_migration.pools.client.aiohttp.ClientSession", return_value=_mock_session(get)):
            with patch("lp_migration.pools.client.aiohttp.TCPConnector"):
                metrics = await client.get_pool_metrics("pool-B")

        assert metrics.tvl == 2_500_000.0
        assert client.current_endpoint_index == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, client: HttpPoolQuery) -> None:
        get = MagicMock(side_effect=ConnectionError("down"))
        with patch("lp_migration.pools.client.aiohttp.ClientSession", return_value=_mock_session(get)):
            with patch("lp_migration.pools.client.aiohttp.TCPConnector"):
                with pytest.raises(PoolQueryError, match="All pool endpoints failed"):
                    await client.get_pool_metrics("pool-B")

    @pytest.mark.asyncio
    async def test_no_endpoints(self) -> None:
        with pytest.raises(PoolQueryError):
            await HttpPoolQuery(PoolQueryConfig()).get_pool_metrics("pool-B")


class TestFindPoolsForPair:
    @pytest.mark.asyncio
    async def test_skips_entries_without_address(self, client: HttpPoolQuery) -> None:
        get = MagicMock(return_value=_response({"pools": [POOL, {"apr": 3.0}]}))
        with patch("lp_migration.pools.client.aiohttp.ClientSession", return_value=_mock_session(get)):
            with patch("lp_migration.pools.client.aiohttp.TCPConnector"):
                pools = await client.find_pools_for_pair("SOL", "USDC")

        assert [p.address for p in pools] == ["pool-B"]
        assert get.call_args.kwargs["params"] == {"token_x": "SOL", "token_y": "USDC"}

    @pytest.mark.asyncio
    async def test_empty_listing(self, client: HttpPoolQuery) -> None:
        get = MagicMock(return_value=_response({}))
        with patch("lp_migration.pools.client.aiohttp.ClientSession", return_value=_mock_session(get)):
            with patch("lp_migration.pools.client.aiohttp.TCPConnector"):
                assert await client.find_pools_for_pair("SOL", "USDC") == []
