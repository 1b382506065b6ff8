"""HTTP pool metrics client with endpoint fallback."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import PoolQueryConfig
from ..errors import PoolQueryError
from ..models import PoolMetrics
from ..parser import parse_pool_metrics

logger = logging.getLogger(__name__)


class HttpPoolQuery:
    """Query pool metrics from an indexer API, falling back across endpoints."""

    def __init__(self, config: PoolQueryConfig) -> None:
        self.endpoints = [e.rstrip("/") for e in config.endpoints]
        self.timeout = config.timeout
        self.current_endpoint_index = 0

    async def _get_json(
        self, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """GET ``path`` from the first endpoint that answers with HTTP 200."""
        if not self.endpoints:
            raise PoolQueryError("No pool query endpoints configured")

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            idx = (self.current_endpoint_index + attempt) % len(self.endpoints)
            url = f"{self.endpoints[idx]}{path}"

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.get(
                        url,
                        params=params,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        if response.status != 200:
                            raise PoolQueryError(f"HTTP {response.status} from {url}")
                        data = await response.json()

                        if idx != self.current_endpoint_index:
                            logger.info("Switched to pool endpoint: %s", self.endpoints[idx])
                            self.current_endpoint_index = idx

                        return data
            except Exception as e:
                last_error = e
                logger.warning("Pool endpoint %s failed: %s", url, e)
                continue

        raise PoolQueryError(f"All pool endpoints failed. Last error: {last_error}")

    async def get_pool_metrics(self, pool_address: str) -> PoolMetrics:
        """Fetch current metrics for a single pool."""
        data = await self._get_json(f"/pools/{pool_address}")
        payload = data.get("pool", data)
        return parse_pool_metrics(payload)

    async def find_pools_for_pair(
        self, token_x: str, token_y: str
    ) -> list[PoolMetrics]:
        """List all pools serving the token pair."""
        data = await self._get_json(
            "/pools", params={"token_x": token_x, "token_y": token_y}
        )

        pools: list[PoolMetrics] = []
        for item in data.get("pools", []):
            try:
                pools.append(parse_pool_metrics(item))
            except ValueError as e:
                logger.debug("Skipping pool entry: %s", e)
        logger.info("Found %d pools for %s/%s", len(pools), token_x, token_y)
        return pools
