"""Pool query protocol — read-only pool metrics source."""
from typing import Protocol

from ..models import PoolMetrics


class PoolQuery(Protocol):
    """Abstract interface for fetching pool metrics."""

    async def get_pool_metrics(self, pool_address: str) -> PoolMetrics: ...

    async def find_pools_for_pair(
        self, token_x: str, token_y: str
    ) -> list[PoolMetrics]: ...
