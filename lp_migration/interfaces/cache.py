"""Cache protocol — injectable store for analysis results."""
from typing import Any, Awaitable, Callable, Protocol

from ..cache import CacheStats


class MigrationCache(Protocol):
    """Abstract interface over a TTL cache."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any: ...

    def clear(self) -> None: ...

    def stats(self) -> CacheStats: ...
