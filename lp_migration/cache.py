"""TTL cache for opportunity analysis results."""
from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from .models import Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    count: int
    keys: tuple[str, ...]


def cache_key(positions: Iterable[Position], user_address: str) -> str:
    """Deterministic key over the position-id set and user address."""
    ids = sorted({str(p.id) for p in positions})
    digest = hashlib.sha256(
        "|".join([user_address, *ids]).encode("utf-8")
    ).hexdigest()
    return f"opportunities-{digest[:32]}"


class TTLCache:
    """In-memory cache whose entries expire after a per-entry TTL.

    Confined to one event loop; no locking.
    """

    def __init__(
        self,
        default_ttl: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        self._entries[key] = (self._clock() + ttl, value)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Return the cached value for ``key`` or await ``loader`` and store it."""
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        value = await loader()
        self.set(key, value, ttl)
        return value

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Migration cache cleared")

    def stats(self) -> CacheStats:
        self._purge_expired()
        return CacheStats(count=len(self._entries), keys=tuple(self._entries))
