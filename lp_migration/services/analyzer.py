"""Cross-pool opportunity analysis — scores alternative pools per position."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..cache import TTLCache, cache_key
from ..config import AnalysisConfig
from ..interfaces.cache import MigrationCache
from ..interfaces.pool_query import PoolQuery
from ..models import (
    HIGHLY_RECOMMENDED,
    NEUTRAL,
    NOT_RECOMMENDED,
    RECOMMENDED,
    CrossPoolOpportunity,
    ImprovementMetrics,
    PoolMetrics,
    Position,
)
from ..parser import is_valid_position

logger = logging.getLogger(__name__)


def pct_delta(current: float, candidate: float) -> float:
    """Signed percentage change from ``current`` to ``candidate``.

    With no usable baseline (``current <= 0``) any positive candidate counts
    as a full 100% improvement.
    """
    if current <= 0:
        return 100.0 if candidate > 0 else 0.0
    return (candidate - current) / current * 100.0


class OpportunityAnalyzer:
    """Find better pools for each held position and score the migration."""

    def __init__(
        self,
        pool_query: PoolQuery,
        config: AnalysisConfig,
        cache: MigrationCache | None = None,
    ) -> None:
        self._pools = pool_query
        self._config = config
        self._thresholds = config.thresholds
        self._cache: MigrationCache = cache or TTLCache(config.cache_ttl_seconds)

    @property
    def cache(self) -> MigrationCache:
        return self._cache

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def migration_cost(self, position: Position) -> float:
        return position.liquidity_amount * self._config.cost_rate

    def projected_benefit(self, position: Position, apr_improvement: float) -> float:
        """Value gained over the holding horizon, net of migration cost."""
        horizon_years = self._config.horizon_days / 365.0
        gross = position.liquidity_amount * (apr_improvement / 100.0) * horizon_years
        return gross - self.migration_cost(position)

    def recommend(
        self, apr_improvement: float, projected_benefit: float, migration_cost: float
    ) -> str:
        t = self._thresholds
        if apr_improvement <= 0 or projected_benefit <= migration_cost:
            return NOT_RECOMMENDED
        if (
            apr_improvement > t.highly_recommended_apr
            and projected_benefit > migration_cost * 2
        ):
            return HIGHLY_RECOMMENDED
        if apr_improvement > t.recommended_apr:
            return RECOMMENDED
        if apr_improvement > t.neutral_apr:
            return NEUTRAL
        return NOT_RECOMMENDED

    def evaluate(
        self, position: Position, current: PoolMetrics, candidate: PoolMetrics
    ) -> CrossPoolOpportunity:
        improvement = ImprovementMetrics(
            fee_improvement=pct_delta(current.fee_tier, candidate.fee_tier),
            apr_improvement=pct_delta(current.apr, candidate.apr),
            liquidity_improvement=pct_delta(current.tvl, candidate.tvl),
            volume_improvement=pct_delta(current.volume_24h, candidate.volume_24h),
        )
        cost = self.migration_cost(position)
        benefit = self.projected_benefit(position, improvement.apr_improvement)

        return CrossPoolOpportunity(
            position=position,
            target_pool=candidate.address,
            target_pair=candidate.pair or position.pair,
            improvement=improvement,
            migration_cost=cost,
            projected_benefit=benefit,
            recommendation=self.recommend(improvement.apr_improvement, benefit, cost),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _analyze_position(
        self, position: Position, semaphore: asyncio.Semaphore
    ) -> list[CrossPoolOpportunity]:
        """Evaluate every alternative pool for one position; failures stay local."""
        async with semaphore:
            try:
                current = await self._pools.get_pool_metrics(position.pool_address)
                candidates = await self._pools.find_pools_for_pair(
                    position.token_x.symbol, position.token_y.symbol
                )
            except Exception as e:
                logger.warning(
                    "Pool query failed for position %s (%s): %s",
                    position.id, position.pair, e,
                )
                return []

        opportunities: list[CrossPoolOpportunity] = []
        for candidate in candidates:
            if candidate.address == position.pool_address:
                continue
            opportunity = self.evaluate(position, current, candidate)
            logger.debug(
                "Position %s → %s: APR %+.2f%%, cost %.2f, benefit %.2f (%s)",
                position.id,
                candidate.address,
                opportunity.improvement.apr_improvement,
                opportunity.migration_cost,
                opportunity.projected_benefit,
                opportunity.recommendation,
            )
            if opportunity.recommendation != NOT_RECOMMENDED:
                opportunities.append(opportunity)
        return opportunities

    async def _scan(self, positions: list[Position]) -> list[CrossPoolOpportunity]:
        semaphore = asyncio.Semaphore(self._config.max_concurrent_queries)
        results = await asyncio.gather(
            *(self._analyze_position(p, semaphore) for p in positions)
        )

        opportunities = [o for per_position in results for o in per_position]
        opportunities.sort(key=lambda o: o.projected_benefit, reverse=True)

        logger.info(
            "Migration opportunities analyzed: %d total, %d highly recommended",
            len(opportunities),
            sum(1 for o in opportunities if o.recommendation == HIGHLY_RECOMMENDED),
        )
        return opportunities

    async def analyze(
        self, positions: Sequence[Position], user_address: str
    ) -> list[CrossPoolOpportunity]:
        """Return non-rejected opportunities ordered by descending projected benefit."""
        valid: list[Position] = []
        for position in positions:
            if is_valid_position(position):
                valid.append(position)
            else:
                logger.warning("Skipping malformed position: %r", position)

        if not valid:
            return []

        logger.info("Analyzing migration opportunities for %d positions", len(valid))
        key = cache_key(valid, user_address)
        opportunities = await self._cache.get_or_load(
            key, lambda: self._scan(valid), self._config.cache_ttl_seconds
        )
        return list(opportunities)
