"""Migration orchestration — wires analysis, planning and execution together."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..cache import CacheStats, TTLCache
from ..config import AppConfig
from ..interfaces.cache import MigrationCache
from ..interfaces.liquidity import LiquidityOperations
from ..interfaces.pool_query import PoolQuery
from ..interfaces.progress import ProgressSink
from ..models import (
    HIGHLY_RECOMMENDED,
    NEUTRAL,
    RECOMMENDED,
    CrossPoolOpportunity,
    MigrationInsights,
    MigrationPlan,
    MigrationPreferences,
    MigrationProgress,
    Position,
)
from ..pools import HttpPoolQuery
from ..relayer import RelayerClient
from .analyzer import OpportunityAnalyzer
from .executor import PlanExecutor
from .planner import PlanBuilder

logger = logging.getLogger(__name__)


def summarize(opportunities: Sequence[CrossPoolOpportunity]) -> MigrationInsights:
    """Aggregate counts and totals over an opportunity list."""
    if not opportunities:
        return MigrationInsights()

    return MigrationInsights(
        total_opportunities=len(opportunities),
        highly_recommended=sum(1 for o in opportunities if o.recommendation == HIGHLY_RECOMMENDED),
        recommended=sum(1 for o in opportunities if o.recommendation == RECOMMENDED),
        neutral=sum(1 for o in opportunities if o.recommendation == NEUTRAL),
        total_potential_benefit=sum(o.projected_benefit for o in opportunities),
        total_migration_cost=sum(o.migration_cost for o in opportunities),
        average_apr_improvement=(
            sum(o.improvement.apr_improvement for o in opportunities) / len(opportunities)
        ),
        best_opportunity=max(opportunities, key=lambda o: o.projected_benefit),
    )


class MigrationManager:
    """Analyze, plan and execute cross-pool migrations for a user's positions."""

    def __init__(
        self,
        config: AppConfig,
        pool_query: PoolQuery | None = None,
        liquidity: LiquidityOperations | None = None,
        cache: MigrationCache | None = None,
    ) -> None:
        self._config = config
        self._pool_query: PoolQuery = pool_query or HttpPoolQuery(config.pool_query)
        self._liquidity: LiquidityOperations = liquidity or RelayerClient(config.relayer)
        self._cache: MigrationCache = cache or TTLCache(config.analysis.cache_ttl_seconds)

        self._analyzer = OpportunityAnalyzer(self._pool_query, config.analysis, self._cache)
        self._builder = PlanBuilder()
        self._executor = PlanExecutor(self._liquidity, config.execution)

    async def analyze_opportunities(
        self, positions: Sequence[Position], user_address: str
    ) -> list[CrossPoolOpportunity]:
        return await self._analyzer.analyze(positions, user_address)

    def create_plan(
        self,
        opportunities: Sequence[CrossPoolOpportunity],
        user_address: str,
        preferences: MigrationPreferences,
    ) -> MigrationPlan:
        return self._builder.build(opportunities, user_address, preferences)

    async def execute_plan(
        self,
        plan: MigrationPlan,
        user_address: str,
        on_progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> MigrationProgress:
        return await self._executor.execute(plan, user_address, on_progress, cancel_event)

    async def execute_opportunities(
        self,
        opportunities: Sequence[CrossPoolOpportunity],
        user_address: str,
        preferences: MigrationPreferences,
        on_progress: ProgressSink | None = None,
    ) -> tuple[MigrationPlan, MigrationProgress]:
        """Build a fresh plan from the selected opportunities and run it."""
        plan = self.create_plan(opportunities, user_address, preferences)
        progress = await self.execute_plan(plan, user_address, on_progress)
        return plan, progress

    @staticmethod
    def insights(opportunities: Sequence[CrossPoolOpportunity]) -> MigrationInsights:
        return summarize(opportunities)

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()
