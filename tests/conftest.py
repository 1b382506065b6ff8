"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock

import pytest

from lp_migration.config import (
    AnalysisConfig,
    AppConfig,
    ExecutionConfig,
    NotificationsConfig,
    PoolQueryConfig,
    RelayerConfig,
    TelegramConfig,
    ThresholdsConfig,
)
from lp_migration.models import (
    RECOMMENDED,
    CrossPoolOpportunity,
    ImprovementMetrics,
    PoolMetrics,
    Position,
    TokenInfo,
    TxResult,
)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def analysis_config() -> AnalysisConfig:
    return AnalysisConfig(
        cost_rate=0.005,
        horizon_days=365.0,
        cache_ttl_seconds=180.0,
        max_concurrent_queries=3,
        thresholds=ThresholdsConfig(),
    )


@pytest.fixture()
def execution_config() -> ExecutionConfig:
    return ExecutionConfig(
        step_timeout_seconds=5.0,
        step_delay_seconds=0.0,
        max_parallel_steps=1,
        rollback_on_failure=True,
    )


@pytest.fixture()
def sample_app_config(
    analysis_config: AnalysisConfig, execution_config: ExecutionConfig
) -> AppConfig:
    return AppConfig(
        analysis=analysis_config,
        execution=execution_config,
        pool_query=PoolQueryConfig(endpoints=("https://pools.example.com",), timeout=5),
        relayer=RelayerConfig(endpoints=("https://relayer.example.com",), timeout=5),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(enabled=False, bot_token="tok", chat_id="42"),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def position_factory() -> Callable[..., Position]:
    def make(
        id: str = "pos-1",
        pool_address: str = "pool-A",
        liquidity_amount: float = 10000.0,
        token_x: str = "SOL",
        token_y: str = "USDC",
    ) -> Position:
        return Position(
            id=id,
            pool_address=pool_address,
            token_x=TokenInfo(symbol=token_x, decimals=9, price=150.0),
            token_y=TokenInfo(symbol=token_y, decimals=6, price=1.0),
            liquidity_amount=liquidity_amount,
            owner="0xUSER",
        )

    return make


@pytest.fixture()
def opportunity_factory(
    position_factory: Callable[..., Position],
) -> Callable[..., CrossPoolOpportunity]:
    def make(
        position: Position | None = None,
        target_pool: str = "pool-B",
        apr_improvement: float = 15.0,
        migration_cost: float = 50.0,
        projected_benefit: float = 1450.0,
        recommendation: str = RECOMMENDED,
    ) -> CrossPoolOpportunity:
        position = position or position_factory()
        return CrossPoolOpportunity(
            position=position,
            target_pool=target_pool,
            target_pair=position.pair,
            improvement=ImprovementMetrics(apr_improvement=apr_improvement),
            migration_cost=migration_cost,
            projected_benefit=projected_benefit,
            recommendation=recommendation,
        )

    return make


@pytest.fixture()
def sample_pools() -> dict[str, PoolMetrics]:
    """pool-A is the baseline; pool-B is +15% APR, pool-C +30%, pool-D worse."""
    return {
        "pool-A": PoolMetrics("pool-A", "SOL/USDC", apr=10.0, tvl=1_000_000.0, volume_24h=500_000.0, fee_tier=0.003),
        "pool-B": PoolMetrics("pool-B", "SOL/USDC", apr=11.5, tvl=2_500_000.0, volume_24h=1_500_000.0, fee_tier=0.0025),
        "pool-C": PoolMetrics("pool-C", "SOL/USDC", apr=13.0, tvl=800_000.0, volume_24h=400_000.0, fee_tier=0.005),
        "pool-D": PoolMetrics("pool-D", "SOL/USDC", apr=8.0, tvl=300_000.0, volume_24h=100_000.0, fee_tier=0.01),
    }


@pytest.fixture()
def pool_query_factory() -> Callable[[dict[str, PoolMetrics]], AsyncMock]:
    """Build a PoolQuery mock serving the given pools for every pair."""

    def make(pools: dict[str, PoolMetrics]) -> AsyncMock:
        query = AsyncMock()

        async def get_pool_metrics(pool_address: str) -> PoolMetrics:
            if pool_address not in pools:
                raise ConnectionError(f"unknown pool {pool_address}")
            return pools[pool_address]

        async def find_pools_for_pair(token_x: str, token_y: str) -> list[PoolMetrics]:
            return list(pools.values())

        query.get_pool_metrics.side_effect = get_pool_metrics
        query.find_pools_for_pair.side_effect = find_pools_for_pair
        return query

    return make


@pytest.fixture()
def liquidity_ops() -> AsyncMock:
    """LiquidityOperations mock where every operation succeeds."""
    ops = AsyncMock()
    ops.claim_fees.return_value = TxResult(success=True, tx_id="tx-claim")
    ops.remove_liquidity.return_value = TxResult(
        success=True, tx_id="tx-remove", amounts={"SOL": 30.0, "USDC": 5000.0}
    )
    ops.add_liquidity.return_value = TxResult(success=True, tx_id="tx-add")
    return ops


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    analysis:
      cost_rate: 0.005
      horizon_days: 365
      cache_ttl_seconds: 60
      max_concurrent_queries: 4
      thresholds:
        highly_recommended_apr: 25
        recommended_apr: 12
        neutral_apr: 6
    execution:
      step_timeout_seconds: 90
      step_delay_seconds: 0.5
      max_parallel_steps: 2
      rollback_on_failure: true
    pool_query:
      endpoints: ["https://pools.example.com"]
      timeout: 10
    relayer:
      endpoints: ["https://relayer.example.com"]
      timeout: 20
    notifications:
      telegram:
        enabled: true
        bot_token: "tok1"
        chat_id: "999"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
