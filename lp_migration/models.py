"""Data models — value objects are frozen, progress is the executor's mutable record."""
from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass, replace
from datetime import datetime
from typing import Any

# Recommendation tiers
HIGHLY_RECOMMENDED = "highly_recommended"
RECOMMENDED = "recommended"
NEUTRAL = "neutral"
NOT_RECOMMENDED = "not_recommended"

# Risk tolerance
CONSERVATIVE = "conservative"
MODERATE = "moderate"
AGGRESSIVE = "aggressive"
RISK_TOLERANCES = (CONSERVATIVE, MODERATE, AGGRESSIVE)

# Plan risk level
RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"

# Step types
CLAIM_FEES = "claim_fees"
REMOVE_LIQUIDITY = "remove_liquidity"
ADD_LIQUIDITY = "add_liquidity"
CRITICAL_STEP_TYPES = frozenset({REMOVE_LIQUIDITY, ADD_LIQUIDITY})

# Route reasons
REASON_BETTER_APR = "better_apr"
REASON_BETTER_FEES = "better_fees"
REASON_HIGHER_LIQUIDITY = "higher_liquidity"
REASON_CONSOLIDATION = "consolidation"
REASON_STRATEGY_CHANGE = "strategy_change"

# Progress status
STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

VALID_TRANSITIONS = {
    STATUS_PENDING: {STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_FAILED},
    STATUS_IN_PROGRESS: {STATUS_COMPLETED, STATUS_FAILED},
    STATUS_COMPLETED: set(),
    STATUS_FAILED: set(),
}


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int = 0
    price: float = 0.0
    address: str = ""


@dataclass(frozen=True)
class Position:
    """An existing concentrated-liquidity position owned by the user."""

    id: str
    pool_address: str
    token_x: TokenInfo
    token_y: TokenInfo
    liquidity_amount: float
    fees_earned_x: float = 0.0
    fees_earned_y: float = 0.0
    owner: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def pair(self) -> str:
        return f"{self.token_x.symbol}/{self.token_y.symbol}"


@dataclass(frozen=True)
class PoolMetrics:
    address: str
    pair: str
    apr: float
    tvl: float
    volume_24h: float
    fee_tier: float


@dataclass(frozen=True)
class ImprovementMetrics:
    """Signed percentage deltas from the current pool to a candidate."""

    fee_improvement: float = 0.0
    apr_improvement: float = 0.0
    liquidity_improvement: float = 0.0
    volume_improvement: float = 0.0


@dataclass(frozen=True)
class CrossPoolOpportunity:
    position: Position
    target_pool: str
    target_pair: str
    improvement: ImprovementMetrics
    migration_cost: float
    projected_benefit: float
    recommendation: str


@dataclass(frozen=True)
class MigrationPreferences:
    risk_tolerance: str = MODERATE
    max_gas_cost: float = 1.0
    prioritize_speed: bool = False
    consolidate_positions: bool = False


@dataclass(frozen=True)
class MigrationRoute:
    id: str
    position_ids: tuple[str, ...]
    from_pools: tuple[str, ...]
    to_pool: str
    from_pair: str
    to_pair: str
    reason: str
    estimated_cost: float
    estimated_benefit: float
    time_to_breakeven: float
    confidence: float


@dataclass(frozen=True)
class MigrationStep:
    id: str
    order: int
    type: str
    description: str
    pool_address: str
    estimated_gas: float
    estimated_time: float
    dependencies: tuple[str, ...] = ()
    route_id: str = ""
    position_ids: tuple[str, ...] = ()

    @property
    def is_critical(self) -> bool:
        return self.type in CRITICAL_STEP_TYPES


@dataclass(frozen=True)
class MigrationPlan:
    id: str
    name: str
    description: str
    positions: tuple[Position, ...]
    routes: tuple[MigrationRoute, ...]
    total_cost: float
    total_benefit: float
    estimated_duration: float
    risk_level: str
    steps: tuple[MigrationStep, ...]
    created_at: datetime | None = None


@dataclass(frozen=True)
class TxResult:
    """Outcome of a single liquidity operation."""

    success: bool
    tx_id: str = ""
    amounts: dict[str, float] = field(default_factory=dict)
    error: str = ""


@dataclass(frozen=True)
class StepError:
    step_id: str
    error: str
    timestamp: datetime


@dataclass
class MigrationProgress:
    """Live execution record, mutated only by the executor running the plan."""

    plan_id: str
    status: str = STATUS_PENDING
    current_step: int = 0
    total_steps: int = 0
    completed_steps: list[str] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    errors: list[StepError] = field(default_factory=list)
    tx_ids: dict[str, str] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> MigrationProgress:
        """Return an independent copy safe to hand to progress sinks."""
        return replace(
            self,
            completed_steps=list(self.completed_steps),
            failed_steps=list(self.failed_steps),
            errors=list(self.errors),
            tx_ids=dict(self.tx_ids),
        )


@dataclass(frozen=True)
class MigrationInsights:
    total_opportunities: int = 0
    highly_recommended: int = 0
    recommended: int = 0
    neutral: int = 0
    total_potential_benefit: float = 0.0
    total_migration_cost: float = 0.0
    average_apr_improvement: float = 0.0
    best_opportunity: CrossPoolOpportunity | None = None


def to_dict(obj: Any) -> Any:
    """Convert models (recursively) into JSON-serializable primitives."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_dict(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): to_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_dict(v) for v in obj]
    return obj
