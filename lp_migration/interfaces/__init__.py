"""Protocol interfaces for the migration engine's collaborators."""
from .cache import MigrationCache
from .liquidity import LiquidityOperations
from .pool_query import PoolQuery
from .progress import ProgressSink

__all__ = ["LiquidityOperations", "MigrationCache", "PoolQuery", "ProgressSink"]
