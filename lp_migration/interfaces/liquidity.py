"""Liquidity operations protocol — fund-moving transactions."""
from typing import Protocol

from ..models import Position, TxResult


class LiquidityOperations(Protocol):
    """Abstract interface for submitting liquidity transactions."""

    async def claim_fees(self, position: Position, owner: str) -> TxResult: ...

    async def remove_liquidity(self, position: Position, owner: str) -> TxResult: ...

    async def add_liquidity(
        self, pool_address: str, amounts: dict[str, float], owner: str
    ) -> TxResult: ...
