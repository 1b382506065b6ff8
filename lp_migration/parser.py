"""Pure parsing functions for position and pool data — no I/O."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

from .models import PoolMetrics, Position, TokenInfo

logger = logging.getLogger(__name__)


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce numeric strings/ints to float, falling back to ``default``.

    Examples:
        "1500.5" → 1500.5
        None → 0.0
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 strings or unix seconds into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_token(raw: dict[str, Any]) -> TokenInfo:
    return TokenInfo(
        symbol=str(raw.get("symbol", "")),
        decimals=int(to_float(raw.get("decimals"), 0)),
        price=to_float(raw.get("price")),
        address=str(raw.get("address", "")),
    )


def is_valid_position(position: Any) -> bool:
    """Return True when a position carries every field analysis relies on."""
    if not isinstance(position, Position):
        return False
    if not isinstance(position.id, str) or not isinstance(position.pool_address, str):
        return False
    if not position.id or not position.pool_address:
        return False
    for token in (position.token_x, position.token_y):
        if not isinstance(token, TokenInfo):
            return False
        if not isinstance(token.symbol, str) or not token.symbol:
            return False
    liquidity = position.liquidity_amount
    if isinstance(liquidity, bool) or not isinstance(liquidity, (int, float)):
        return False
    return math.isfinite(liquidity) and liquidity > 0


def parse_position(raw: dict[str, Any]) -> Position | None:
    """Parse one raw position dict; returns None when required fields are missing.

    Accepts both camelCase (``poolAddress``, ``tokenX``, ``liquidityAmount``)
    and snake_case keys.
    """
    if not isinstance(raw, dict):
        return None

    token_x_raw = raw.get("tokenX", raw.get("token_x"))
    token_y_raw = raw.get("tokenY", raw.get("token_y"))
    if not isinstance(token_x_raw, dict) or not isinstance(token_y_raw, dict):
        return None

    liquidity_raw = raw.get("liquidityAmount", raw.get("liquidity_amount"))
    if liquidity_raw is None:
        return None

    fees = raw.get("feesEarned", raw.get("fees_earned", {})) or {}

    position = Position(
        id=str(raw.get("id", "")),
        pool_address=str(raw.get("poolAddress", raw.get("pool_address", ""))),
        token_x=parse_token(token_x_raw),
        token_y=parse_token(token_y_raw),
        liquidity_amount=to_float(liquidity_raw, float("nan")),
        fees_earned_x=to_float(fees.get("tokenX", fees.get("token_x"))),
        fees_earned_y=to_float(fees.get("tokenY", fees.get("token_y"))),
        owner=str(raw.get("userAddress", raw.get("owner", ""))),
        created_at=parse_timestamp(raw.get("createdAt", raw.get("created_at"))),
        updated_at=parse_timestamp(raw.get("lastUpdated", raw.get("updated_at"))),
    )
    return position if is_valid_position(position) else None


def parse_positions(raw_items: list[Any]) -> list[Position]:
    """Parse a list of raw positions, skipping malformed entries."""
    positions: list[Position] = []
    for idx, raw in enumerate(raw_items):
        position = parse_position(raw)
        if position is None:
            logger.warning("Skipping malformed position at index %d", idx)
            continue
        positions.append(position)
    return positions


def parse_pool_metrics(raw: dict[str, Any]) -> PoolMetrics:
    """Parse a pool metrics payload.

    Numeric fields may arrive as strings (``"2500000"``); fee tier may be
    named ``feeTier`` or ``feeRate``.
    """
    address = raw.get("address") or raw.get("poolAddress")
    if not address:
        raise ValueError("Pool metrics payload has no address")

    return PoolMetrics(
        address=str(address),
        pair=str(raw.get("pair", "")),
        apr=to_float(raw.get("apr")),
        tvl=to_float(raw.get("tvl")),
        volume_24h=to_float(raw.get("volume24h", raw.get("volume_24h"))),
        fee_tier=to_float(raw.get("feeTier", raw.get("feeRate", raw.get("fee_tier")))),
    )
