"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThresholdsConfig:
    """APR-improvement thresholds (percent) for recommendation tiers."""

    highly_recommended_apr: float = 20.0
    recommended_apr: float = 10.0
    neutral_apr: float = 5.0


@dataclass(frozen=True)
class AnalysisConfig:
    cost_rate: float = 0.005
    horizon_days: float = 365.0
    cache_ttl_seconds: float = 180.0
    max_concurrent_queries: int = 5
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)


@dataclass(frozen=True)
class ExecutionConfig:
    step_timeout_seconds: float = 120.0
    step_delay_seconds: float = 1.0
    max_parallel_steps: int = 1
    rollback_on_failure: bool = True


@dataclass(frozen=True)
class PoolQueryConfig:
    endpoints: tuple[str, ...] = ()
    timeout: int = 30


@dataclass(frozen=True)
class RelayerConfig:
    endpoints: tuple[str, ...] = ()
    timeout: int = 60


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    pool_query: PoolQueryConfig = field(default_factory=PoolQueryConfig)
    relayer: RelayerConfig = field(default_factory=RelayerConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_thresholds(raw: dict[str, Any]) -> ThresholdsConfig:
    return ThresholdsConfig(
        highly_recommended_apr=float(raw.get("highly_recommended_apr", 20.0)),
        recommended_apr=float(raw.get("recommended_apr", 10.0)),
        neutral_apr=float(raw.get("neutral_apr", 5.0)),
    )


def _build_analysis(raw: dict[str, Any]) -> AnalysisConfig:
    return AnalysisConfig(
        cost_rate=float(raw.get("cost_rate", 0.005)),
        horizon_days=float(raw.get("horizon_days", 365.0)),
        cache_ttl_seconds=float(raw.get("cache_ttl_seconds", 180.0)),
        max_concurrent_queries=int(raw.get("max_concurrent_queries", 5)),
        thresholds=_build_thresholds(raw.get("thresholds", {})),
    )


def _build_execution(raw: dict[str, Any]) -> ExecutionConfig:
    return ExecutionConfig(
        step_timeout_seconds=float(raw.get("step_timeout_seconds", 120.0)),
        step_delay_seconds=float(raw.get("step_delay_seconds", 1.0)),
        max_parallel_steps=int(raw.get("max_parallel_steps", 1)),
        rollback_on_failure=bool(raw.get("rollback_on_failure", True)),
    )


def _build_pool_query(raw: dict[str, Any]) -> PoolQueryConfig:
    return PoolQueryConfig(
        endpoints=tuple(e for e in raw.get("endpoints", []) if e),
        timeout=int(raw.get("timeout", 30)),
    )


def _build_relayer(raw: dict[str, Any]) -> RelayerConfig:
    return RelayerConfig(
        endpoints=tuple(e for e in raw.get("endpoints", []) if e),
        timeout=int(raw.get("timeout", 60)),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            bot_token=tg.get("bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        analysis=_build_analysis(raw.get("analysis", {})),
        execution=_build_execution(raw.get("execution", {})),
        pool_query=_build_pool_query(raw.get("pool_query", {})),
        relayer=_build_relayer(raw.get("relayer", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    analysis = cfg.analysis
    if not 0.0 <= analysis.cost_rate < 1.0:
        raise ValueError(f"cost_rate must be in [0, 1), got {analysis.cost_rate}")
    if analysis.horizon_days <= 0:
        raise ValueError("horizon_days must be positive")
    if analysis.cache_ttl_seconds < 0:
        raise ValueError("cache_ttl_seconds must not be negative")
    if analysis.max_concurrent_queries < 1:
        raise ValueError("max_concurrent_queries must be at least 1")

    t = analysis.thresholds
    if not t.highly_recommended_apr > t.recommended_apr > t.neutral_apr >= 0:
        raise ValueError(
            "Thresholds must satisfy highly_recommended_apr > recommended_apr "
            "> neutral_apr >= 0"
        )

    if cfg.execution.max_parallel_steps < 1:
        raise ValueError("max_parallel_steps must be at least 1")
    if cfg.execution.step_timeout_seconds <= 0:
        raise ValueError("step_timeout_seconds must be positive")
    if cfg.execution.step_delay_seconds < 0:
        raise ValueError("step_delay_seconds must not be negative")

    if not cfg.pool_query.endpoints:
        raise ValueError("At least one pool query endpoint must be configured")
