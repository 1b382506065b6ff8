"""Command-line interface for the liquidity migration engine."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .config import AppConfig, load_config
from .logging_setup import configure_logging
from .models import (
    RISK_TOLERANCES,
    STATUS_COMPLETED,
    MigrationPreferences,
    MigrationProgress,
    Position,
    to_dict,
)
from .notifications import TelegramProgressNotifier
from .parser import parse_positions
from .services import MigrationManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lp-migration",
        description="Cross-pool liquidity position migration",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    def add_inputs(p: argparse.ArgumentParser) -> None:
        p.add_argument("--positions", required=True, help="JSON file with positions")
        p.add_argument("--user", required=True, help="Owner wallet address")

    def add_preferences(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--risk",
            default="moderate",
            choices=list(RISK_TOLERANCES),
            help="Risk tolerance (default: moderate)",
        )
        p.add_argument(
            "--max-gas",
            type=float,
            default=1.0,
            help="Gas budget for the whole plan (default: 1.0)",
        )
        p.add_argument("--speed", action="store_true", help="Interleave routes for speed")
        p.add_argument(
            "--consolidate",
            action="store_true",
            help="Merge positions moving to the same pool",
        )

    analyze_parser = sub.add_parser("analyze", help="List migration opportunities")
    add_inputs(analyze_parser)

    plan_parser = sub.add_parser("plan", help="Build a migration plan")
    add_inputs(plan_parser)
    add_preferences(plan_parser)

    migrate_parser = sub.add_parser("migrate", help="Build and execute a migration plan")
    add_inputs(migrate_parser)
    add_preferences(migrate_parser)

    return parser


def load_positions(path: str | Path) -> list[Position]:
    """Read positions from a JSON file holding a list or ``{"positions": [...]}``."""
    with open(path) as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        raw = raw.get("positions", [])
    if not isinstance(raw, list):
        raise ValueError(f"Expected a list of positions in {path}")
    return parse_positions(raw)


def preferences_from_args(args: argparse.Namespace) -> MigrationPreferences:
    return MigrationPreferences(
        risk_tolerance=args.risk,
        max_gas_cost=args.max_gas,
        prioritize_speed=args.speed,
        consolidate_positions=args.consolidate,
    )


def _print_json(data: Any) -> None:
    print(json.dumps(to_dict(data), indent=2))


def _log_progress(progress: MigrationProgress) -> None:
    logger.info(
        "Migration progress: step %d/%d · %s",
        progress.current_step, progress.total_steps, progress.status,
    )


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command; returns the process exit code."""
    configure_logging(args.log_level)
    config: AppConfig = load_config(args.config)

    if args.command == "migrate" and not config.relayer.endpoints:
        raise ValueError("The migrate command requires relayer endpoints in config")

    manager = MigrationManager(config)
    positions = load_positions(args.positions)
    opportunities = await manager.analyze_opportunities(positions, args.user)

    if args.command == "analyze":
        _print_json(
            {
                "opportunities": opportunities,
                "insights": manager.insights(opportunities),
            }
        )
        return 0

    preferences = preferences_from_args(args)
    plan = manager.create_plan(opportunities, args.user, preferences)

    if args.command == "plan":
        _print_json(plan)
        return 0

    sinks = [_log_progress]
    if config.notifications.telegram.enabled:
        sinks.append(TelegramProgressNotifier(config.notifications.telegram))

    async def on_progress(progress: MigrationProgress) -> None:
        for sink in sinks:
            result = sink(progress)
            if asyncio.iscoroutine(result):
                await result

    progress = await manager.execute_plan(plan, args.user, on_progress)
    _print_json(progress)
    return 0 if progress.status == STATUS_COMPLETED else 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
