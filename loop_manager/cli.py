"""Command-line interface for the leverage loop manager."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import AppConfig, load_config
from .errors import LoopManagerError
from .fixed_point import format_fixed, from_base_units, to_base_units, value_to_usd
from .logging_setup import configure_logging
from .oracles import StaticPriceFeed
from .risk.health import HealthFactorEngine
from .risk.policy import RiskPolicy
from .services import build_gateway, build_manager, build_price_feed

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="leverage-loop-manager",
        description="Build leveraged loop positions and unwind them before liquidation",
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

    sim = sub.add_parser("simulate", help="Loop a position on the simulated market")
    sim.add_argument("--market", default=None, help="Market name (default: first)")
    sim.add_argument("--owner", default="cli", help="Owner identity")
    sim.add_argument(
        "--collateral", type=float, required=True, help="Initial collateral, whole tokens"
    )
    sim.add_argument(
        "--loops", type=int, default=None, help="Loops to run (default: target_loops)"
    )
    sim.add_argument(
        "--price-drop",
        type=float,
        default=0.0,
        help="Collateral price drop in percent applied after looping",
    )

    health = sub.add_parser("health", help="Health factor for given amounts")
    health.add_argument("--market", default=None, help="Market name (default: first)")
    health.add_argument("--collateral", type=float, required=True, help="Whole tokens")
    health.add_argument("--debt", type=float, required=True, help="Whole tokens")

    return parser


def _market_name(config: AppConfig, name: str | None) -> str:
    if name is None:
        return next(iter(config.markets))
    if name not in config.markets:
        raise ValueError(f"Unknown market '{name}'")
    return name


async def _simulate(config: AppConfig, args: argparse.Namespace) -> None:
    market_name = _market_name(config, args.market)
    market_cfg = config.markets[market_name]
    decimals = config.assets[market_cfg.collateral_asset].decimals

    feed = build_price_feed(config)
    gateway = build_gateway(config, feed)
    manager = build_manager(config, gateway)

    position = await manager.create_position(
        args.owner,
        market_cfg.to_market_params(market_name),
        to_base_units(args.collateral, decimals),
        config.position_defaults.to_position_config(),
    )
    report = await manager.execute_loops(position.position_id, args.owner, args.loops)
    snapshot = await manager.evaluate(position.position_id)
    logger.info(
        "After %d loops (%s): collateral %.6f %s, debt $%.2f, leverage %.2fx, HF %s (%s)",
        report.loops_executed,
        report.stop_reason,
        from_base_units(report.position.collateral_amount, decimals),
        market_cfg.collateral_asset,
        value_to_usd(snapshot.debt_value),
        snapshot.leverage,
        format_fixed(snapshot.health_factor),
        snapshot.risk_level.value,
    )

    if not args.price_drop:
        return
    if not isinstance(feed, StaticPriceFeed):
        logger.error("Price shocks need the static price oracle")
        return

    feed.shock(market_cfg.collateral_asset, -args.price_drop)
    snapshot = await manager.evaluate(position.position_id)
    logger.info(
        "After %.1f%% price drop: HF %s (%s)",
        args.price_drop,
        format_fixed(snapshot.health_factor),
        snapshot.risk_level.value,
    )
    if snapshot.recommended_percentage == 0:
        logger.info("Position is not risky, no unwind needed")
        return

    unwind = await manager.auto_unwind(position.position_id, caller="cli")
    logger.info(
        "Unwound %d%%: HF %s -> %s (%s)",
        unwind.percentage,
        format_fixed(unwind.before.health_factor),
        format_fixed(unwind.after.health_factor),
        unwind.after.risk_level.value,
    )


async def _health(config: AppConfig, args: argparse.Namespace) -> None:
    market_cfg = config.markets[_market_name(config, args.market)]
    feed = build_price_feed(config)
    collateral_quote = await feed.get_price(market_cfg.collateral_asset)
    debt_quote = await feed.get_price(market_cfg.debt_asset)

    engine = HealthFactorEngine(RiskPolicy.from_config(config.engine))
    hf = engine.health_factor(
        to_base_units(args.collateral, collateral_quote.decimals),
        to_base_units(args.debt, debt_quote.decimals),
        collateral_quote,
        debt_quote,
        market_cfg.liquidation_threshold_bps,
    )
    level = engine.classify(hf)
    logger.info(
        "HF %s · %s · recommended unwind %d%%",
        format_fixed(hf),
        level.value,
        engine.policy.recommended_unwind_percentage(level),
    )


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "simulate":
        await _simulate(config, args)
    elif args.command == "health":
        await _health(config, args)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except LoopManagerError as e:
        logger.error("%s: %s", type(e).__name__, e)
        sys.exit(1)
