"""Command-line interface for the lending risk engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .app import Engine, build_engine
from .config import load_config
from .logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-risk",
        description="Position risk engine for over-collateralized lending pools",
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

    sub.add_parser("check", help="Run a single monitoring cycle")
    sub.add_parser("scan", help="List liquidation opportunities")
    sub.add_parser("report", help="Send a position risk report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in seconds (overrides config)",
    )

    price_parser = sub.add_parser("price", help="Fetch oracle prices")
    price_parser.add_argument("assets", nargs="+", metavar="ASSET")
    price_parser.add_argument(
        "--skip-cache", action="store_true", help="Always query the oracle"
    )

    return parser


async def _print_scan(engine: Engine) -> None:
    opportunities = await engine.scanner.find_liquidatable_positions()
    if not opportunities:
        print("No liquidatable positions found.")
        return
    for opp in opportunities:
        print(
            f"{opp.position.id}  HF {opp.health_factor:.4f}  "
            f"debt ${opp.debt_value:,.2f}  collateral ${opp.collateral_value:,.2f}  "
            f"profit ${opp.potential_profit:,.2f}"
        )


async def _print_prices(engine: Engine, assets: list[str], skip_cache: bool) -> int:
    batch = await engine.oracle.get_prices(assets, skip_cache=skip_cache)
    for asset, quote in sorted(batch.prices.items()):
        flag = " (degraded)" if quote.degraded else ""
        print(
            f"{asset}: ${quote.price:,.6f}  sources={quote.num_sources}  "
            f"{quote.aggregation.name}{flag}"
        )
    for asset, error in sorted(batch.errors.items()):
        print(f"{asset}: error {getattr(error, 'code', type(error).__name__)}: {error}")
    return 0 if batch.ok else 1


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    engine = build_engine(config)

    if args.command == "check":
        result = await engine.monitor.run_cycle()
        return 1 if result.errors else 0
    elif args.command == "monitor":
        await engine.monitor.run_continuous(args.interval)
    elif args.command == "scan":
        await _print_scan(engine)
    elif args.command == "price":
        return await _print_prices(engine, args.assets, args.skip_cache)
    elif args.command == "report":
        print(await engine.monitor.generate_report())
    else:
        build_parser().print_help()
        return 1
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
