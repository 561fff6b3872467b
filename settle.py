#!/usr/bin/env python3
# settle.py
"""
Settlement engine - command line entry point.

Usage:
    python settle.py mining [--reference ISO_DATETIME]
    python settle.py team [--reference ISO_DATETIME]
    python settle.py release-locks [--reference ISO_DATETIME]
    python settle.py claim USER_ID [--reference ISO_DATETIME]
    python settle.py scheduler
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime

from config import Config, ConfigurationError
from core.db import get_db_session_ctx, setup_database
from background.settlement_scheduler import SettlementScheduler
from settlement.services.claim_service import ClaimService
from settlement.services.locked_capital_service import LockedCapitalService
from settlement.services.mining_profit_service import MiningProfitService
from settlement.services.team_earnings_service import TeamEarningsService
from settlement.utils.time_windows import to_naive_utc, utc_now

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler('settlement.log')
        ]
    )


def parse_reference(value: str) -> datetime:
    """argparse type for --reference (ISO 8601, naive means UTC)."""
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid ISO datetime: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Referral reward settlement engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
            ("mining", "Accrue mining profit for the previous UTC day"),
            ("team", "Distribute team earnings for the previous business day"),
            ("release-locks", "Release matured locked capital"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--reference", type=parse_reference, default=None,
                         help="Reference instant (ISO 8601, default now)")

    claim = subparsers.add_parser("claim", help="Claim team rewards for a user")
    claim.add_argument("user_id", help="User id (hex or hyphenated UUID)")
    claim.add_argument("--reference", type=parse_reference, default=None)

    subparsers.add_parser("scheduler", help="Run the background scheduler")

    return parser


async def run_command(args: argparse.Namespace):
    reference = args.reference if getattr(args, "reference", None) else utc_now()

    if args.command == "mining":
        with get_db_session_ctx() as session:
            return await MiningProfitService(session).runDailyMiningProfit(reference)

    if args.command == "team":
        with get_db_session_ctx() as session:
            return await TeamEarningsService(session).runDailyTeamEarnings(reference)

    if args.command == "release-locks":
        with get_db_session_ctx() as session:
            return await LockedCapitalService(session).releaseMaturedLots(reference)

    if args.command == "claim":
        with get_db_session_ctx() as session:
            return await ClaimService(session).claimTeamEarnings(args.user_id, reference)

    if args.command == "scheduler":
        scheduler = SettlementScheduler()
        await scheduler.start()
        try:
            # Keep the loop alive; APScheduler runs the jobs
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
        return scheduler.getStats()

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        Config.initialize_from_env()
        Config.validate_critical_keys()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(Config.get(Config.LOG_LEVEL))

    logger.info("=" * 60)
    logger.info(f"SETTLEMENT: {args.command}")
    logger.info("=" * 60)

    setup_database()

    try:
        result = asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("⚠️ Stopped by user")
        return 0
    except Exception as e:
        logger.critical(f"❌ Fatal error: {e}", exc_info=True)
        return 1

    logger.info(f"✓ Result: {result}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
