#!/usr/bin/env python3
"""Command-line interface for payment confirmation jobs.

Usage:
    donasiku-payments sweep --limit 50
    donasiku-payments check INV-20240101-0001
    donasiku-payments sync-methods
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config import AppConfig
from .database import close_db, get_db_context, init_db
from .dependencies import build_gateway, build_notifier
from .exceptions import DonasikuError, NotFoundError
from .gateway import PaymentMethodSyncService
from .reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def run_sweep_async(config: AppConfig, limit: Optional[int] = None) -> int:
    """Run one sweep over pending transactions.

    Returns:
        Exit code: 0 when every entry was handled, 1 if any entry errored.
    """
    gateway = build_gateway(config)
    try:
        async with get_db_context() as session:
            notifier = await build_notifier(session, config)
            service = ReconciliationService(
                session, gateway, notifier=notifier, batch_size=config.sweep_batch_size
            )
            sweep = await service.sweep_pending(limit=limit)
    finally:
        await gateway.aclose()

    _print_json(sweep.to_dict())
    if sweep.errors:
        logger.warning(f"Sweep finished with {sweep.errors} errors")
        return EXIT_PARTIAL
    return EXIT_OK


async def run_check_async(config: AppConfig, merchant_order_id: str) -> int:
    gateway = build_gateway(config)
    try:
        async with get_db_context() as session:
            notifier = await build_notifier(session, config)
            service = ReconciliationService(session, gateway, notifier=notifier)
            result = await service.check_transaction(merchant_order_id)
    except NotFoundError as e:
        logger.error(str(e))
        return EXIT_PARTIAL
    finally:
        await gateway.aclose()

    _print_json(result.to_response())
    return EXIT_OK


async def run_sync_methods_async(config: AppConfig) -> int:
    gateway = build_gateway(config)
    try:
        async with get_db_context() as session:
            summary = await PaymentMethodSyncService(session, gateway).sync()
    finally:
        await gateway.aclose()

    _print_json(summary)
    return EXIT_PARTIAL if summary["errors"] else EXIT_OK


async def _run(parsed_args: argparse.Namespace, config: AppConfig) -> int:
    await init_db()
    try:
        if parsed_args.command == "sweep":
            return await run_sweep_async(config, limit=parsed_args.limit)
        if parsed_args.command == "check":
            return await run_check_async(config, parsed_args.merchant_order_id)
        return await run_sync_methods_async(config)
    finally:
        await close_db()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="donasiku-payments",
        description="Payment confirmation jobs for Duitku transactions.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sweep_parser = subparsers.add_parser(
        "sweep",
        help="Check pending transactions against Duitku",
    )
    sweep_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=None,
        help="Maximum transactions to check (default: SWEEP_BATCH_SIZE)",
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Check a single transaction",
    )
    check_parser.add_argument("merchant_order_id", help="Merchant order id")

    subparsers.add_parser(
        "sync-methods",
        help="Synchronise the payment-method catalogue from Duitku",
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return EXIT_PARTIAL

    config = AppConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(_run(parsed_args, config))
    except DonasikuError as e:
        logger.error(f"{parsed_args.command} failed: {e}")
        return EXIT_FATAL
    except Exception:
        logger.exception(f"{parsed_args.command} failed")
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
