"""Script to list the dust balances of a wallet and check their routes.

Reads balances from the configured JSON-RPC node, prices them through
DexScreener and flags those below the dust threshold. With --routes, also
asks the aggregator which of them can be swapped into the reference asset.
Nothing is signed or submitted.

Usage:
    python -m scripts.scan_dust 0x<owner> --routes
    DUST_NETWORK=testnet python -m scripts.scan_dust 0x<owner> --threshold 2
"""

import argparse
import asyncio
from decimal import Decimal

import structlog

from dust_vacuum.balances import BalanceScanner, BalanceSheet
from dust_vacuum.config import VacuumConfig
from dust_vacuum.ledger import JsonRpcLedgerGateway
from dust_vacuum.orchestrator import RouteCheck, VacuumOrchestrator
from dust_vacuum.pricing import DexScreenerPriceSource
from dust_vacuum.routing import RouteResolver

logger = structlog.get_logger()


async def scan(
    owner: str, config: VacuumConfig, check_routes: bool
) -> tuple[BalanceSheet, list[RouteCheck]]:
    gateway = JsonRpcLedgerGateway(config)
    scanner = BalanceScanner(gateway, DexScreenerPriceSource(), config)
    sheet = await scanner.scan(owner)

    checks: list[RouteCheck] = []
    if check_routes and sheet.dust:
        orchestrator = VacuumOrchestrator(gateway, RouteResolver(config), config)
        checks = await orchestrator.check_routes(sheet.dust)
    return sheet, checks


def print_report(sheet: BalanceSheet, checks: list[RouteCheck]) -> None:
    routes = {c.asset_id: c for c in checks}
    print(f"\n{'SYMBOL':<12} {'UNITS':>20} {'USD':>12}  DUST  ROUTE")
    for balance in sheet.balances:
        check = routes.get(balance.asset_id)
        route = "-" if check is None else (f"{check.hops} hop(s)" if check.has_route else "none")
        print(
            f"{balance.symbol:<12} {balance.units:>20.6f} {balance.usd_value:>12.4f}"
            f"  {'yes' if balance.is_dust else 'no':<4}  {route}"
        )
    print(f"\n{len(sheet.dust)} dust balances worth ${sheet.total_dust_value:.4f}")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="List dust balances of a wallet")
    parser.add_argument("owner", help="Wallet address to scan")
    parser.add_argument(
        "--threshold",
        type=Decimal,
        default=None,
        help="Dust threshold in USD (clamped to the supported range)",
    )
    parser.add_argument(
        "--routes",
        action="store_true",
        help="Also query the aggregator for swap routes",
    )
    args = parser.parse_args()

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ]
    )

    config = VacuumConfig.from_env()
    if args.threshold is not None:
        config = config.with_overrides(dust_threshold_usd=args.threshold)

    logger.info("scan_started", owner=args.owner, network=config.network)
    sheet, checks = asyncio.run(scan(args.owner, config, args.routes))
    print_report(sheet, checks)


if __name__ == "__main__":
    main()
