#!/usr/bin/env python3
"""
LP Scope -- Concentrated-Liquidity Position Inspector
=====================================================

Range status, prices, uncollected fees and token amounts for V3-compatible
LP positions. Supports: Uniswap V3, PancakeSwap V3, SushiSwap V3.

Usage:
  python run.py info                                              Version + supported chains
  python run.py platforms  --chain <id>                           Platforms and addresses on a chain
  python run.py positions  <owner> --chain <id>                   All platforms on a chain
  python run.py positions  <owner> --chain <id> --platform <id>   One platform only
  python run.py claim-data --chain <id> --platform <id> --position <tokenId> --recipient <0x…>

Sources:
  Uniswap V3 Whitepaper : https://uniswap.org/whitepaper-v3.pdf
  Uniswap V3 Docs       : https://docs.uniswap.org/
"""

import argparse
import asyncio
import sys

from lpscope.central_config import PROJECT_NAME, PROJECT_VERSION, load_settings, setup_logging
from lpscope.commands import (
    build_registry,
    cmd_claim_data,
    cmd_info,
    cmd_platforms,
    cmd_positions,
)


# ── CLI Parser ────────────────────────────────────────────────────────────


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lpscope",
        description=f"{PROJECT_NAME} v{PROJECT_VERSION} — V3 LP position inspector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py positions 0xWALLET --chain 42161                       Scan all platforms on Arbitrum
  python run.py positions 0xWALLET --chain 56 --platform pancakeswapV3 PancakeSwap on BSC only
  python run.py positions 0xWALLET --chain 1 --invert                  Show token0 per token1
  python run.py claim-data --chain 42161 --platform uniswapV3 --position 5260106 --recipient 0xWALLET

Platforms: uniswapV3, pancakeswapV3, sushiswapV3
Environment: LPSCOPE_LOG_LEVEL, LPSCOPE_RPC_TIMEOUT, LPSCOPE_MAX_CONCURRENCY, LPSCOPE_RPC_<chainId>
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"{PROJECT_NAME} v{PROJECT_VERSION}"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    sub.add_parser("info", help="Version and supported chains")

    platforms_p = sub.add_parser("platforms", help="Configured platforms on a chain")
    platforms_p.add_argument("--chain", type=int, required=True, help="Chain id (e.g. 42161)")

    positions_p = sub.add_parser("positions", help="Inspect LP positions owned by a wallet")
    positions_p.add_argument("owner", help="Wallet address (0x…)")
    positions_p.add_argument("--chain", type=int, required=True, help="Chain id (e.g. 42161)")
    positions_p.add_argument(
        "--platform",
        type=str,
        default=None,
        help="Platform id: uniswapV3, pancakeswapV3, sushiswapV3 (default: all on chain)",
    )
    positions_p.add_argument(
        "--invert", action="store_true", help="Show prices as token0 per token1"
    )

    claim_p = sub.add_parser("claim-data", help="Print the collect-fees transaction (never sends)")
    claim_p.add_argument("--chain", type=int, required=True, help="Chain id (e.g. 42161)")
    claim_p.add_argument("--platform", type=str, required=True, help="Platform id")
    claim_p.add_argument("--position", type=int, required=True, help="Position NFT tokenId")
    claim_p.add_argument("--recipient", type=str, required=True, help="Fee recipient (0x…)")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        return 2
    setup_logging(settings)

    if args.command == "info":
        return cmd_info()
    if args.command == "platforms":
        return cmd_platforms(args.chain)

    registry = build_registry(settings)
    if args.command == "positions":
        return asyncio.run(
            cmd_positions(
                registry,
                owner=args.owner,
                chain_id=args.chain,
                platform=args.platform,
                invert=args.invert,
            )
        )
    if args.command == "claim-data":
        return cmd_claim_data(
            registry,
            chain_id=args.chain,
            platform=args.platform,
            position_id=args.position,
            recipient=args.recipient,
        )

    parser.print_help()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
