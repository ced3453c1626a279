"""
LP Scope — Command Implementations
==================================

All CLI command handlers live here, keeping run.py as a thin
argparse dispatcher. Each public function corresponds to a
subcommand (info, platforms, positions, claim-data) and returns the
process exit code.
"""

from __future__ import annotations

from typing import Any, Dict, List

from lpscope.adapter_registry import AdapterRegistry, build_default_registry
from lpscope.central_config import PROJECT_NAME, PROJECT_VERSION, Settings
from lpscope.chain_registry import (
    get_chain,
    get_chain_name,
    get_platforms_for_chain,
    supported_chain_ids,
)
from lpscope.errors import LpScopeError, ProviderUnavailable, UnknownPlatform
from lpscope.format_helpers import format_fee_display
from lpscope.models import is_address
from lpscope.provider import JsonRpcProvider
from lpscope.transactions import build_collect_transaction


def build_registry(settings: Settings) -> AdapterRegistry:
    provider = JsonRpcProvider(settings.rpc_urls, timeout=settings.rpc_timeout)
    return build_default_registry(provider, max_concurrency=settings.max_concurrency)


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_info() -> int:
    """Display version and supported chains / platforms."""
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print("🔗 Protocol   : Uniswap V3 & compatible forks (concentrated liquidity)")
    print("📡 Data Source : On-chain via JSON-RPC (eth_call, no API key)")
    print()
    print("🌐 Chains:")
    for chain_id in supported_chain_ids():
        names = ", ".join(p["name"] for p in get_platforms_for_chain(chain_id))
        print(f"   {chain_id:>6}  {get_chain_name(chain_id):<20} {names}")
    print()
    print("🧮 Math:")
    print("   Fees    : feeGrowthInside (mod 2^256) × L / 2^128 + tokensOwed")
    print("   Amounts : SqrtPriceMath getAmount0Delta / getAmount1Delta")
    print("   Prices  : (sqrtPriceX96 / 2^96)^2, 1.0001^tick")
    return 0


def cmd_platforms(chain_id: int) -> int:
    """List configured platforms and contract addresses on a chain."""
    chain = get_chain(chain_id)
    if chain is None:
        print(f"❌ Unsupported chain: {chain_id}. Available: {supported_chain_ids()}")
        return 1
    print(f"\n🌐 {chain['name']} (chain {chain_id})")
    print(f"   RPC: {chain['rpc_url']}")
    print("=" * 65)
    for platform in chain["platforms"].values():
        status = "✅" if platform.get("enabled", True) else "⏸️ "
        print(f"\n  {status} {platform['name']} [{platform['id']}]")
        print(f"       Factory         : {platform['factory_address']}")
        print(f"       PositionManager : {platform['position_manager_address']}")
    return 0


def _print_position(i: int, view: Dict[str, Any]) -> None:
    status = "🟢 In range" if view["in_range"] else "⚪ Out of range"
    prices = view["prices"]
    print(f"\n    {i}. Position #{view['id']}")
    print(f"       Pair     : {view['token_pair']} ({view['fee'] / 10000:.2f}%)")
    print(f"       Pool     : {view['pool_address']}")
    print(f"       Status   : {status}")
    print(f"       Range    : {view['tick_lower']} → {view['tick_upper']}")
    print(f"       Price    : {prices['current_price']} "
          f"(range {prices['lower_price']} – {prices['upper_price']})")
    symbol0, _, symbol1 = view["token_pair"].partition("/")
    if "fees" in view:
        fees = view["fees"]
        print(f"       Fees     : {format_fee_display(fees['token0']['formatted'])} {symbol0}"
              f" + {format_fee_display(fees['token1']['formatted'])} {symbol1}")
    else:
        print(f"       Fees     : unavailable ({view['fee_error']})")
    if "amounts" in view:
        amounts = view["amounts"]
        print(f"       Holdings : {amounts['token0']['formatted']} {symbol0}"
              f" + {amounts['token1']['formatted']} {symbol1}")
    else:
        print(f"       Holdings : unavailable ({view['amount_error']})")


async def cmd_positions(registry: AdapterRegistry, owner: str, chain_id: int,
                        platform: str | None = None, invert: bool = False) -> int:
    """Fetch and print every position owned by ``owner`` on ``chain_id``."""
    if not is_address(owner):
        print("❌ Invalid wallet address. Must be 42 hex characters starting with 0x.")
        return 1

    try:
        if platform:
            adapters = [registry.get_adapter(platform)]
            adapters[0].contracts_for(chain_id)
        else:
            adapters = registry.get_adapters_for_chain(chain_id)
    except UnknownPlatform as e:
        print(f"❌ {e}")
        return 1
    if not adapters:
        print(f"❌ No platforms configured for chain {chain_id}")
        return 1

    print(f"\n🔄 Scanning {', '.join(a.platform_name for a in adapters)} "
          f"on {get_chain_name(chain_id)}...")
    print("=" * 65)
    print(f"  👛 Wallet: {owner}")

    total = 0
    partial: List[Dict[str, str]] = []
    for adapter in adapters:
        try:
            result = await adapter.get_positions(owner, chain_id)
        except ProviderUnavailable as e:
            print(f"\n❌ {adapter.platform_name}: provider unavailable: {e}")
            return 1
        view = adapter.describe_positions(result, invert=invert)
        if view["has_partial_data"]:
            partial.append(view["errors"])
        if not view["positions"]:
            continue
        print(f"\n  🔄 {adapter.platform_name}")
        for i, position in enumerate(view["positions"], 1):
            _print_position(i, position)
        total += len(view["positions"])

    print(f"\n{'=' * 65}")
    if total == 0:
        print("  No V3 positions found on this chain.")
    else:
        print(f"  Total: {total} position(s)")
    for errors in partial:
        print("\n  ⚠️  Partial data: some positions could not be read")
        for token_id, message in errors.items():
            print(f"     #{token_id}: {message}")
    print(f"{'=' * 65}")
    return 0


def cmd_claim_data(registry: AdapterRegistry, chain_id: int, platform: str,
                   position_id: int, recipient: str) -> int:
    """Print the collect() transaction for a position. Never sends it."""
    if not is_address(recipient):
        print("❌ Invalid recipient address. Must be 42 hex characters starting with 0x.")
        return 1
    try:
        adapter = registry.get_adapter(platform)
        nft_manager = adapter.contracts_for(chain_id)["position_manager_address"]
        tx = build_collect_transaction(nft_manager, position_id, recipient)
    except LpScopeError as e:
        print(f"❌ {e}")
        return 1

    print(f"\n🧾 collect() for {adapter.platform_name} position #{position_id}")
    print(f"   to    : {tx.to}")
    print(f"   value : {tx.value}")
    print(f"   data  : {tx.data}")
    return 0
