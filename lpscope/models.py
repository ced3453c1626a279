"""
Position / Pool / Token Snapshots
=================================

Read-only values assembled by an adapter's fetch step for one computation
pass. The engine never mutates them; re-fetch to observe new chain state.

  Token     — address, decimals, symbol, name (+ owner wallet balance)
  TickInfo  — feeGrowthOutside0/1X128, initialized
  Pool      — slot0 price/tick, liquidity, feeGrowthGlobal0/1X128,
              tickSpacing and a sparse tick table
  Position  — NFT id, pool reference, tick range, liquidity,
              feeGrowthInside0/1LastX128, tokensOwed0/1

Field widths follow the NonfungiblePositionManager / UniswapV3Pool ABIs:
  https://github.com/Uniswap/v3-periphery/blob/main/contracts/NonfungiblePositionManager.sol
  https://github.com/Uniswap/v3-core/blob/main/contracts/UniswapV3Pool.sol
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from lpscope.errors import LpScopeError, MalformedPositionData, MissingTickData
from lpscope.price_math import MAX_TICK, MIN_TICK
from lpscope.uint_math import check_uint

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
ZERO_ADDRESS = "0x" + "0" * 40

# Fee tier (hundredths of a bip) → tick spacing
FEE_TIER_TICK_SPACING = MappingProxyType({
    100: 1,
    500: 10,
    3000: 60,
    10000: 200,
})
FEE_TIERS: FrozenSet[int] = frozenset(FEE_TIER_TICK_SPACING)


def is_address(value) -> bool:
    return isinstance(value, str) and bool(ADDRESS_RE.match(value))


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """Order two token addresses the way the factory does (numeric address order)."""
    if token_a.lower() == token_b.lower():
        raise MalformedPositionData(f"Identical token addresses: {token_a}")
    if int(token_a, 16) < int(token_b, 16):
        return token_a, token_b
    return token_b, token_a


def is_in_range(current_tick: int, tick_lower: int, tick_upper: int) -> bool:
    """
    Range indicator shown to users; inclusive at BOTH ends.

    Fee accounting uses an exclusive upper bound instead
    (see fee_math.fee_growth_branch).

    >>> is_in_range(100, -100, 100)
    True
    """
    return tick_lower <= current_tick <= tick_upper


def _uint(value: int, bits: int, name: str) -> int:
    try:
        return check_uint(value, bits, name)
    except (TypeError, ValueError) as e:
        raise MalformedPositionData(str(e)) from e


# ── Snapshots ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Token:
    """ERC-20 metadata. ``decimals`` is None when the fetch could not read it."""

    address: str
    decimals: Optional[int]
    symbol: str = ""
    name: str = ""
    balance: Optional[int] = None

    def __post_init__(self):
        if not is_address(self.address):
            raise MalformedPositionData(f"Invalid token address: {self.address!r}")
        if self.decimals is not None:
            _uint(self.decimals, 8, "decimals")

    def to_view(self) -> Dict:
        return {
            "address": self.address,
            "decimals": self.decimals,
            "symbol": self.symbol,
            "name": self.name,
            "balance": str(self.balance) if self.balance is not None else None,
        }


@dataclass(frozen=True)
class TickInfo:
    fee_growth_outside0_x128: int = 0
    fee_growth_outside1_x128: int = 0
    initialized: bool = False

    def __post_init__(self):
        _uint(self.fee_growth_outside0_x128, 256, "fee_growth_outside0_x128")
        _uint(self.fee_growth_outside1_x128, 256, "fee_growth_outside1_x128")


UNINITIALIZED_TICK = TickInfo()


@dataclass(frozen=True)
class Pool:
    address: str
    token0: str
    token1: str
    fee: int
    tick_spacing: int
    tick: int
    sqrt_price_x96: int
    liquidity: int
    fee_growth_global0_x128: int
    fee_growth_global1_x128: int
    ticks: Mapping[int, TickInfo] = field(default_factory=dict)

    def __post_init__(self):
        if not is_address(self.address):
            raise MalformedPositionData(f"Invalid pool address: {self.address!r}")
        _uint(self.fee, 24, "fee")
        if self.tick_spacing <= 0:
            raise MalformedPositionData(f"tick_spacing must be positive, got {self.tick_spacing}")
        if not MIN_TICK <= self.tick <= MAX_TICK:
            raise MalformedPositionData(f"Pool tick out of range: {self.tick}")
        _uint(self.sqrt_price_x96, 160, "sqrt_price_x96")
        _uint(self.liquidity, 128, "liquidity")
        _uint(self.fee_growth_global0_x128, 256, "fee_growth_global0_x128")
        _uint(self.fee_growth_global1_x128, 256, "fee_growth_global1_x128")
        # freeze the tick table
        object.__setattr__(self, "ticks", MappingProxyType(dict(self.ticks)))

    def get_tick(self, tick: int) -> TickInfo:
        """Tick state; an absent tick reads as uninitialized with zero growth."""
        return self.ticks.get(tick, UNINITIALIZED_TICK)

    def require_tick(self, tick: int) -> TickInfo:
        """Tick state for fee math, which refuses ticks that were never fetched."""
        info = self.ticks.get(tick)
        if info is None:
            raise MissingTickData(tick, self.address)
        return info

    def to_view(self) -> Dict:
        return {
            "address": self.address,
            "token0": self.token0,
            "token1": self.token1,
            "fee": self.fee,
            "tick_spacing": self.tick_spacing,
            "tick": self.tick,
            "sqrt_price_x96": str(self.sqrt_price_x96),
            "liquidity": str(self.liquidity),
            "fee_growth_global0_x128": str(self.fee_growth_global0_x128),
            "fee_growth_global1_x128": str(self.fee_growth_global1_x128),
            "ticks": {
                str(t): {
                    "fee_growth_outside0_x128": str(info.fee_growth_outside0_x128),
                    "fee_growth_outside1_x128": str(info.fee_growth_outside1_x128),
                    "initialized": info.initialized,
                }
                for t, info in sorted(self.ticks.items())
            },
        }


@dataclass(frozen=True)
class Position:
    id: str
    pool_address: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int = 0
    fee_growth_inside1_last_x128: int = 0
    tokens_owed0: int = 0
    tokens_owed1: int = 0
    platform: str = ""
    platform_name: str = ""
    chain_id: Optional[int] = None

    def __post_init__(self):
        if self.tick_lower >= self.tick_upper:
            raise MalformedPositionData(
                f"Position {self.id}: tick_lower {self.tick_lower} >= tick_upper {self.tick_upper}"
            )
        for name in ("tick_lower", "tick_upper"):
            value = getattr(self, name)
            if not MIN_TICK <= value <= MAX_TICK:
                raise MalformedPositionData(f"Position {self.id}: {name} out of range: {value}")
        _uint(self.liquidity, 128, "liquidity")
        _uint(self.fee_growth_inside0_last_x128, 256, "fee_growth_inside0_last_x128")
        _uint(self.fee_growth_inside1_last_x128, 256, "fee_growth_inside1_last_x128")
        _uint(self.tokens_owed0, 128, "tokens_owed0")
        _uint(self.tokens_owed1, 128, "tokens_owed1")

    def to_view(self) -> Dict:
        return {
            "id": self.id,
            "pool_address": self.pool_address,
            "token0": self.token0,
            "token1": self.token1,
            "fee": self.fee,
            "tick_lower": self.tick_lower,
            "tick_upper": self.tick_upper,
            "liquidity": str(self.liquidity),
            "fee_growth_inside0_last_x128": str(self.fee_growth_inside0_last_x128),
            "fee_growth_inside1_last_x128": str(self.fee_growth_inside1_last_x128),
            "tokens_owed0": str(self.tokens_owed0),
            "tokens_owed1": str(self.tokens_owed1),
            "platform": self.platform,
            "platform_name": self.platform_name,
            "chain_id": self.chain_id,
        }


def validate_snapshot(position: Position, pool: Pool,
                      fee_tiers: FrozenSet[int] = FEE_TIERS) -> None:
    """
    Cross-check a position against its pool before any computation runs.

    Raises:
        MalformedPositionData: pool/token mismatch, unsorted tokens,
            unsupported fee tier, or ticks off the pool's tick spacing.
    """
    if position.pool_address.lower() != pool.address.lower():
        raise MalformedPositionData(
            f"Position {position.id} belongs to {position.pool_address}, not {pool.address}"
        )
    if (position.token0.lower(), position.token1.lower()) != (pool.token0.lower(), pool.token1.lower()):
        raise MalformedPositionData(f"Position {position.id}: token pair does not match pool")
    if sort_tokens(pool.token0, pool.token1) != (pool.token0, pool.token1):
        raise MalformedPositionData(f"Pool {pool.address}: token0 must sort before token1")
    if pool.fee not in fee_tiers:
        raise MalformedPositionData(f"Pool {pool.address}: unsupported fee tier {pool.fee}")
    for name in ("tick_lower", "tick_upper"):
        value = getattr(position, name)
        if value % pool.tick_spacing != 0:
            raise MalformedPositionData(
                f"Position {position.id}: {name} {value} is not a multiple of "
                f"tick spacing {pool.tick_spacing}"
            )


# ── Query results ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PriceInfo:
    """Display prices for a position; each price is a string or "N/A"."""

    current_price: str
    lower_price: str
    upper_price: str
    token0_symbol: str = ""
    token1_symbol: str = ""

    def as_dict(self) -> Dict[str, str]:
        return {
            "current_price": self.current_price,
            "lower_price": self.lower_price,
            "upper_price": self.upper_price,
            "token0_symbol": self.token0_symbol,
            "token1_symbol": self.token1_symbol,
        }


@dataclass
class PositionsResult:
    """
    Output of ``PlatformAdapter.get_positions``.

    ``errors`` maps token id → error message for every position that could
    not be fetched; ``has_partial_data`` is True whenever anything was skipped.
    """

    positions: List[Position] = field(default_factory=list)
    pools: Dict[str, Pool] = field(default_factory=dict)
    tokens: Dict[str, Token] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    has_partial_data: bool = False

    def mark_failed(self, token_id, error: Exception) -> None:
        if isinstance(error, LpScopeError):
            message = str(error) or type(error).__name__
        else:
            message = f"{type(error).__name__}: {error}" if str(error) else type(error).__name__
        self.errors[str(token_id)] = message
        self.has_partial_data = True
