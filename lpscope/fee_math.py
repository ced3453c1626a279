"""
Uncollected Fee Accounting — Uniswap V3 Fee Growth
===================================================

Reproduces Pool.sol::_getFeeGrowthInside() and the position fee checkpoint
from Position.sol, entirely in integer arithmetic.

Step 1 — fee growth inside [tickLower, tickUpper), by current tick:
  currentTick <  tickLower : inside = lower.outside − upper.outside
  currentTick >= tickUpper : inside = upper.outside − lower.outside
  otherwise                : inside = (global − lower.outside) − upper.outside

Step 2 — growth since the last checkpoint:
  delta = inside − feeGrowthInsideLast

Step 3 — uncollected amount:
  uncollected = tokensOwed + ⌊liquidity × delta / 2^128⌋

Every subtraction is modulo 2^256 (see uint_math.wrapped_sub).

Refs:
  https://github.com/Uniswap/v3-core/blob/main/contracts/UniswapV3Pool.sol
  https://github.com/Uniswap/v3-core/blob/main/contracts/libraries/Position.sol
"""

from dataclasses import dataclass
from typing import Dict, Optional

from lpscope.errors import MissingTokenMetadata
from lpscope.format_helpers import format_units
from lpscope.models import Pool, Position, Token
from lpscope.uint_math import Q128, check_uint, mul_div, wrapped_sub

BELOW_RANGE = "below"
ABOVE_RANGE = "above"
INSIDE_RANGE = "inside"


# ── Branch selection ─────────────────────────────────────────────────────


def fee_growth_branch(current_tick: int, tick_lower: int, tick_upper: int) -> str:
    """
    Which fee-growth formula applies. The upper bound is exclusive here:
    ``current_tick == tick_upper`` is ABOVE_RANGE.

    >>> fee_growth_branch(100, -100, 100)
    'above'
    >>> fee_growth_branch(-100, -100, 100)
    'inside'
    """
    if current_tick < tick_lower:
        return BELOW_RANGE
    if current_tick >= tick_upper:
        return ABOVE_RANGE
    return INSIDE_RANGE


def is_accruing_fees(current_tick: int, tick_lower: int, tick_upper: int) -> bool:
    """True when the pool tick sits in [tick_lower, tick_upper), i.e. the position earns fees."""
    return fee_growth_branch(current_tick, tick_lower, tick_upper) == INSIDE_RANGE


def fee_growth_inside(current_tick: int, tick_lower: int, tick_upper: int,
                      fee_growth_global: int, lower_outside: int, upper_outside: int) -> int:
    """Fee growth per unit of liquidity inside the range, for one token."""
    branch = fee_growth_branch(current_tick, tick_lower, tick_upper)
    if branch == BELOW_RANGE:
        return wrapped_sub(lower_outside, upper_outside)
    if branch == ABOVE_RANGE:
        return wrapped_sub(upper_outside, lower_outside)
    return wrapped_sub(wrapped_sub(fee_growth_global, lower_outside), upper_outside)


def uncollected_fees(liquidity: int, fee_growth_inside_now: int,
                     fee_growth_inside_last: int, tokens_owed: int) -> int:
    """tokens_owed + ⌊liquidity × (inside_now − inside_last) / 2^128⌋."""
    check_uint(liquidity, 128, "liquidity")
    check_uint(tokens_owed, 128, "tokens_owed")
    delta = wrapped_sub(fee_growth_inside_now, fee_growth_inside_last)
    return tokens_owed + mul_div(liquidity, delta, Q128)


# ── Result types ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TokenAmount:
    raw: int
    formatted: str

    @classmethod
    def from_raw(cls, raw: int, decimals: int) -> "TokenAmount":
        return cls(raw=raw, formatted=format_units(raw, decimals))

    def as_dict(self) -> Dict[str, str]:
        return {"raw": str(self.raw), "formatted": self.formatted}


@dataclass(frozen=True)
class FeeResult:
    token0: TokenAmount
    token1: TokenAmount

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {"token0": self.token0.as_dict(), "token1": self.token1.as_dict()}


def require_decimals(token: Optional[Token], address: Optional[str] = None) -> int:
    """Token decimals, or MissingTokenMetadata when the token or its decimals are absent."""
    if token is None:
        raise MissingTokenMetadata(address)
    if token.decimals is None:
        raise MissingTokenMetadata(token.address)
    return token.decimals


def calculate_uncollected_fees(position: Position, pool: Pool,
                               token0: Optional[Token], token1: Optional[Token]) -> FeeResult:
    """
    Uncollected fees for both tokens of a position.

    Raises:
        MissingTickData: either boundary tick is absent from the pool snapshot.
        MissingTokenMetadata: a token (or its decimals) is unknown.
    """
    decimals0 = require_decimals(token0, position.token0)
    decimals1 = require_decimals(token1, position.token1)
    lower = pool.require_tick(position.tick_lower)
    upper = pool.require_tick(position.tick_upper)

    inside0 = fee_growth_inside(
        pool.tick, position.tick_lower, position.tick_upper,
        pool.fee_growth_global0_x128,
        lower.fee_growth_outside0_x128, upper.fee_growth_outside0_x128,
    )
    inside1 = fee_growth_inside(
        pool.tick, position.tick_lower, position.tick_upper,
        pool.fee_growth_global1_x128,
        lower.fee_growth_outside1_x128, upper.fee_growth_outside1_x128,
    )

    fees0 = uncollected_fees(position.liquidity, inside0,
                             position.fee_growth_inside0_last_x128, position.tokens_owed0)
    fees1 = uncollected_fees(position.liquidity, inside1,
                             position.fee_growth_inside1_last_x128, position.tokens_owed1)

    return FeeResult(
        token0=TokenAmount.from_raw(fees0, decimals0),
        token1=TokenAmount.from_raw(fees1, decimals1),
    )
