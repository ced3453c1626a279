"""
Token Amounts at the Current Price
==================================

Integer port of SqrtPriceMath.getAmount0Delta / getAmount1Delta (rounding
down), with the range clamp from the SDK's Position.amount0 / amount1:

  Below range (tick <  tickLower): all token0
      amount0 = L × (√P_upper − √P_lower) / (√P_upper × √P_lower)
  Above range (tick >= tickUpper): all token1
      amount1 = L × (√P_upper − √P_lower)
  In range:
      amount0 = L × (√P_upper − √P) / (√P_upper × √P)
      amount1 = L × (√P − √P_lower)

Square roots are Q64.96 (sqrtPriceX96) throughout.

Refs:
  https://github.com/Uniswap/v3-core/blob/main/contracts/libraries/SqrtPriceMath.sol
  https://github.com/Uniswap/v3-sdk/blob/main/src/entities/position.ts
"""

from dataclasses import dataclass
from typing import Dict, Optional

from lpscope.fee_math import TokenAmount, require_decimals
from lpscope.models import Pool, Position, Token
from lpscope.price_math import get_sqrt_ratio_at_tick
from lpscope.uint_math import Q96, check_uint


def _ordered(sqrt_a: int, sqrt_b: int):
    if sqrt_a > sqrt_b:
        return sqrt_b, sqrt_a
    return sqrt_a, sqrt_b


def get_amount0_delta(sqrt_ratio_a: int, sqrt_ratio_b: int, liquidity: int) -> int:
    """Amount of token0 between two sqrt prices, rounded down."""
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a, sqrt_ratio_b)
    if sqrt_a == 0:
        raise ValueError("sqrt price must be positive")
    numerator1 = liquidity << 96
    numerator2 = sqrt_b - sqrt_a
    return (numerator1 * numerator2 // sqrt_b) // sqrt_a


def get_amount1_delta(sqrt_ratio_a: int, sqrt_ratio_b: int, liquidity: int) -> int:
    """Amount of token1 between two sqrt prices, rounded down."""
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a, sqrt_ratio_b)
    return liquidity * (sqrt_b - sqrt_a) // Q96


def amounts_for_liquidity(liquidity: int, sqrt_price_x96: int, current_tick: int,
                          tick_lower: int, tick_upper: int):
    """Raw (amount0, amount1) represented by ``liquidity`` at the current price."""
    check_uint(liquidity, 128, "liquidity")
    if liquidity == 0:
        return 0, 0

    sqrt_lower = get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = get_sqrt_ratio_at_tick(tick_upper)

    if current_tick < tick_lower:
        return get_amount0_delta(sqrt_lower, sqrt_upper, liquidity), 0
    if current_tick >= tick_upper:
        return 0, get_amount1_delta(sqrt_lower, sqrt_upper, liquidity)
    return (
        get_amount0_delta(sqrt_price_x96, sqrt_upper, liquidity),
        get_amount1_delta(sqrt_lower, sqrt_price_x96, liquidity),
    )


@dataclass(frozen=True)
class AmountResult:
    token0: TokenAmount
    token1: TokenAmount

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {"token0": self.token0.as_dict(), "token1": self.token1.as_dict()}


def calculate_token_amounts(position: Position, pool: Pool,
                            token0: Optional[Token], token1: Optional[Token]) -> AmountResult:
    decimals0 = require_decimals(token0, position.token0)
    decimals1 = require_decimals(token1, position.token1)
    amount0, amount1 = amounts_for_liquidity(
        position.liquidity, pool.sqrt_price_x96, pool.tick,
        position.tick_lower, position.tick_upper,
    )
    return AmountResult(
        token0=TokenAmount.from_raw(amount0, decimals0),
        token1=TokenAmount.from_raw(amount1, decimals1),
    )
