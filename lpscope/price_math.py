"""
Price & Tick Conversion
=======================

Display prices are floats; fee and amount math never touches this module's
float helpers (see fee_math.py / liquidity_math.py).

Formulas (Uniswap V3 Whitepaper §6.1):
  Current price: p = (sqrtPriceX96 / 2^96)^2
  Tick → price:  p(i) = 1.0001^i
  Price → tick:  i = log(p) / log(1.0001)     (±1 tick float error accepted)

Decimal adjustment is one-sided: the raw ratio is multiplied by
10^max(decimals1 - decimals0, 0) and left alone when decimals1 < decimals0.

Display tiers (format_display_price):
  price < 0.0001       → "<0.0001"
  price > 1,000,000    → grouped integer, e.g. "4,851,652"
  price >= 1,000       → 4 decimals
  otherwise            → 6 decimals
Non-finite ticks, zero/empty sqrt prices and overflowing results render as
"N/A" and never raise.
"""

import math
from typing import Optional

from lpscope.uint_math import Q96, UINT256_MAX

NOT_AVAILABLE = "N/A"

# TickMath bounds: https://github.com/Uniswap/v3-core/blob/main/contracts/libraries/TickMath.sol
MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

TICK_BASE = 1.0001

# 2^128 / sqrt(1.0001)^(2^i), one entry per bit of |tick|
_TICK_RATIOS = (
    (0x2, 0xfff97272373d413259a46990580e213a),
    (0x4, 0xfff2e50f5f656932ef12357cf3c7fdcc),
    (0x8, 0xffe5caca7e10e4e61c3624eaa0941cd0),
    (0x10, 0xffcb9843d60f6159c9db58835c926644),
    (0x20, 0xff973b41fa98c081472e6896dfb254c0),
    (0x40, 0xff2ea16466c96a3843ec78b326b52861),
    (0x80, 0xfe5dee046a99a2a811c461f1969c3053),
    (0x100, 0xfcbe86c7900a88aedcffc83b479aa3a4),
    (0x200, 0xf987a7253ac413176f2b074cf7815e54),
    (0x400, 0xf3392b0822b70005940c7a398e4b70f3),
    (0x800, 0xe7159475a2c29b7443b29c7fa6e889d9),
    (0x1000, 0xd097f3bdfd2022b8845ad8f792aa5825),
    (0x2000, 0xa9f746462d870fdf8a65dc1f90e061e5),
    (0x4000, 0x70d869a156d2a1b890bb3df62baf32f7),
    (0x8000, 0x31be135f97d08fd981231505542fcfa6),
    (0x10000, 0x9aa508b5b7a84e1c677de54f3e99bc9),
    (0x20000, 0x5d6af8dedb81196699c329225ee604),
    (0x40000, 0x2216e584f5fa1ea926041bedfe98),
    (0x80000, 0x48a170391f7dc42444e8fa2),
)


# ── Exact TickMath ───────────────────────────────────────────────────────


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """sqrt(1.0001^tick) * 2^96 as a Q64.96, bit-exact with TickMath.sol.

    Raises:
        ValueError: |tick| > MAX_TICK.
    """
    abs_tick = abs(tick)
    if abs_tick > MAX_TICK:
        raise ValueError(f"tick out of range: {tick}")

    if abs_tick & 0x1:
        ratio = 0xfffcb933bd6fad37aa2d162d1a594001
    else:
        ratio = 0x100000000000000000000000000000000
    for bit, multiplier in _TICK_RATIOS:
        if abs_tick & bit:
            ratio = (ratio * multiplier) >> 128

    if tick > 0:
        ratio = UINT256_MAX // ratio

    # Q128.128 → Q64.96, rounding up
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


# ── Float price helpers ──────────────────────────────────────────────────


def _adjust(raw_price: float, decimals0: int, decimals1: int, invert: bool) -> Optional[float]:
    """
    Display scaling is one-sided: only a positive decimals1 - decimals0 gap
    multiplies the price; a pool whose token0 has more decimals is left
    unscaled, never divided by 10**(decimals0 - decimals1).
    """
    diff = decimals1 - decimals0
    price = raw_price * (10 ** (diff if diff > 0 else 0))
    if invert:
        if price == 0:
            return None
        price = 1 / price
    if not math.isfinite(price):
        return None
    return price


def _is_finite_tick(tick) -> bool:
    if isinstance(tick, bool) or tick is None:
        return False
    if isinstance(tick, int):
        return True
    if isinstance(tick, float):
        return math.isfinite(tick)
    return False


def sqrt_price_to_price_value(sqrt_price_x96, decimals0: int, decimals1: int,
                              invert: bool = False) -> Optional[float]:
    """Numeric form of ``sqrt_price_to_price``; None when not available."""
    if not sqrt_price_x96:
        return None
    try:
        sqrt_p = int(sqrt_price_x96) / Q96
        return _adjust(sqrt_p * sqrt_p, decimals0, decimals1, invert)
    except (OverflowError, ValueError, TypeError):
        return None


def tick_to_price_value(tick, decimals0: int, decimals1: int,
                        invert: bool = False) -> Optional[float]:
    """Numeric form of ``tick_to_price``; None when not available."""
    if not _is_finite_tick(tick):
        return None
    try:
        return _adjust(TICK_BASE ** tick, decimals0, decimals1, invert)
    except OverflowError:
        return None


def format_display_price(price: Optional[float]) -> str:
    """Apply the display tiers described in the module docstring."""
    if price is None or not math.isfinite(price):
        return NOT_AVAILABLE
    if price < 0.0001:
        return "<0.0001"
    if price > 1_000_000:
        return f"{price:,.0f}"
    if price >= 1_000:
        return f"{price:.4f}"
    return f"{price:.6f}"


def sqrt_price_to_price(sqrt_price_x96, decimals0: int, decimals1: int,
                        invert: bool = False) -> str:
    """
    Convert sqrtPriceX96 to a display price (token1 per token0).

    >>> sqrt_price_to_price(2 ** 96, 18, 18)
    '1.000000'
    >>> sqrt_price_to_price(0, 18, 18)
    'N/A'
    """
    return format_display_price(
        sqrt_price_to_price_value(sqrt_price_x96, decimals0, decimals1, invert)
    )


def tick_to_price(tick, decimals0: int, decimals1: int, invert: bool = False) -> str:
    """
    Convert a tick index to a display price.

    >>> tick_to_price(0, 18, 18)
    '1.000000'
    >>> tick_to_price(float("nan"), 18, 18)
    'N/A'
    """
    return format_display_price(tick_to_price_value(tick, decimals0, decimals1, invert))


def price_to_tick(price: float) -> int:
    """
    Nearest tick for a raw (undecimaled) price: round(log(p) / log(1.0001)).

    Raises:
        ValueError: price is not a positive finite number.
    """
    if price is None or not math.isfinite(price) or price <= 0:
        raise ValueError(f"price must be positive and finite, got {price}")
    return int(round(math.log(price) / math.log(TICK_BASE)))
