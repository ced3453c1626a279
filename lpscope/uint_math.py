"""
Fixed-Width Unsigned Arithmetic — uint128 / uint256
====================================================

Fee-growth counters on a V3 pool are uint256 values that are allowed to
overflow; every subtraction between them is modulo 2^256. Python ints are
unbounded, so the wrapping has to be explicit. Nothing in this module ever
produces a negative intermediate or a float.

Solidity references:
  unchecked fee-growth math   : https://github.com/Uniswap/v3-core/blob/main/contracts/UniswapV3Pool.sol
  FullMath.mulDiv             : https://github.com/Uniswap/v3-core/blob/main/contracts/libraries/FullMath.sol

Terminology:
  • Q96:  2^96  — fixed-point denominator for sqrtPriceX96
  • Q128: 2^128 — fixed-point denominator for feeGrowth*X128
  • Q256: 2^256 — modulus for uint256 wraparound
"""

# ── Fixed-Point Constants ───────────────────────────────────────────────

Q96 = 2 ** 96
Q128 = 2 ** 128
Q256 = 2 ** 256

UINT128_MAX = Q128 - 1
UINT160_MAX = 2 ** 160 - 1
UINT256_MAX = Q256 - 1

_WIDTH_MAX = {8: 2 ** 8 - 1, 16: 2 ** 16 - 1, 24: 2 ** 24 - 1, 96: 2 ** 96 - 1,
              128: UINT128_MAX, 160: UINT160_MAX, 256: UINT256_MAX}


def check_uint(value: int, bits: int = 256, field: str = "value") -> int:
    """Return ``value`` unchanged if it fits an unsigned ``bits``-wide integer.

    Raises:
        TypeError: value is not an int (bools and floats are rejected).
        ValueError: value is negative or wider than ``bits``.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field} must be an int, got {type(value).__name__}")
    limit = _WIDTH_MAX.get(bits)
    if limit is None:
        limit = 2 ** bits - 1
    if value < 0 or value > limit:
        raise ValueError(f"{field} out of range for uint{bits}: {value}")
    return value


def _wrapped_sub(a: int, b: int, modulus: int) -> int:
    if a >= b:
        return a - b
    return modulus - (b - a)


def wrapped_sub(a: int, b: int) -> int:
    """(a - b) mod 2^256.

    >>> wrapped_sub(5, 3)
    2
    >>> wrapped_sub(0, 1) == UINT256_MAX
    True
    """
    check_uint(a, 256, "a")
    check_uint(b, 256, "b")
    return _wrapped_sub(a, b, Q256)


def wrapped_sub128(a: int, b: int) -> int:
    """(a - b) mod 2^128."""
    check_uint(a, 128, "a")
    check_uint(b, 128, "b")
    return _wrapped_sub(a, b, Q128)


def wrapped_add(a: int, b: int) -> int:
    """(a + b) mod 2^256."""
    check_uint(a, 256, "a")
    check_uint(b, 256, "b")
    return (a + b) % Q256


def mul256(a: int, b: int) -> int:
    """(a * b) mod 2^256, as an unchecked Solidity multiply."""
    check_uint(a, 256, "a")
    check_uint(b, 256, "b")
    return (a * b) % Q256


def div256(a: int, b: int) -> int:
    """Floor division of two uint256 values.

    Raises:
        ZeroDivisionError: b == 0 (Solidity reverts here too).
    """
    check_uint(a, 256, "a")
    check_uint(b, 256, "b")
    if b == 0:
        raise ZeroDivisionError("uint256 division by zero")
    return a // b


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with a full-width 512-bit intermediate.

    Unlike ``mul256`` the product is never truncated; only the final result
    must fit in 256 bits, as in FullMath.mulDiv.
    """
    check_uint(a, 256, "a")
    check_uint(b, 256, "b")
    check_uint(denominator, 256, "denominator")
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    result = (a * b) // denominator
    check_uint(result, 256, "mul_div result")
    return result
