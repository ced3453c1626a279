"""Generic formatting helpers shared by every platform adapter."""

from decimal import Context, Decimal, InvalidOperation

_WIDE = Context(prec=100)


def format_units(value: int, decimals: int) -> str:
    """Render a raw integer token amount with ``decimals`` decimal places.

    Integer-only: the fraction is zero-padded on the left and stripped of
    trailing zeros.

    >>> format_units(1234500000000000000, 18)
    '1.2345'
    >>> format_units(0, 6)
    '0'
    >>> format_units(1500000, 6)
    '1.5'
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"value must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"value must be non-negative, got {value}")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    if value == 0:
        return "0"
    if decimals == 0:
        return str(value)

    divisor = 10 ** decimals
    integer_part = str(value // divisor)
    fractional_part = str(value % divisor).zfill(decimals).rstrip("0")
    if not fractional_part:
        return integer_part
    return f"{integer_part}.{fractional_part}"


def format_fee_display(value) -> str:
    """Short fee label: at most 4 decimals, "< 0.0001" for dust.

    >>> format_fee_display("0.00123456")
    '0.0012'
    >>> format_fee_display("2.50000")
    '2.5'
    """
    try:
        num = Decimal(str(value))
    except InvalidOperation:
        return "N/A"
    if not num.is_finite():
        return "N/A"
    if num == 0:
        return "0"
    if num < Decimal("0.0001"):
        return "< 0.0001"
    text = f"{num.quantize(Decimal('0.0001'), context=_WIDE):f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
