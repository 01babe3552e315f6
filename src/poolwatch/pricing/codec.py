# src/poolwatch/pricing/codec.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, Context, ROUND_HALF_EVEN

from poolwatch.errors import DecodeError

# Momentum/Sui CLMM pools store sqrt(price) as a Q64.64 fixed-point integer
# (Uniswap v3 uses Q96; this does not).
Q64 = Decimal(2) ** 64

PRICE_PLACES = 10
DISPLAY_PLACES = 8

_QUANT = Decimal(1).scaleb(-PRICE_PLACES)    # 1E-10
_DISPLAY = Decimal(1).scaleb(-DISPLAY_PLACES)

# sqrt_price is a u128; squaring needs ~80 significant digits to stay exact
_CTX = Context(prec=80, rounding=ROUND_HALF_EVEN)


def derive_price(
    raw_sqrt_price: str | int,
    decimals0: int = 6,
    decimals1: int = 6,
    invert: bool = False,
) -> Decimal:
    """
    price = (sqrt_price / 2^64)^2 * 10^(decimals0 - decimals1), optionally inverted,
    rounded to 10 decimal places. Pure Decimal math; float never enters.

    Raises DecodeError on non-numeric, non-finite or negative input, and when
    an inverted price would divide by zero.
    """
    try:
        sqrt_price = _CTX.create_decimal(str(raw_sqrt_price).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise DecodeError(f"malformed sqrt_price: {raw_sqrt_price!r}") from e

    if not sqrt_price.is_finite():
        raise DecodeError(f"non-finite sqrt_price: {raw_sqrt_price!r}")
    if sqrt_price < 0:
        raise DecodeError(f"negative sqrt_price: {raw_sqrt_price!r}")

    if invert and sqrt_price == 0:
        raise DecodeError("cannot invert a zero price")

    try:
        ratio = _CTX.divide(sqrt_price, Q64)
        price = _CTX.multiply(_CTX.multiply(ratio, ratio), _CTX.power(Decimal(10), decimals0 - decimals1))
        if invert:
            price = _CTX.divide(Decimal(1), price)
        return price.quantize(_QUANT, context=_CTX)
    except InvalidOperation as e:
        # quantize overflows past 80 significant digits
        raise DecodeError(f"price out of range for sqrt_price {raw_sqrt_price!r}") from e


def format_price(price: Decimal) -> str:
    """Display form: fixed 8 decimals."""
    return f"{price.quantize(_DISPLAY, context=_CTX):f}"
