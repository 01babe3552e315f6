from decimal import Decimal

import pytest

from poolwatch.errors import DecodeError
from poolwatch.pricing.codec import Q64, derive_price, format_price
from tests.helpers.fakes import raw_for

ONE = str(2 ** 64)

def test_unit_sqrt_price_is_parity():
    assert derive_price(ONE) == Decimal("1")
    assert derive_price(ONE).as_tuple().exponent == -10

def test_square_of_ratio():
    assert derive_price(str(2 * 2 ** 64)) == Decimal("4")
    assert derive_price(str(2 ** 63)) == Decimal("0.25")

def test_decimal_adjustment():
    assert derive_price(ONE, decimals0=9, decimals1=6) == Decimal("1000")
    assert derive_price(ONE, decimals0=6, decimals1=9) == Decimal("0.001")

def test_invert_takes_reciprocal():
    assert derive_price(str(2 * 2 ** 64), invert=True) == Decimal("0.25")

def test_invert_and_plain_are_reciprocal():
    raw = raw_for("3.2")
    p = derive_price(raw, 6, 6, False)
    q = derive_price(raw, 6, 6, True)
    assert abs(p * q - 1) < Decimal("1e-9")

def test_deterministic():
    raw = raw_for("1.0012345")
    assert derive_price(raw, 6, 6) == derive_price(raw, 6, 6)
    assert abs(derive_price(raw) - Decimal("1.0012345")) < Decimal("1e-9")

def test_accepts_int_and_whitespace():
    assert derive_price(2 ** 64) == Decimal("1")
    assert derive_price(f"  {ONE}\n") == Decimal("1")

def test_full_u128_range_does_not_overflow():
    price = derive_price(str(2 ** 128 - 1), decimals0=18, decimals1=6)
    assert price > 0

@pytest.mark.parametrize("bad", ["abc", "", "NaN", "Infinity", "-5", "1e", None])
def test_malformed_input_raises_decode_error(bad):
    with pytest.raises(DecodeError):
        derive_price(bad)

def test_zero_price_cannot_be_inverted():
    assert derive_price("0") == 0
    with pytest.raises(DecodeError):
        derive_price("0", invert=True)

def test_decode_error_is_value_error():
    with pytest.raises(ValueError):
        derive_price("not-a-number")

def test_format_price_eight_places():
    assert format_price(Decimal("1")) == "1.00000000"
    assert format_price(Decimal("0.12345678949")) == "0.12345679"

def test_q64_constant():
    assert Q64 == Decimal(18446744073709551616)
