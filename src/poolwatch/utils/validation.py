from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Sequence

from poolwatch.errors import ValidationError
from poolwatch.utils.types import PoolConfig

_TRUE = {"true", "1", "yes", "y"}
_FALSE = {"false", "0", "no", "n", ""}


def parse_bound(text: str, label: str) -> Decimal:
    try:
        value = Decimal(str(text).strip().replace(",", "."))
    except InvalidOperation as e:
        raise ValidationError(f"{label} must be a number, got {text!r}") from e
    if not value.is_finite():
        raise ValidationError(f"{label} must be finite, got {text!r}")
    return value


def validate_bounds(lo: Decimal, hi: Decimal) -> None:
    if not (lo.is_finite() and hi.is_finite()):
        raise ValidationError("bounds must be finite numbers")
    if lo > hi:
        raise ValidationError(f"min {lo} is greater than max {hi}")


def parse_flag(text: str | None) -> bool:
    t = (text or "").strip().lower()
    if t in _TRUE:
        return True
    if t in _FALSE:
        return False
    raise ValidationError(f"invert must be true/false, got {text!r}")


def parse_pool_fields(parts: Sequence[str]) -> PoolConfig:
    """
    [id, name, min, max] or [id, name, min, max, invert] -> PoolConfig
    (decimals default to 6/6).
    """
    parts = [p.strip() for p in parts]
    if not 4 <= len(parts) <= 5:
        raise ValidationError(f"expected 4-5 fields (id, name, min, max[, invert]), got {len(parts)}")
    pool_id, name = parts[0], parts[1]
    if not pool_id:
        raise ValidationError("pool id is empty")
    lo = parse_bound(parts[2], "min")
    hi = parse_bound(parts[3], "max")
    validate_bounds(lo, hi)
    invert = parse_flag(parts[4]) if len(parts) == 5 else False
    return PoolConfig(id=pool_id, name=name or pool_id[:10], min=lo, max=hi, invert=invert)


def parse_pools_env(value: str | None) -> list[PoolConfig]:
    """POOLS="0xabc|USDT/USDC|0.998|1.002;0xdef|SUI/USDC|3.1|3.6|true" """
    pools: list[PoolConfig] = []
    for chunk in (value or "").split(";"):
        if chunk.strip():
            pools.append(parse_pool_fields(chunk.split("|")))
    return pools
