from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TypedDict, Literal, Optional

from poolwatch.utils.time import utc_now_s

# ---- pool-level primitives ----

@dataclass(slots=True)
class PoolConfig:
    """
    Monitoring policy for one on-chain pool.
    Price is outside when price < min or price > max; both bounds are safe.
    """
    id: str
    name: str
    min: Decimal
    max: Decimal
    decimals0: int = 6
    decimals1: int = 6
    invert: bool = False
    added_at: float = field(default_factory=utc_now_s)  # epoch seconds

    def contains(self, price: Decimal) -> bool:
        return self.min <= price <= self.max


@dataclass(slots=True)
class PoolStatus:
    """Live price snapshot for /status (never touches alert state)."""
    config: PoolConfig
    price: Optional[Decimal]
    error: Optional[str] = None

    @property
    def outside(self) -> bool:
        return self.price is not None and not self.config.contains(self.price)

# ---- alerting domain ----

AlertType = Literal["breach", "escalation", "recovery"]

class AlertEvent(TypedDict, total=False):
    pool_id: str
    name: str
    type: AlertType
    price: Decimal
    min: Decimal
    max: Decimal
    ts: float
    hours_outside: int
    minutes_outside: int
    message: str
