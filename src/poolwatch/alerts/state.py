from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

class Zone(str, Enum):
    INSIDE = "inside"
    OUTSIDE = "outside"

@dataclass(slots=True)
class PoolAlertState:
    """
    Working memory for one pool id.
    INSIDE  -> in_range_since set, outside_since/last_escalation_at None
    OUTSIDE -> outside_since/last_escalation_at set, in_range_since None
    Times are epoch seconds; the accumulator is integer milliseconds.
    """
    zone: Zone = Zone.INSIDE
    in_range_since: float | None = None
    outside_since: float | None = None
    last_escalation_at: float | None = None
    accumulated_in_range_ms: int = 0
    last_price: Decimal | None = None     # display only
    last_checked_at: float | None = None

    @classmethod
    def fresh(cls, since: float) -> "PoolAlertState":
        return cls(zone=Zone.INSIDE, in_range_since=since)

    def consistent(self) -> bool:
        if self.zone is Zone.INSIDE:
            return self.in_range_since is not None and self.outside_since is None and self.last_escalation_at is None
        return self.in_range_since is None and self.outside_since is not None and self.last_escalation_at is not None
