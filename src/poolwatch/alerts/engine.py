# src/poolwatch/alerts/engine.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import structlog

from poolwatch.alerts.rules import EscalationRule, FeatureToggles
from poolwatch.alerts.state import PoolAlertState, Zone
from poolwatch.pricing.codec import format_price
from poolwatch.utils.time import outside_label, seconds_since, to_ms
from poolwatch.utils.types import AlertEvent, PoolConfig

log = structlog.get_logger("alert_engine")


@dataclass(slots=True)
class EngineConfig:
    escalation: EscalationRule = field(default_factory=EscalationRule)


class AlertEngine:
    """
    Inside/outside state machine, one PoolAlertState per pool id.

    evaluate() is the only transition path:
      INSIDE  + outside price  -> OUTSIDE, "breach"
      OUTSIDE + outside price  -> OUTSIDE, "escalation" once per interval (toggle)
      OUTSIDE + inside price   -> INSIDE,  "recovery" (toggle)
    Callers must not call evaluate() when no price is available; the
    state is left exactly as it was.
    """
    def __init__(self, toggles: Optional[FeatureToggles] = None, cfg: Optional[EngineConfig] = None):
        self.toggles = toggles or FeatureToggles()
        self.cfg = cfg or EngineConfig()
        self._states: dict[str, PoolAlertState] = {}

    # --- state table ---

    def _state_for(self, pool: PoolConfig) -> PoolAlertState:
        st = self._states.get(pool.id)
        if st is None:
            st = PoolAlertState.fresh(since=pool.added_at)
            self._states[pool.id] = st
        return st

    def state_for(self, pool_id: str) -> Optional[PoolAlertState]:
        """Copy of the tracked state, or None if the pool was never evaluated."""
        st = self._states.get(pool_id)
        if st is None:
            return None
        return PoolAlertState(
            zone=st.zone,
            in_range_since=st.in_range_since,
            outside_since=st.outside_since,
            last_escalation_at=st.last_escalation_at,
            accumulated_in_range_ms=st.accumulated_in_range_ms,
            last_price=st.last_price,
            last_checked_at=st.last_checked_at,
        )

    def zone_of(self, pool_id: str) -> Zone:
        st = self._states.get(pool_id)
        return st.zone if st is not None else Zone.INSIDE

    def reset(self, pool_id: str, now: float) -> None:
        """Bounds changed: start over INSIDE with a zero accumulator."""
        self._states[pool_id] = PoolAlertState.fresh(since=now)

    def discard(self, pool_id: str) -> None:
        self._states.pop(pool_id, None)

    def total_in_range_ms(self, pool_id: str, now: float) -> int:
        st = self._states.get(pool_id)
        if st is None:
            return 0
        total = st.accumulated_in_range_ms
        if st.zone is Zone.INSIDE and st.in_range_since is not None:
            total += to_ms(seconds_since(st.in_range_since, now))
        return total

    # --- core evaluation ---

    def evaluate(self, pool: PoolConfig, price: Decimal, now: float) -> list[AlertEvent]:
        st = self._state_for(pool)
        st.last_price = price
        st.last_checked_at = now
        inside = pool.contains(price)

        if st.zone is Zone.INSIDE:
            if inside:
                return []
            if st.in_range_since is not None:
                st.accumulated_in_range_ms += to_ms(seconds_since(st.in_range_since, now))
            st.zone = Zone.OUTSIDE
            st.in_range_since = None
            st.outside_since = now
            st.last_escalation_at = now
            log.info("pool_breach", pool_id=pool.id, name=pool.name, price=format_price(price))
            return [self._event(pool, "breach", price, now,
                                f"{pool.name} left range {pool.min}–{pool.max} at {format_price(price)}")]

        # OUTSIDE
        if inside:
            st.zone = Zone.INSIDE
            st.outside_since = None
            st.last_escalation_at = None
            st.in_range_since = now
            log.info("pool_recovered", pool_id=pool.id, name=pool.name, price=format_price(price))
            if not self.toggles.back_in_range_alert:
                return []
            return [self._event(pool, "recovery", price, now,
                                f"{pool.name} back in range {pool.min}–{pool.max} at {format_price(price)}")]

        if not self.toggles.one_hour_warning:
            return []
        assert st.last_escalation_at is not None and st.outside_since is not None
        if now - st.last_escalation_at < self.cfg.escalation.interval_seconds:
            return []
        st.last_escalation_at = now
        outside_s = now - st.outside_since
        hours = int(outside_s // 3600)
        minutes = int(outside_s // 60)
        log.info("pool_escalation", pool_id=pool.id, name=pool.name, minutes_outside=minutes)
        evt = self._event(pool, "escalation", price, now,
                          f"{pool.name} still outside {pool.min}–{pool.max} "
                          f"for {outside_label(minutes)} at {format_price(price)}")
        evt["hours_outside"] = hours
        evt["minutes_outside"] = minutes
        return [evt]

    @staticmethod
    def _event(pool: PoolConfig, kind: str, price: Decimal, now: float, message: str) -> AlertEvent:
        evt: AlertEvent = {
            "pool_id": pool.id,
            "name": pool.name,
            "type": kind,
            "price": price,
            "min": pool.min,
            "max": pool.max,
            "ts": float(now),
            "message": message,
        }
        return evt
