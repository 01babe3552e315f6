from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from poolwatch.pricing.codec import format_price
from poolwatch.utils.time import outside_label

def _fmt_ts(ts_s: float, tz_name: str) -> str:
    tz = ZoneInfo(tz_name)
    return datetime.fromtimestamp(ts_s, tz).strftime("%H:%M:%S %Z")  # e.g., 14:05:00 UTC

def _price(v) -> str:
    return format_price(v) if isinstance(v, Decimal) else str(v)

def format_alert_pretty(evt: dict, tz_name: str = "UTC") -> str:
    """Telegram (Markdown) text for a breach / escalation / recovery event."""
    name = evt.get("name", "?")
    kind = evt.get("type", "breach")
    lo, hi = evt.get("min"), evt.get("max")
    price = _price(evt.get("price", "?"))
    when = _fmt_ts(float(evt.get("ts", 0.0)), tz_name)

    if kind == "recovery":
        head = f"✅ *{name}* is back inside {lo}–{hi}"
    elif kind == "escalation":
        if "minutes_outside" in evt:
            span = outside_label(int(evt["minutes_outside"]))
        else:
            span = f"{int(evt.get('hours_outside', 0))}h"
        head = f"⏳ *{name}* still outside {lo}–{hi} for {span}"
    else:
        head = f"⚠️ *{name}* outside range {lo}–{hi}"

    return f"{head}\nPrice: *{price}*\n⏰ {when}"

def format_alert_line(evt: dict) -> str:
    """Single console line."""
    return (f"[ALERT {str(evt.get('type', '?')).upper()}] {evt.get('name')} "
            f"price={_price(evt.get('price'))} range={evt.get('min')}-{evt.get('max')}")
