# src/poolwatch/alerts/rules.py
from __future__ import annotations
from dataclasses import dataclass, fields

from poolwatch.errors import UnknownFeature


@dataclass(slots=True)
class FeatureToggles:
    """
    Process-wide alert switches. Declaration order defines the 1-based
    numbers accepted by toggle() ("/toggle 1" == "/toggle one_hour_warning").
    """
    one_hour_warning: bool = True       # hourly "still outside" reminders
    back_in_range_alert: bool = True    # recovery notifications

    @classmethod
    def names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def resolve(self, key: str | int) -> str:
        names = self.names()
        text = str(key).strip()
        if text.isdigit():
            idx = int(text) - 1
            if 0 <= idx < len(names):
                return names[idx]
            raise UnknownFeature(text)
        # accept oneHourWarning, OneHourWarning, one-hour-warning, ONE_HOUR_WARNING
        if text.isupper() or "_" in text or "-" in text:
            norm = text.lower().replace("-", "_")
        else:
            norm = "".join("_" + c.lower() if c.isupper() else c for c in text).lstrip("_")
        if norm in names:
            return norm
        raise UnknownFeature(text)

    def toggle(self, key: str | int) -> bool:
        name = self.resolve(key)
        value = not getattr(self, name)
        setattr(self, name, value)
        return value

    def as_dict(self) -> dict[str, bool]:
        return {n: getattr(self, n) for n in self.names()}


@dataclass(slots=True)
class EscalationRule:
    interval_seconds: int = 3600        # min gap between "still outside" reminders
