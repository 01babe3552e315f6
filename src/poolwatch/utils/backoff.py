from __future__ import annotations

import asyncio
import random


def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2.0, cap)


def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())


class Backoff:
    """
    Stateful retry delay: initial, 2x, 4x ... capped. reset() after a success.
    """
    def __init__(self, initial: float = 0.5, cap: float = 8.0):
        self.initial = initial
        self.cap = cap
        self.current = initial

    def reset(self) -> None:
        self.current = self.initial

    def peek(self) -> float:
        return self.current

    async def sleep(self) -> float:
        """Sleep the current (jittered) delay, then advance. Returns the base delay used."""
        base = self.current
        await asyncio.sleep(jitter(base))
        self.current = next_backoff(base, self.cap)
        return base
