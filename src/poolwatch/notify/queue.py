from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any

@dataclass(slots=True)
class QueueStats:
    enq_ok: int = 0
    enq_drop: int = 0
    deq_ok: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"enq_ok": self.enq_ok, "enq_drop": self.enq_drop, "deq_ok": self.deq_ok}

class NotifyQueue:
    """
    Bounded outbox between the poll cycle and the Telegram sender.
    Items are AlertEvent dicts or (chat_id, text) replies from the bot.
    - try_put(item) drops on full and increments a counter
    - get() awaits like a normal queue
    """
    def __init__(self, maxsize: int = 2000):
        self._q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, item: Any) -> bool:
        try:
            self._q.put_nowait(item)
        except asyncio.QueueFull:
            self.stats.enq_drop += 1
            return False
        self.stats.enq_ok += 1
        return True

    async def get(self) -> Any:
        item = await self._q.get()
        self.stats.deq_ok += 1
        return item

    def empty(self) -> bool:
        return self._q.empty()

    def qsize(self) -> int:
        return self._q.qsize()
