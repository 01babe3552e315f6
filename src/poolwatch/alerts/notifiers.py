# src/poolwatch/alerts/notifiers.py
from __future__ import annotations
import structlog
from typing import Callable, Optional, Protocol

from poolwatch.notify.queue import NotifyQueue
from poolwatch.utils.types import AlertEvent

log = structlog.get_logger("notifier")

class Notifier(Protocol):
    async def send(self, evt: AlertEvent) -> None: ...

class ConsoleNotifier:
    def __init__(self, format_fn: Optional[Callable[[dict], str]] = None):
        self._format_fn = format_fn

    async def send(self, evt: AlertEvent):
        if self._format_fn:
            try:
                text = self._format_fn(evt)
                print(text, flush=True)
                return
            except Exception as e:
                log.warning("console_format_failed", err=str(e))
        # fallback (raw)
        print(f"[ALERT] {evt.get('name')} {evt.get('type')} "
              f"price={evt.get('price')} msg={evt.get('message')}", flush=True)

class QueueNotifier:
    """Hands events to a background sender (Telegram) without blocking the poll cycle."""
    def __init__(self, queue: NotifyQueue):
        self.queue = queue

    async def send(self, evt: AlertEvent):
        if not self.queue.try_put(evt):
            log.warning("notify_queue_full_drop", pool_id=evt.get("pool_id"), type=evt.get("type"))
