from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp
import structlog

from poolwatch.bot.commands import CommandHandler
from poolwatch.notify.telegram import TelegramNotifier
from poolwatch.utils.backoff import Backoff

log = structlog.get_logger("telegram_updates")


class TelegramUpdates:
    """
    Long-polls getUpdates and feeds text messages to the CommandHandler,
    replying through the notifier (shares its session and rate limiter).

    Updates are handled one at a time so a chat's multi-step conversation
    sees its messages in order.
    """
    def __init__(self, notifier: TelegramNotifier, handler: CommandHandler, poll_timeout_s: int = 30,
                 retry_initial_s: float = 1.0):
        self.notifier = notifier
        self.handler = handler
        self.poll_timeout_s = poll_timeout_s
        self.retry_initial_s = retry_initial_s
        self._offset: Optional[int] = None
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="telegram-updates")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self):
        backoff = Backoff(initial=self.retry_initial_s, cap=60.0)
        while not self._stop.is_set():
            try:
                updates = await self.poll_once()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                log.warning("get_updates_failed", err=str(e), backoff_s=backoff.peek())
                await backoff.sleep()
                continue
            except Exception as e:
                log.error("get_updates_error", err=repr(e), backoff_s=backoff.peek())
                await backoff.sleep()
                continue
            backoff.reset()
            for upd in updates:
                await self.dispatch(upd)

    async def poll_once(self) -> list[dict]:
        await self.notifier.open()
        session = self.notifier.session
        assert session is not None
        params = {"timeout": str(self.poll_timeout_s), "allowed_updates": '["message"]'}
        if self._offset is not None:
            params["offset"] = str(self._offset)
        timeout = aiohttp.ClientTimeout(total=self.poll_timeout_s + 10)
        async with session.get(self.notifier.method_url("getUpdates"), params=params, timeout=timeout) as resp:
            data = await resp.json(content_type=None)
        if not isinstance(data, dict):
            raise ValueError(f"getUpdates returned {type(data).__name__}, expected object")
        if not data.get("ok"):
            raise ValueError(f"getUpdates not ok: {data.get('description')}")
        updates = [u for u in data.get("result") or [] if isinstance(u, dict) and "update_id" in u]
        if updates:
            self._offset = max(int(u["update_id"]) for u in updates) + 1
        return updates

    async def dispatch(self, upd: dict) -> None:
        msg = upd.get("message") or {}
        text = msg.get("text")
        chat_id = (msg.get("chat") or {}).get("id")
        if not text or chat_id is None:
            return
        try:
            reply = await self.handler.handle(chat_id, text)
        except Exception as e:
            log.error("command_failed", chat_id=chat_id, text=text[:50], err=str(e))
            reply = "❌ Something went wrong handling that command."
        if reply:
            await self.notifier.send_text(chat_id, reply)
