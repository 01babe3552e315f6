from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

import aiohttp
import structlog

from poolwatch.utils.backoff import Backoff

log = structlog.get_logger("telegram")

API_BASE = "https://api.telegram.org"

# --------- small rate limiter (token bucket) ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            if self.updated is None:
                self.updated = now
            # refill
            self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                await asyncio.sleep((1.0 - self.tokens) / self.rate)
                self.updated = loop.time()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & client ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                # alert destination (personal chat or group)
    parse_mode: Optional[str] = "Markdown"
    timeout_s: float = 8.0
    per_chat_rate_per_sec: float = 1.0
    per_chat_burst: int = 3
    max_retries: int = 5
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0
    api_base: str = API_BASE


def config_from_env() -> TelegramConfig:
    """Raises RuntimeError when the bot token or chat id is missing."""
    token = os.getenv("TELEGRAM_BOT_TOKEN") or os.getenv("TELEGRAM_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID") or os.getenv("CHAT_ID")
    if not token or not chat_id:
        raise RuntimeError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set")
    return TelegramConfig(bot_token=token, chat_id=chat_id)


class TelegramNotifier:
    """
    Background worker that drains the notify queue and sends to Telegram with
    rate limiting and retry w/ backoff.

    Queue items are either AlertEvent dicts (sent to cfg.chat_id through
    format_fn) or (chat_id, text) tuples (bot replies).
    """
    def __init__(self, cfg: TelegramConfig, alerts_queue, format_fn: Optional[Callable[[dict], str]] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self.q = alerts_queue  # something with .get() (NotifyQueue)
        self._session = session
        self._owns_session = session is None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._rl = RateLimiter(rate_per_sec=cfg.per_chat_rate_per_sec, burst=cfg.per_chat_burst)
        self._format_fn = format_fn or self._default_format

    @property
    def session(self) -> Optional[aiohttp.ClientSession]:
        return self._session

    def method_url(self, method: str) -> str:
        return f"{self.cfg.api_base}/bot{self.cfg.bot_token}/{method}"

    async def open(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def start(self):
        await self.open()
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="telegram-notifier")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def _loop(self):
        try:
            while not self._stop.is_set():
                item = await self.q.get()
                try:
                    if isinstance(item, tuple):
                        chat_id, text = item
                    else:
                        chat_id, text = self.cfg.chat_id, self._format_fn(item)
                    await self.send_text(chat_id, text)
                except Exception as e:
                    # a bad item is logged and skipped
                    log.error("telegram_item_failed", err=repr(e),
                              pool_id=item.get("pool_id") if isinstance(item, dict) else None)
        except asyncio.CancelledError:
            return

    async def send_text(self, chat_id: Any, text: str) -> bool:
        """Send one message. Returns False after giving up; never raises for delivery errors."""
        await self.open()
        await self._rl.acquire()
        return await self._send(chat_id, text)

    async def _send(self, chat_id: Any, text: str) -> bool:
        assert self._session is not None
        url = self.method_url("sendMessage")
        payload = {"chat_id": str(chat_id), "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode

        backoff = Backoff(self.cfg.initial_backoff_s, self.cfg.max_backoff_s)
        for attempt in range(1, self.cfg.max_retries + 1):
            try:
                async with self._session.post(url, data=payload) as resp:
                    if resp.status == 200:
                        return True
                    detail = await _maybe_text(resp)
                    log.warning("telegram_send_failed", status=resp.status, body=detail[:300], attempt=attempt)
                    if resp.status == 400 and "parse" in detail.lower() and "parse_mode" in payload:
                        # unbalanced Markdown in a pool name; resend as plain text
                        payload.pop("parse_mode")
                        continue
                    if resp.status == 429:
                        # Telegram may include retry_after (seconds)
                        ra = await _retry_after(resp)
                        if ra:
                            await asyncio.sleep(ra)
                            continue
                    if 500 <= resp.status < 600 or resp.status == 429:
                        await backoff.sleep()
                        continue
                    # other 4xx: don't retry
                    return False
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.warning("telegram_network_error", err=str(e), attempt=attempt)
                await backoff.sleep()
        log.error("telegram_give_up_after_retries", chat_id=str(chat_id))
        return False

    @staticmethod
    def _default_format(evt: dict) -> str:
        return f"[{evt.get('name', '?')}] {evt.get('type', '')}\n{evt.get('message', '')}"

async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return "<no body>"

async def _retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ClientError, ValueError):
        return None
    ra = (data or {}).get("parameters", {}).get("retry_after")
    return float(ra) if ra else None
