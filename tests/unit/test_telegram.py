import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from poolwatch.bot.commands import CommandHandler
from poolwatch.bot.updates import TelegramUpdates
from poolwatch.notify.queue import NotifyQueue
from poolwatch.notify.telegram import TelegramConfig, TelegramNotifier, config_from_env
from poolwatch.scheduler.service import MonitorService
from tests.helpers.fakes import FakeSource, wait_until

TOKEN = "123:abc"


class FakeTelegram:
    """Scripted Bot API: replies pop from `script` (status, json); default 200 ok."""
    def __init__(self, script=None, updates=None, updates_body=None):
        self.script = list(script or [])
        self.sent = []
        self.updates = list(updates or [])
        self.updates_body = updates_body

    def app(self):
        app = web.Application()
        app.router.add_post(f"/bot{TOKEN}/sendMessage", self.send_message)
        app.router.add_get(f"/bot{TOKEN}/getUpdates", self.get_updates)
        return app

    async def send_message(self, request):
        self.sent.append(dict(await request.post()))
        status, body = self.script.pop(0) if self.script else (200, {"ok": True})
        return web.json_response(body, status=status)

    async def get_updates(self, request):
        if self.updates_body is not None:
            return web.json_response(self.updates_body)
        offset = int(request.query.get("offset", 0))
        result = [u for u in self.updates if u["update_id"] >= offset]
        return web.json_response({"ok": True, "result": result})


def _cfg(server, **kw):
    return TelegramConfig(bot_token=TOKEN, chat_id="777", api_base=str(server.make_url("/")).rstrip("/"),
                          initial_backoff_s=0.001, max_backoff_s=0.002, per_chat_rate_per_sec=1000.0,
                          per_chat_burst=100, **kw)


def _notifier(server, **kw):
    return TelegramNotifier(_cfg(server, **kw), NotifyQueue())


@pytest.mark.asyncio
async def test_send_text_posts_markdown():
    tg = FakeTelegram()
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server)
        try:
            assert await n.send_text(42, "*hi*") is True
        finally:
            await n.stop()
    assert tg.sent == [{"chat_id": "42", "text": "*hi*", "parse_mode": "Markdown"}]


@pytest.mark.asyncio
async def test_markdown_parse_error_resent_as_plain_text():
    tg = FakeTelegram(script=[(400, {"ok": False, "description": "Bad Request: can't parse entities"})])
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server)
        try:
            assert await n.send_text(42, "pool_name *oops") is True
        finally:
            await n.stop()
    assert "parse_mode" in tg.sent[0] and "parse_mode" not in tg.sent[1]


@pytest.mark.asyncio
async def test_retries_5xx_then_succeeds():
    tg = FakeTelegram(script=[(502, {"ok": False}), (429, {"ok": False, "parameters": {"retry_after": 0.001}})])
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server)
        try:
            assert await n.send_text(42, "x") is True
        finally:
            await n.stop()
    assert len(tg.sent) == 3


@pytest.mark.asyncio
async def test_client_error_not_retried_and_gives_up():
    tg = FakeTelegram(script=[(403, {"ok": False, "description": "Forbidden"})])
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server)
        try:
            assert await n.send_text(42, "x") is False
        finally:
            await n.stop()
    assert len(tg.sent) == 1


@pytest.mark.asyncio
async def test_give_up_after_max_retries():
    tg = FakeTelegram(script=[(500, {"ok": False})] * 10)
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server, max_retries=3)
        try:
            assert await n.send_text(42, "x") is False
        finally:
            await n.stop()
    assert len(tg.sent) == 3


@pytest.mark.asyncio
async def test_worker_drains_alerts_and_replies():
    tg = FakeTelegram()
    q = NotifyQueue()
    async with test_utils.TestServer(tg.app()) as server:
        n = TelegramNotifier(_cfg(server), q, format_fn=lambda e: f"ALERT {e['name']}")
        await n.start()
        try:
            q.try_put({"name": "USDT/USDC", "type": "breach"})
            q.try_put((99, "reply text"))
            await wait_until(lambda: len(tg.sent) == 2)
        finally:
            await n.stop()
    assert tg.sent[0]["chat_id"] == "777" and tg.sent[0]["text"] == "ALERT USDT/USDC"
    assert tg.sent[1]["chat_id"] == "99" and tg.sent[1]["text"] == "reply text"


@pytest.mark.asyncio
async def test_worker_survives_format_error():
    def fmt(evt):
        if evt["name"] == "bad":
            raise RuntimeError("unknown time zone")
        return f"ALERT {evt['name']}"

    tg = FakeTelegram()
    q = NotifyQueue()
    async with test_utils.TestServer(tg.app()) as server:
        n = TelegramNotifier(_cfg(server), q, format_fn=fmt)
        await n.start()
        try:
            q.try_put({"pool_id": "0x1", "name": "bad", "type": "breach"})
            q.try_put({"pool_id": "0x2", "name": "good", "type": "breach"})
            await wait_until(lambda: len(tg.sent) == 1)
            assert not n._task.done()
        finally:
            await n.stop()
    assert tg.sent[0]["text"] == "ALERT good"


@pytest.mark.asyncio
async def test_updates_loop_survives_unexpected_error():
    svc = MonitorService(FakeSource())
    n = TelegramNotifier(TelegramConfig(bot_token=TOKEN, chat_id="777"), NotifyQueue())
    poller = TelegramUpdates(n, CommandHandler(svc), poll_timeout_s=0, retry_initial_s=0.001)
    calls = []

    async def flaky_poll():
        calls.append(1)
        if len(calls) == 1:
            raise AttributeError("'list' object has no attribute 'get'")
        await asyncio.sleep(0.001)
        return []

    poller.poll_once = flaky_poll
    await poller.start()
    try:
        await wait_until(lambda: len(calls) >= 3)
        assert not poller._task.done()
    finally:
        await poller.stop()
        await n.stop()
        await svc.stop()


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    [1, 2, 3],
    {"ok": True, "result": [{"message": {"chat": {"id": 5}, "text": "/help"}}]},
])
async def test_malformed_get_updates_body(body):
    tg = FakeTelegram(updates_body=body)
    svc = MonitorService(FakeSource())
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server)
        poller = TelegramUpdates(n, CommandHandler(svc), poll_timeout_s=0)
        try:
            if isinstance(body, list):
                with pytest.raises(ValueError):
                    await poller.poll_once()
            else:
                assert await poller.poll_once() == []
        finally:
            await n.stop()
            await svc.stop()


@pytest.mark.asyncio
async def test_updates_feed_command_handler():
    updates = [
        {"update_id": 10, "message": {"chat": {"id": 5}, "text": "/settings"}},
        {"update_id": 11, "message": {"chat": {"id": 5}, "text": "just chatting"}},
        {"update_id": 12, "edited_message": {"chat": {"id": 5}, "text": "/list"}},
    ]
    tg = FakeTelegram(updates=updates)
    svc = MonitorService(FakeSource())
    async with test_utils.TestServer(tg.app()) as server:
        n = _notifier(server)
        poller = TelegramUpdates(n, CommandHandler(svc), poll_timeout_s=0)
        try:
            got = await poller.poll_once()
            for u in got:
                await poller.dispatch(u)
            assert await poller.poll_once() == []   # offset advanced past 12
        finally:
            await n.stop()
            await svc.stop()
    assert len(got) == 3
    assert len(tg.sent) == 1
    assert tg.sent[0]["chat_id"] == "5" and "one_hour_warning: ON" in tg.sent[0]["text"]


def test_config_from_env(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    monkeypatch.setenv("TELEGRAM_TOKEN", "t")
    monkeypatch.setenv("CHAT_ID", "c")
    cfg = config_from_env()
    assert (cfg.bot_token, cfg.chat_id) == ("t", "c")

    monkeypatch.delenv("CHAT_ID")
    with pytest.raises(RuntimeError):
        config_from_env()
