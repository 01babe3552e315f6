# src/poolwatch/main.py
import os
import asyncio
import structlog
from dotenv import load_dotenv

from poolwatch.alerts.formatting import format_alert_line, format_alert_pretty
from poolwatch.alerts.notifiers import ConsoleNotifier, QueueNotifier
from poolwatch.bot.commands import CommandHandler
from poolwatch.bot.updates import TelegramUpdates
from poolwatch.health import build_health_app, start_health_server
from poolwatch.ingest.sui_rpc import SuiRpcSource, config_from_env as rpc_config_from_env
from poolwatch.notify.queue import NotifyQueue
from poolwatch.notify.telegram import TelegramNotifier, config_from_env as telegram_config_from_env
from poolwatch.scheduler.service import MonitorService, config_from_env as monitor_config_from_env
from poolwatch.utils.validation import parse_pools_env

load_dotenv()
log = structlog.get_logger()


# ---------------------------
# Telegram startup ping helper
# ---------------------------

async def telegram_startup_ping(tg_notifier: TelegramNotifier, pools: int):
    ok = await tg_notifier.send_text(tg_notifier.cfg.chat_id, f"🚀 Pool price alert started ({pools} pools).")
    if not ok:
        log.warning("telegram_startup_ping_failed")


# ---------------------------
# Main
# ---------------------------

async def main():
    tz_name = os.getenv("ALERT_TZ", "UTC")
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))

    source = SuiRpcSource(rpc_config_from_env())
    await source.start()

    # ----- Notifications -----
    notifiers = [ConsoleNotifier(format_fn=format_alert_line)]

    # Optional Telegram (built from env). If not configured, we skip it.
    tg_notifier = None
    try:
        tg_cfg = telegram_config_from_env()  # raises if env missing
        notify_q = NotifyQueue(maxsize=2000)
        tg_notifier = TelegramNotifier(cfg=tg_cfg, alerts_queue=notify_q,
                                       format_fn=lambda e: format_alert_pretty(e, tz_name))
        notifiers.append(QueueNotifier(notify_q))
        log.info("telegram_enabled")
    except RuntimeError:
        log.info("telegram_disabled_missing_env")

    service = MonitorService(source, notifiers, cfg=monitor_config_from_env())

    # Bootstrap pools from env before the first cycle
    for pool in parse_pools_env(os.getenv("POOLS")):
        await service.add_pool(pool)

    # Health endpoint: failure to bind is fatal
    runner = await start_health_server(build_health_app(service), host, port)
    log.info("health_listening", host=host, port=port)

    updates = None
    if tg_notifier is not None:
        await tg_notifier.start()
        updates = TelegramUpdates(tg_notifier, CommandHandler(service))
        await updates.start()
        await telegram_startup_ping(tg_notifier, service.pool_count())

    await service.start()
    log.info("monitor_running", pools=service.pool_count(), interval_s=service.cfg.poll_interval_s)

    try:
        await asyncio.Event().wait()
    finally:
        # graceful shutdown: stop inbound commands, then the timer/worker, then outbound
        if updates is not None:
            await updates.stop()
        await service.stop()
        if tg_notifier is not None:
            await tg_notifier.stop()
        await source.stop()
        await runner.cleanup()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
