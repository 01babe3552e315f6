# src/poolwatch/scheduler/service.py
from __future__ import annotations

import asyncio
import inspect
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

import structlog

from poolwatch.alerts.engine import AlertEngine, EngineConfig
from poolwatch.alerts.notifiers import Notifier
from poolwatch.alerts.rules import EscalationRule, FeatureToggles
from poolwatch.alerts.state import Zone
from poolwatch.data.registry import PoolRegistry
from poolwatch.errors import DecodeError, FetchFailure, PoolNotFound
from poolwatch.ingest.sui_rpc import ChainDataSource
from poolwatch.pricing.codec import derive_price, format_price
from poolwatch.utils.time import seconds_since, to_ms, utc_now_s
from poolwatch.utils.types import PoolConfig, PoolStatus
from poolwatch.utils.validation import validate_bounds

log = structlog.get_logger("monitor")

_STOP = object()


@dataclass(slots=True)
class MonitorConfig:
    poll_interval_s: float = 300.0          # 5 minutes
    escalation_interval_s: int = 3600
    shutdown_grace_s: float = 15.0          # let an in-flight fetch finish or time out


def config_from_env() -> MonitorConfig:
    return MonitorConfig(
        poll_interval_s=float(os.getenv("POLL_INTERVAL_S", "300")),
        escalation_interval_s=int(os.getenv("ESCALATION_INTERVAL_S", "3600")),
    )


@dataclass(slots=True)
class CycleReport:
    started_at: float
    evaluated: int = 0
    failed: int = 0
    events: int = 0
    failures: dict[str, str] = field(default_factory=dict)   # pool_id -> reason


@dataclass(slots=True)
class PoolView:
    """Read-only row for /list and health output."""
    config: PoolConfig
    zone: Zone
    last_price: Optional[Decimal]
    in_range_ms: int


class MonitorService:
    """
    Single writer for registry, alert state and toggles.

    Every mutation and every poll cycle is a command on one asyncio queue
    drained by one worker task, so a cycle never observes a half-applied
    /add or /edit and commands never interleave with a cycle's pool loop.
    Display reads (list_pools, describe_pools, toggles) are snapshot copies
    taken synchronously on the event loop.

    Lifecycle:
        svc = MonitorService(source, [ConsoleNotifier(), QueueNotifier(q)])
        await svc.start()      # worker + timer (first cycle runs immediately)
        await svc.add_pool(cfg)
        await svc.stop()
    """
    def __init__(
        self,
        source: ChainDataSource,
        notifiers: Iterable[Notifier] = (),
        cfg: Optional[MonitorConfig] = None,
        toggles: Optional[FeatureToggles] = None,
        clock: Callable[[], float] = utc_now_s,
    ):
        self.cfg = cfg or MonitorConfig()
        self.source = source
        self.notifiers = list(notifiers)
        self.clock = clock
        self.registry = PoolRegistry()
        self.engine = AlertEngine(
            toggles=toggles or FeatureToggles(),
            cfg=EngineConfig(escalation=EscalationRule(interval_seconds=self.cfg.escalation_interval_s)),
        )
        self._cmds: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.last_report: Optional[CycleReport] = None
        self.cycles_run: int = 0

    # ---------------------------- lifecycle ---------------------------- #

    async def start(self, run_timer: bool = True) -> None:
        self._stop.clear()
        self._ensure_worker()
        if run_timer and self._ticker is None:
            self._ticker = asyncio.create_task(self._tick_loop(), name="poll-timer")

    async def stop(self) -> None:
        self._stop.set()
        if self._ticker:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        if self._worker:
            self._cmds.put_nowait((_STOP, (), None))
            try:
                await asyncio.wait_for(self._worker, timeout=self.cfg.shutdown_grace_s)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                log.warning("monitor_worker_forced_stop")
            self._worker = None
        log.info("monitor_stopped")

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work(), name="monitor-worker")

    async def _work(self) -> None:
        while True:
            fn, args, fut = await self._cmds.get()
            if fn is _STOP:
                return
            if fut.cancelled():
                continue
            try:
                result = fn(*args)
                if inspect.isawaitable(result):
                    result = await result
            except asyncio.CancelledError:
                if not fut.done():
                    fut.cancel()
                raise
            except Exception as e:
                if not fut.done():
                    fut.set_exception(e)
            else:
                if not fut.done():
                    fut.set_result(result)

    async def _submit(self, fn: Callable, *args: Any) -> Any:
        self._ensure_worker()
        fut = asyncio.get_running_loop().create_future()
        self._cmds.put_nowait((fn, args, fut))
        return await fut

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stop.is_set():
            started = loop.time()
            try:
                await self.run_cycle()
            except Exception as e:
                log.error("poll_cycle_failed", err=str(e))
            delay = max(0.0, self.cfg.poll_interval_s - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    # ---------------------------- commands ----------------------------- #

    async def add_pool(self, config: PoolConfig) -> PoolConfig:
        validate_bounds(config.min, config.max)
        return await self._submit(self._do_add, config)

    async def edit_pool(self, index: int, new_min: Decimal, new_max: Decimal,
                        expected_id: Optional[str] = None) -> PoolConfig:
        """expected_id, when given, must still be the pool at `index` (PoolNotFound otherwise)."""
        validate_bounds(new_min, new_max)
        return await self._submit(self._do_edit, index, new_min, new_max, expected_id)

    async def remove_pool(self, index: int) -> PoolConfig:
        return await self._submit(self._do_remove, index)

    async def toggle_feature(self, name: str | int) -> bool:
        return await self._submit(self._do_toggle, name)

    async def run_cycle(self) -> CycleReport:
        return await self._submit(self._do_cycle)

    async def status(self) -> list[PoolStatus]:
        """Live prices for every pool; alert state is not touched."""
        return await self._submit(self._do_status)

    # ----------------------------- reads ------------------------------- #

    def list_pools(self) -> list[PoolConfig]:
        return self.registry.list()

    def pool_count(self) -> int:
        return len(self.registry)

    def toggles(self) -> dict[str, bool]:
        return self.engine.toggles.as_dict()

    def describe_pools(self, now: Optional[float] = None) -> list[PoolView]:
        now = self.clock() if now is None else now
        views = []
        for p in self.registry.list():
            st = self.engine.state_for(p.id)
            views.append(PoolView(
                config=p,
                zone=self.engine.zone_of(p.id),
                last_price=st.last_price if st else None,
                in_range_ms=(self.engine.total_in_range_ms(p.id, now) if st
                             else to_ms(seconds_since(p.added_at, now))),
            ))
        return views

    # ------------------------ worker-side handlers --------------------- #

    def _do_add(self, config: PoolConfig) -> PoolConfig:
        self.registry.add(config)
        self.engine.discard(config.id)
        log.info("pool_added", pool_id=config.id, name=config.name,
                 min=str(config.min), max=str(config.max), invert=config.invert)
        return config

    def _do_edit(self, index: int, new_min: Decimal, new_max: Decimal,
                 expected_id: Optional[str] = None) -> PoolConfig:
        if expected_id is not None:
            pools = self.registry.list()
            if not 0 <= index < len(pools) or pools[index].id != expected_id:
                raise PoolNotFound(expected_id)
        pool = self.registry.edit(index, new_min, new_max)
        self.engine.reset(pool.id, self.clock())
        log.info("pool_edited", pool_id=pool.id, min=str(new_min), max=str(new_max))
        return pool

    def _do_remove(self, index: int) -> PoolConfig:
        pool = self.registry.remove(index)
        self.engine.discard(pool.id)
        log.info("pool_removed", pool_id=pool.id, name=pool.name)
        return pool

    def _do_toggle(self, name: str | int) -> bool:
        value = self.engine.toggles.toggle(name)
        log.info("feature_toggled", feature=self.engine.toggles.resolve(name), enabled=value)
        return value

    async def _price_of(self, pool: PoolConfig) -> Decimal:
        raw = await self.source.fetch(pool.id)
        return derive_price(raw, pool.decimals0, pool.decimals1, pool.invert)

    async def _do_cycle(self) -> CycleReport:
        report = CycleReport(started_at=self.clock())
        for pool in self.registry.list():
            try:
                price = await self._price_of(pool)
            except (FetchFailure, DecodeError) as e:
                report.failed += 1
                report.failures[pool.id] = str(e)
                log.warning("pool_price_unavailable", pool_id=pool.id, name=pool.name, err=str(e))
                continue

            events = self.engine.evaluate(pool, price, self.clock())
            report.evaluated += 1
            log.debug("pool_checked", name=pool.name, price=format_price(price),
                      min=str(pool.min), max=str(pool.max))
            for evt in events:
                report.events += 1
                await self._dispatch(evt)

        self.cycles_run += 1
        self.last_report = report
        log.info("poll_cycle_done", evaluated=report.evaluated, failed=report.failed, events=report.events)
        return report

    async def _dispatch(self, evt) -> None:
        for n in self.notifiers:
            try:
                await n.send(evt)
            except Exception as e:
                log.warning("notify_failed", notifier=type(n).__name__, pool_id=evt.get("pool_id"), err=str(e))

    async def _do_status(self) -> list[PoolStatus]:
        out: list[PoolStatus] = []
        for pool in self.registry.list():
            try:
                out.append(PoolStatus(config=pool, price=await self._price_of(pool)))
            except (FetchFailure, DecodeError) as e:
                out.append(PoolStatus(config=pool, price=None, error=str(e)))
        return out
