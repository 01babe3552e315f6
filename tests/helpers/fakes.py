import asyncio
from decimal import Decimal, localcontext

from poolwatch.errors import FetchFailure
from poolwatch.pricing.codec import Q64


def raw_for(price: str) -> str:
    """sqrt_price (Q64) string that decodes back to ~price with 6/6 decimals."""
    with localcontext() as ctx:
        ctx.prec = 60
        return str((Decimal(price).sqrt() * Q64).to_integral_value())


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """
    ChainDataSource stub. prices maps pool_id -> raw sqrt string, or an
    Exception instance to raise. gate (asyncio.Event) blocks every fetch
    until set, to hold a poll cycle mid-flight.
    """
    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.calls = []
        self.gate = None

    def set_price(self, pool_id, price: str):
        self.prices[pool_id] = raw_for(price)

    async def fetch(self, pool_id):
        self.calls.append(pool_id)
        if self.gate is not None:
            await self.gate.wait()
        val = self.prices.get(pool_id)
        if val is None:
            raise FetchFailure(pool_id, "no data")
        if isinstance(val, Exception):
            raise val
        return val


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def send(self, evt):
        self.events.append(evt)

    def types(self):
        return [e["type"] for e in self.events]


class FailingNotifier:
    async def send(self, evt):
        raise RuntimeError("delivery down")


async def wait_until(pred, timeout=2.0):
    async def _poll():
        while not pred():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout=timeout)
