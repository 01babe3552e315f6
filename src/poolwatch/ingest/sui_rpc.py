# src/poolwatch/ingest/sui_rpc.py
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional, Protocol

import aiohttp
import structlog

from poolwatch.errors import FetchFailure
from poolwatch.ingest import parser  # must expose parse_sqrt_price(dict)->str|None

log = structlog.get_logger("sui_rpc")

DEFAULT_RPC_URL = "https://fullnode.mainnet.sui.io/"


class ChainDataSource(Protocol):
    async def fetch(self, pool_id: str) -> str:
        """Raw sqrt_price string, or raise FetchFailure."""
        ...


@dataclass(slots=True)
class SuiRpcConfig:
    rpc_url: str = DEFAULT_RPC_URL
    timeout_s: float = 10.0


def config_from_env() -> SuiRpcConfig:
    return SuiRpcConfig(
        rpc_url=os.getenv("SUI_RPC_URL", DEFAULT_RPC_URL),
        timeout_s=float(os.getenv("RPC_TIMEOUT_S", "10")),
    )


class SuiRpcSource:
    """
    Reads CLMM pool objects over Sui JSON-RPC (sui_multiGetObjects).

    One request per pool, bounded by cfg.timeout_s. Every failure mode
    (network, timeout, HTTP status, RPC error, missing sqrt_price) surfaces
    as FetchFailure so the poll cycle can skip the pool.
    """
    def __init__(self, cfg: Optional[SuiRpcConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg or SuiRpcConfig()
        self._session = session
        self._owns_session = session is None
        self._req_id = 0

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def _payload(self, pool_id: str) -> dict:
        self._req_id += 1
        return {
            "jsonrpc": "2.0",
            "id": self._req_id,
            "method": "sui_multiGetObjects",
            "params": [[pool_id], {"showType": True, "showContent": True}],
        }

    async def fetch(self, pool_id: str) -> str:
        if self._session is None:
            await self.start()
        assert self._session is not None

        try:
            async with asyncio.timeout(self.cfg.timeout_s):
                async with self._session.post(self.cfg.rpc_url, json=self._payload(pool_id)) as resp:
                    if resp.status != 200:
                        raise FetchFailure(pool_id, f"http {resp.status}")
                    body = await resp.json(content_type=None)
        except TimeoutError as e:
            raise FetchFailure(pool_id, f"timeout after {self.cfg.timeout_s:g}s") from e
        except (aiohttp.ClientError, ValueError) as e:
            raise FetchFailure(pool_id, f"{type(e).__name__}: {e}") from e

        raw = parser.parse_sqrt_price(body)
        if raw is None:
            err = parser.rpc_error(body)
            log.warning("rpc_missing_sqrt_price", pool_id=pool_id, rpc_error=err, snippet=str(body)[:200])
            raise FetchFailure(pool_id, err or "no sqrt_price in content.fields")
        return raw
