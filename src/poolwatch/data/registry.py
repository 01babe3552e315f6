from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from poolwatch.errors import DuplicatePool, PoolNotFound
from poolwatch.utils.types import PoolConfig


class PoolRegistry:
    """
    Insertion-ordered pool configs keyed by chain object id.

    edit/remove address pools by 0-based position in list(), which is how
    the set is shown to the operator. Bound validation belongs to callers;
    the registry only enforces unique ids.
    """
    def __init__(self):
        self._pools: list[PoolConfig] = []

    def __len__(self) -> int:
        return len(self._pools)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._pools):
            raise IndexError(f"pool index {index} out of range (0..{len(self._pools) - 1})")

    def add(self, config: PoolConfig) -> None:
        if any(p.id == config.id for p in self._pools):
            raise DuplicatePool(f"pool {config.id} is already monitored")
        self._pools.append(config)

    def edit(self, index: int, new_min: Decimal, new_max: Decimal) -> PoolConfig:
        self._check_index(index)
        pool = self._pools[index]
        pool.min = new_min
        pool.max = new_max
        return replace(pool)

    def remove(self, index: int) -> PoolConfig:
        self._check_index(index)
        return self._pools.pop(index)

    def list(self) -> list[PoolConfig]:
        return [replace(p) for p in self._pools]

    def get(self, pool_id: str) -> PoolConfig:
        for p in self._pools:
            if p.id == pool_id:
                return replace(p)
        raise PoolNotFound(pool_id)

    def __contains__(self, pool_id: str) -> bool:
        return any(p.id == pool_id for p in self._pools)
