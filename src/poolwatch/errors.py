# src/poolwatch/errors.py
from __future__ import annotations


class PoolWatchError(Exception):
    """Base for every error the monitor raises on purpose."""


class DecodeError(PoolWatchError, ValueError):
    """Raw sqrt_price could not be turned into a price."""


class FetchFailure(PoolWatchError):
    """Upstream chain data unavailable for one pool (includes timeouts)."""

    def __init__(self, pool_id: str, reason: str):
        super().__init__(f"{pool_id}: {reason}")
        self.pool_id = pool_id
        self.reason = reason


class ValidationError(PoolWatchError, ValueError):
    """Operator input rejected before it reached the registry."""


class DuplicatePool(ValidationError):
    pass


class PoolNotFound(PoolWatchError, KeyError):
    pass


class UnknownFeature(PoolWatchError, KeyError):
    pass
