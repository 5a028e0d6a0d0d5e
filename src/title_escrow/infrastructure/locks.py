"""Per-asset mutual exclusion for ledger operations.

Every mutating ledger operation holds the lock for its asset across the
whole database transaction, commit included. Different assets never share
a lock, so unrelated escrows proceed concurrently.

Two backends:
    - LocalAssetLocks:  one asyncio.Lock per asset, for a single process.
    - RedisAssetLocks:  redis-py distributed locks, for several workers.
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Protocol

from redis.exceptions import LockError

from title_escrow.domain.exceptions import LockTimeoutError
from title_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import redis.asyncio as aioredis

    from title_escrow.config import Settings

logger = get_logger(__name__)


class AssetLockManager(Protocol):
    def hold(self, asset_id: str) -> AsyncIterator[None]:
        """Async context manager holding the asset's lock."""
        ...


class LocalAssetLocks:
    """In-process locks keyed by asset id."""

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, asset_id: str) -> asyncio.Lock:
        lock = self._locks.get(asset_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[asset_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, asset_id: str) -> AsyncIterator[None]:
        lock = self._lock_for(asset_id)
        try:
            async with asyncio.timeout(self._timeout):
                await lock.acquire()
        except TimeoutError as err:
            logger.warning("lock.timeout", asset_id=asset_id, backend="local")
            raise LockTimeoutError(asset_id, self._timeout) from err
        try:
            yield
        finally:
            lock.release()


class RedisAssetLocks:
    """Distributed locks shared by every worker talking to the same Redis."""

    def __init__(self, redis: aioredis.Redis, timeout: float = 10.0) -> None:
        self._redis = redis
        self._timeout = timeout

    @asynccontextmanager
    async def hold(self, asset_id: str) -> AsyncIterator[None]:
        # Lease is twice the wait so a crashed holder cannot block forever.
        lock = self._redis.lock(
            f"escrow-lock:{asset_id}",
            timeout=self._timeout * 2,
            blocking_timeout=self._timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("lock.timeout", asset_id=asset_id, backend="redis")
            raise LockTimeoutError(asset_id, self._timeout)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # The held work has already finished and, if it succeeded, committed.
                logger.error(
                    "lock.lease_expired",
                    asset_id=asset_id,
                    lease_seconds=self._timeout * 2,
                )


def build_lock_manager(settings: Settings) -> AssetLockManager:
    """Create the lock backend selected by ``settings.lock_backend``."""
    if settings.lock_backend == "redis":
        from title_escrow.infrastructure.redis_client import get_redis

        return RedisAssetLocks(get_redis(), timeout=settings.lock_timeout_seconds)
    return LocalAssetLocks(timeout=settings.lock_timeout_seconds)
