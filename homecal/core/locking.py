"""Cooperative, time-bounded locks for periodic jobs.

A lock that is already held is a normal outcome, not an error:
``try_acquire`` returns None and the caller skips its cycle. Holders release
explicitly; a holder that dies simply lets the TTL lapse.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class LockHandle(Protocol):
    """An acquired lock."""

    key: str

    async def release(self) -> None:
        ...


class CooperativeLock(Protocol):
    """Cluster-wide mutual exclusion keyed by name."""

    async def try_acquire(self, key: str, ttl_seconds: float) -> Optional[LockHandle]:
        """Acquire ``key`` for at most ``ttl_seconds``; None if another holder has it."""
        ...


class _InMemoryHandle:
    def __init__(self, owner: InMemoryLock, key: str, token: str) -> None:
        self._owner = owner
        self.key = key
        self.token = token

    async def release(self) -> None:
        await self._owner._release(self.key, self.token)

    def __repr__(self) -> str:
        return f"<lock {self.key} {self.token[:8]}>"


class InMemoryLock:
    """Process-local CooperativeLock with expiry.

    Suitable for a single replica and for tests. Deployments with several
    replicas plug in a shared implementation of the same protocol.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._held: dict[str, tuple[str, float]] = {}
        self._mutex = asyncio.Lock()

    async def try_acquire(self, key: str, ttl_seconds: float) -> Optional[_InMemoryHandle]:
        async with self._mutex:
            now = self._clock()
            current = self._held.get(key)
            if current is not None and current[1] > now:
                logger.debug("Lock %s held by %s for another %.0fs", key, current[0][:8], current[1] - now)
                return None
            if current is not None:
                logger.debug("Lock %s expired; taking over", key)
            token = uuid.uuid4().hex
            self._held[key] = (token, now + ttl_seconds)
            return _InMemoryHandle(self, key, token)

    async def _release(self, key: str, token: str) -> None:
        async with self._mutex:
            current = self._held.get(key)
            # A handle whose TTL lapsed and was taken over must not free the new holder
            if current is not None and current[0] == token:
                del self._held[key]

    def is_held(self, key: str) -> bool:
        current = self._held.get(key)
        return current is not None and current[1] > self._clock()
