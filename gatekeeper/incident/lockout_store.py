"""
Gatekeeper Incident - In-memory Lockout Store

Implémentation en mémoire des compteurs partagés. Un store durable
(Redis, PostgreSQL) implémente la même interface en production.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from .interfaces import AttemptCounter, AttemptKind, ILockoutStore
from ..core.interfaces import LockoutPolicy


class InMemoryLockoutStore(ILockoutStore):
    """
    Compteurs d'échecs en mémoire, sérialisés par un asyncio.Lock.

    Example:
        store = InMemoryLockoutStore()
        counter = await store.increment(AttemptKind.PASSWORD, "alice@example.com", policy, now)
    """

    def __init__(self) -> None:
        self._counters: Dict[Tuple[AttemptKind, str], AttemptCounter] = {}
        self._lock = asyncio.Lock()

    async def increment(
        self, kind: AttemptKind, key: str, policy: LockoutPolicy, now: datetime
    ) -> AttemptCounter:
        async with self._lock:
            counter = self._counters.get((kind, key))
            if counter is None:
                counter = AttemptCounter(kind=kind, key=key)
                self._counters[(kind, key)] = counter

            if counter.lock_expired(now):
                # Nouveau cycle
                counter.failures = []
                counter.locked_until = None
            elif not counter.is_locked(now):
                window = timedelta(seconds=policy.window_seconds)
                counter.failures = [t for t in counter.failures if now - t < window]

            counter.failures.append(now)
            counter.last_failure = now

            if counter.count >= policy.max_failures and not counter.is_locked(now):
                counter.locked_until = now + timedelta(seconds=policy.lockout_seconds)

            return _copy(counter)

    async def get(self, kind: AttemptKind, key: str) -> Optional[AttemptCounter]:
        async with self._lock:
            counter = self._counters.get((kind, key))
            return _copy(counter) if counter else None

    async def reset(self, kind: AttemptKind, key: str) -> None:
        async with self._lock:
            self._counters.pop((kind, key), None)

    def clear_all(self) -> None:
        """Efface tous les compteurs (pour tests)."""
        self._counters.clear()


def _copy(counter: AttemptCounter) -> AttemptCounter:
    return replace(counter, failures=list(counter.failures))
