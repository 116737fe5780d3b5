"""Per-raffle serialisation for ticket allocation, rebuilds and draws.

Row locks (``SELECT ... FOR UPDATE`` on the raffle) serialise writers across
processes on Postgres; SQLite ignores them, so writers inside one process
also take the in-process lock below.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

_registry_guard = threading.Lock()
_locks: dict[int, threading.RLock] = {}


def _lock_for(raffle_id: int) -> threading.RLock:
    with _registry_guard:
        lock = _locks.get(raffle_id)
        if lock is None:
            lock = threading.RLock()
            _locks[raffle_id] = lock
        return lock


@contextmanager
def raffle_lock(raffle_id: int) -> Iterator[None]:
    lock = _lock_for(raffle_id)
    with lock:
        yield


__all__ = ["raffle_lock"]
