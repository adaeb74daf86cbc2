from __future__ import annotations

"""
Per-collection mutation locks.

Every read -> mutate -> write cycle against a collection runs while holding
that collection's lock. Operations spanning several collections (invest
touches accounts and projects) take all their locks in lexicographic order
so two such operations can never deadlock on each other.

Lock waits are bounded. A caller that cannot get every lock before the
deadline gets StoreBusy and holds nothing.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, TypeVar

from ..errors import StoreBusy

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT_SEC = 5.0


class LockManager:
    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT_SEC) -> None:
        self.timeout = float(timeout)
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, name: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            return lock

    @contextmanager
    def hold(self, *names: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the locks for every named collection for the duration of the block.

        Raises StoreBusy if all locks cannot be acquired within ``timeout``
        seconds (defaults to the manager's timeout).
        """
        ordered = sorted(set(names))
        if not ordered:
            raise ValueError("hold() needs at least one collection name")

        wait = self.timeout if timeout is None else float(timeout)
        deadline = time.monotonic() + wait
        acquired: List[threading.RLock] = []
        try:
            for name in ordered:
                lock = self._lock_for(name)
                remaining = max(0.0, deadline - time.monotonic())
                if not lock.acquire(timeout=remaining):
                    log.warning("lock wait on %s exceeded %.2fs", name, wait)
                    raise StoreBusy(f"collection {name} is busy")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def with_lock(self, names: Iterable[str], fn: Callable[[], T]) -> T:
        """Run ``fn`` with exclusive access to all ``names``; return its result."""
        with self.hold(*names):
            return fn()
