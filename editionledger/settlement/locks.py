"""
Keyed lock tables with bounded, backed-off acquisition.

The coordinator keeps two tables:
    items    — one lock per item; a settlement holds exactly one
    accounts — one lock per account; a settlement holds the payer and
               payee for its whole duration, so a compensating refund
               can never find the credited funds already spent

Acquisition order is always item first, then accounts in sorted order.
Nothing waits on an item lock while holding account locks, so the two
tables cannot deadlock against each other.

Each attempt waits at most `timeout` seconds. After `attempts` failures
the caller gets Conflict. Between attempts the caller backs off
exponentially with jitter.

A key's lock lives only while some thread holds or waits on it. Each
entry counts its users, and the last one out removes it, so the table
stays as small as the current contention.
"""

import logging
import random
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from editionledger.core.exceptions import Conflict, InvariantViolation


logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class LockTable:

    def __init__(
        self,
        name:     str,
        timeout:  float = 0.25,
        attempts: int = 8,
        backoff:  float = 0.01,
    ) -> None:
        self.name     = name
        self.timeout  = timeout
        self.attempts = attempts
        self.backoff  = backoff

        self._table_lock: threading.Lock    = threading.Lock()
        self._locks:      Dict[str, _Entry] = {}
        self._held = threading.local()

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """
        Hold the locks for every key for the duration of the block.
        Raises Conflict if any lock could not be acquired in time; in that
        case nothing stays held.
        """
        if self.held_keys():
            raise InvariantViolation(
                f"Thread already holds {self.name} locks {self.held_keys()}; "
                f"cannot also lock {list(keys)}"
            )

        acquired: List[Tuple[str, threading.Lock]] = []
        ordered = sorted(set(keys))
        try:
            for key in ordered:
                lock = self._checkout(key)
                if not self._acquire(lock):
                    self._checkin(key)
                    logger.warning(
                        "gave up on %s lock for %s after %d attempts", self.name, key, self.attempts,
                    )
                    raise Conflict(
                        f"{self.name.capitalize()} is busy with another settlement",
                        {"key": key, "attempts": self.attempts},
                    )
                acquired.append((key, lock))

            self._held.keys = ordered
            try:
                yield
            finally:
                self._held.keys = []
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def held_keys(self) -> List[str]:
        return list(getattr(self._held, "keys", []))

    def __len__(self) -> int:
        """Keys with a live lock: held or waited on right now."""
        with self._table_lock:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._table_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._table_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def _acquire(self, lock: threading.Lock) -> bool:
        for attempt in range(self.attempts):
            if lock.acquire(timeout=self.timeout):
                return True
            if attempt + 1 < self.attempts:
                delay = self.backoff * (2 ** attempt)
                time.sleep(delay + random.uniform(0, delay))
        return False
