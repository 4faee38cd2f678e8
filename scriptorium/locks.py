# scriptorium/locks.py
"""
Per-key locking for registry operations.

Writers on one key exclude each other and all readers of that key.
Readers of the same key share the lock. Different keys never contend.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class ReadWriteLock:
    """Readers-writer lock that lets a waiting writer in ahead of new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class KeyedLock:
    """
    A ReadWriteLock per key, held only while someone uses it.

    Each entry counts its current users and is dropped when the last one
    leaves, so the table only holds keys with an operation in flight.

    Usage:
        locks = KeyedLock()
        with locks.write("abc123"):
            ...  # exclusive on "abc123" only
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}  # key -> [ReadWriteLock, users]

    def _checkout(self, key: str) -> ReadWriteLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [ReadWriteLock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str):
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def read(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock.read():
                yield
        finally:
            self._checkin(key)

    @contextmanager
    def write(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock.write():
                yield
        finally:
            self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
