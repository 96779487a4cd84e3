from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple
from .models import NormalizedMessage


class ReadWriteLock:
    """
    Shared/exclusive lock built on a single condition variable.

    Any number of readers may hold the lock together; a writer holds it alone.
    Once a writer is waiting, new readers queue behind it so that a steady
    stream of reads cannot starve writes. Not reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class MessageStore:
    """
    In-memory rolling window of the most recent normalized messages.

    Entries are kept in arrival order, oldest first. When ``max_size`` is set,
    ``add`` evicts the oldest entries in the same critical section so the
    store never holds more than ``max_size`` messages. Messages are immutable,
    so reads hand out new lists that share the message objects.

    Writers replace the internal list instead of mutating it, so a list
    obtained from ``unsafe_all`` never changes underneath its reader.
    """

    def __init__(self, max_size: Optional[int] = None) -> None:
        self._lock = ReadWriteLock()
        self._items: List[NormalizedMessage] = []
        self.max_size = max_size

    # write

    def add(self, message: NormalizedMessage) -> None:
        with self._lock.write_locked():
            items = self._items + [message]
            if self.max_size is not None:
                items = self._trimmed(items, self.max_size)
            self._items = items

    def trim_to_size(self, max_size: int) -> None:
        """Drop the oldest entries until at most ``max_size`` remain."""
        with self._lock.write_locked():
            self._items = self._trimmed(self._items, max_size)

    @staticmethod
    def _trimmed(items: List[NormalizedMessage], max_size: int) -> List[NormalizedMessage]:
        excess = len(items) - max(max_size, 0)
        return items[excess:] if excess > 0 else items

    # read

    def snapshot(self) -> List[NormalizedMessage]:
        with self._lock.read_locked():
            return list(self._items)

    def latest(self, n: int) -> List[NormalizedMessage]:
        """The last ``n`` messages, oldest first. Fewer if the store holds fewer."""
        with self._lock.read_locked():
            if n <= 0:
                return []
            return self._items[-n:]

    def latest_one(self) -> Tuple[Optional[NormalizedMessage], bool]:
        with self._lock.read_locked():
            if not self._items:
                return None, False
            return self._items[-1], True

    def size(self) -> int:
        with self._lock.read_locked():
            return len(self._items)

    def is_empty(self) -> bool:
        with self._lock.read_locked():
            return not self._items

    def unsafe_all(self) -> List[NormalizedMessage]:
        """
        Return the internal list itself, without copying.

        Ownership-unsafe: the caller must only read it, must not keep it past
        the current call, and must use it synchronously on the calling thread.
        Meant for cheap aggregation over the whole window.
        """
        with self._lock.read_locked():
            return self._items
