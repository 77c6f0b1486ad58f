import threading
import weakref
from contextlib import contextmanager
from typing import Hashable, Iterator


class LockRegistry:
    """
    Process-local mutual exclusion keyed by entity, e.g. ('user', 7).

    Locks are re-entrant, so a thread holding ('user', 7) may enter another
    section that asks for the same key. Multiple keys are always acquired in
    sorted order. A key's lock lives only while some caller references it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        ordered = sorted(set(keys), key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self.lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
