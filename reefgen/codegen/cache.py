"""Write-once memoization shared by concurrent workers.

The first request for a key runs the computation; every later request for
the same key reads the stored result, blocking while the first request is
still running. The computation body never runs twice for one key, and a
failure is cached and re-raised like a value.
"""

import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from reefgen.exceptions import CycleDetected

K = TypeVar('K', bound=Hashable)
V = TypeVar('V')


@dataclass
class _Entry:
    owner: int | None
    done: threading.Event = field(default_factory=threading.Event)
    value: Any = None
    error: BaseException | None = None


class WriteOnceCache(Generic[K, V]):
    """A per-run cache whose entries are computed exactly once.

    Re-entrant requests are detected: a thread asking for a key it is itself
    computing, or waiting on a key whose owner is (transitively) waiting on
    the current thread, gets ``CycleDetected`` instead of a deadlock.

    Example:
        >>> cache = WriteOnceCache('resolution')
        >>> cache.get_or_compute('#/components/schemas/Pet', lambda: 42)
        42
    """

    def __init__(self, name: str = 'cache'):
        self.name = name
        self._lock = threading.Lock()
        self._entries: dict[K, _Entry] = {}
        self._waiting: dict[int, K] = {}
        self.computations = 0

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        me = threading.get_ident()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry(owner=me)
                self.computations += 1
                owner = True
            else:
                owner = False
                if not entry.done.is_set():
                    if entry.owner == me or self._closes_cycle(me, entry.owner):
                        raise CycleDetected(key)
                    self._waiting[me] = key

        if owner:
            return self._compute(entry, compute)

        entry.done.wait()
        with self._lock:
            self._waiting.pop(me, None)
        if entry.error is not None:
            raise entry.error
        return entry.value

    def _compute(self, entry: _Entry, compute: Callable[[], V]) -> V:
        try:
            value = compute()
        except BaseException as e:
            entry.error = e
            raise
        else:
            entry.value = value
            return value
        finally:
            with self._lock:
                entry.owner = None
                entry.done.set()

    def _closes_cycle(self, me: int, owner: int | None) -> bool:
        # Follow owner -> awaited key -> its owner until the chain ends or reaches us
        seen = set()
        while owner is not None and owner not in seen:
            if owner == me:
                return True
            seen.add(owner)
            awaited = self._waiting.get(owner)
            if awaited is None:
                return False
            owner = self._entries[awaited].owner
        return False

    def peek(self, key: K) -> V | None:
        """Return a completed value without computing or waiting."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.done.is_set() or entry.error is not None:
            return None
        return entry.value

    def __contains__(self, key: K) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[K]:
        with self._lock:
            return list(self._entries)
