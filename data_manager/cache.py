"""RecordCache
--------------
In-process mirror of stored records, keyed by record id.

The cache never decides what is true: the store does. It is filled from
the store (on connect or on the first full read), overwritten after each
confirmed write, and corrected by change notifications. There is no
eviction; the collection is expected to stay small.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class RecordCache(Generic[T]):
    """Thread-safe id -> record mapping with a "warm" flag.

    The cache is warm once it has been filled with the complete contents
    of the store; only then can it answer "list everything" on its own.
    Single-record lookups can be served whether warm or not.
    """

    def __init__(self, name: str):
        self.name = name
        self._records: Dict[Any, T] = {}
        self._lock = threading.RLock()
        self._warm = False
        self._version = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._records

    @property
    def is_warm(self) -> bool:
        return self._warm

    @property
    def version(self) -> int:
        """Counter bumped by every put, discard and invalidate."""
        with self._lock:
            return self._version

    def get(self, key: Any) -> Optional[T]:
        with self._lock:
            return self._records.get(key)

    def put(self, key: Any, record: T) -> None:
        with self._lock:
            self._records[key] = record
            self._version += 1

    def discard(self, key: Any) -> bool:
        """Remove a record. Returns True if it was cached."""
        with self._lock:
            self._version += 1
            return self._records.pop(key, None) is not None

    def values(self) -> List[T]:
        with self._lock:
            return list(self._records.values())

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        """Return the first cached record matching `predicate`."""
        for record in self.values():
            if predicate(record):
                return record
        return None

    def fill(self, entries: Iterable[Tuple[Any, T]], since: Optional[int] = None) -> int:
        """Replace the whole cache with `entries` and mark it warm.

        Args:
            entries: (key, record) pairs read from the store.
            since: The `version` observed before the store was read. If the
                cache has been written to since then, `entries` may be older
                than what is cached, so the cache is left untouched and cold.

        Returns:
            int: Number of records cached (0 when the fill was skipped).
        """
        fresh = dict(entries)
        with self._lock:
            if since is not None and since != self._version:
                return 0
            self._records = fresh
            self._warm = True
        return len(fresh)

    def invalidate(self) -> None:
        """Drop everything; the next full read goes to the store."""
        with self._lock:
            self._records = {}
            self._warm = False
            self._version += 1
