"""Bounded, lock-guarded LRU cache of processing contexts."""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict

from spec_context.types import CacheStats, ProcessingContext

logger = logging.getLogger(__name__)


class ContextCache:
    """Least-recently-used cache owned by one `ContextManager`.

    Memory is approximated by the serialized length of each cached context.
    """

    def __init__(self, max_entries: int = 128) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, tuple[ProcessingContext, int]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> ProcessingContext | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry[0]

    def put(self, key: str, context: ProcessingContext) -> None:
        size = len(json.dumps(context.to_dict(), separators=(",", ":"), default=str))
        with self._lock:
            self._entries[key] = (context, size)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached context %s", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entry_count=len(self._entries),
                approximate_memory_bytes=sum(size for _, size in self._entries.values()),
                hits=self._hits,
                misses=self._misses,
                max_entries=self.max_entries,
            )
