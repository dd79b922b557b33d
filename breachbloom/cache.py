"""Bounded LRU cache of decoded shard filters.

Decoding a shard costs a full file read plus a CRC pass, so a long-running
query service keeps the most recently used shards in memory. Entries are
populated on first use and tagged with the shard file's ``(inode, mtime_ns,
size)`` signature; a rebuild replaces the files, the signature changes, and
the stale entry is dropped on the next lookup.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from .bloom import BloomFilter

__all__ = ["FilterCache", "CacheStats"]

logger = logging.getLogger(__name__)

Signature = tuple[int, ...]


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class FilterCache:
    """Thread-safe LRU mapping shard key → (signature, decoded filter)."""

    def __init__(self, max_entries: int = 16):
        if max_entries < 1:
            raise ValueError(f"cache needs room for at least one shard, got {max_entries}")
        self.max_entries = max_entries
        self.stats = CacheStats()
        self._entries: OrderedDict[str, tuple[Signature, BloomFilter]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, shard: str) -> bool:
        return shard in self._entries

    def get(self, shard: str, signature: Signature) -> Optional[BloomFilter]:
        with self._lock:
            entry = self._entries.get(shard)
            if entry is None:
                self.stats.misses += 1
                return None
            if entry[0] != signature:
                del self._entries[shard]
                self.stats.invalidations += 1
                self.stats.misses += 1
                logger.debug("shard %s changed on disk, dropping cached filter", shard)
                return None
            self._entries.move_to_end(shard)
            self.stats.hits += 1
            return entry[1]

    def put(self, shard: str, signature: Signature, bf: BloomFilter) -> None:
        with self._lock:
            self._entries[shard] = (signature, bf)
            self._entries.move_to_end(shard)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self.stats.evictions += 1
                logger.debug("evicted shard %s from filter cache", evicted)

    def get_or_load(self, shard: str, signature: Signature, loader: Callable[[], BloomFilter]) -> BloomFilter:
        """Return the cached filter or build it with `loader` and remember it.

        `loader` runs outside the lock; if it raises nothing is cached.
        """
        bf = self.get(shard, signature)
        if bf is None:
            bf = loader()
            self.put(shard, signature, bf)
        return bf

    def invalidate(self, shard: Optional[str] = None) -> None:
        """Drop one shard, or everything when `shard` is None (e.g. after a rebuild)."""
        with self._lock:
            if shard is None:
                self.stats.invalidations += len(self._entries)
                self._entries.clear()
            elif self._entries.pop(shard, None) is not None:
                self.stats.invalidations += 1
