"""
Execution Cache
===============

Bounded LRU memo of sandbox results, keyed by a digest of the evaluated
expression and its context. Only successful evaluations are stored; a failed
evaluation is retried the next time it is requested.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheStats:
    """Counters for one cache instance."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate in percent."""
        total = self.hits + self.misses
        return round(self.hits / total * 100, 2) if total > 0 else 0.0


class ExecutionCache:
    """
    LRU cache of evaluation results.

    Usage:
        >>> cache = ExecutionCache(max_size=2)
        >>> cache.set('a', 1); cache.set('b', 2); cache.get('a')
        1
        >>> cache.set('c', 3)      # evicts 'b', the least recently used
        >>> cache.has('b')
        False
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError(f'max_size must be positive, got {max_size}')
        self.max_size = max_size
        self._entries: 'OrderedDict[str, Any]' = OrderedDict()
        self._stats = CacheStats()

    def has(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str, default: Any = None) -> Any:
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            self._stats.misses += 1
            return default
        self._entries.move_to_end(key)
        self._stats.hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        self._stats.sets += 1
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug("Evicted %s from execution cache", evicted)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self._entries.clear()
        self._stats = CacheStats()

    @property
    def size(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    @property
    def hit_rate(self) -> float:
        return self._stats.hit_rate

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def values(self) -> List[Any]:
        return list(self._entries.values())

    def stats(self) -> Dict[str, Any]:
        return {
            'hits': self._stats.hits,
            'misses': self._stats.misses,
            'sets': self._stats.sets,
            'evictions': self._stats.evictions,
            'size': self.size,
            'max_size': self.max_size,
            'hit_rate': self._stats.hit_rate,
        }

    def export(self) -> Dict[str, Any]:
        """Entries from least to most recently used."""
        return dict(self._entries)

    def import_(self, entries: Mapping[str, Any]) -> None:
        """Load entries (e.g. from :meth:`export`); counts as sets."""
        for key, value in entries.items():
            self.set(key, value)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __repr__(self) -> str:
        return f'ExecutionCache(size={self.size}, max_size={self.max_size})'
