"""
Caching for the highlighting pipeline.

Two independent caches:
1. PatternCache - compiled regular expressions, never evicted. Only used for
   the finite seed-word vocabulary, so it stays small.
2. LRUResultCache - full HighlightResult objects for recently processed
   texts, bounded (default 100 entries) with least-recently-used eviction.

Result keys are a cheap 32-bit polynomial rolling hash over the text and
the active category set. Each entry keeps the text it was built from so a
hash collision is reported as a miss instead of returning the wrong result.
"""

import re
from collections import OrderedDict
from typing import Any, Iterable

from prompt_lens.config import RESULT_CACHE_CAPACITY
from prompt_lens.highlighting.models import HighlightResult
from prompt_lens.logging_config import debug_log

_HASH_BASE = 31
_HASH_MASK = 0xFFFFFFFF


def rolling_hash(text: str, categories: Iterable[str] = ()) -> int:
    """
    32-bit polynomial rolling hash of text followed by the category names.

    Args:
        text: Input text
        categories: Category names in the active set (order-insensitive)

    Returns:
        Unsigned 32-bit integer
    """
    value = 0
    for char in text:
        value = (value * _HASH_BASE + ord(char)) & _HASH_MASK
    # Separator so "ab"+{"c"} and "a"+{"bc"} differ
    value = (value * _HASH_BASE + 0x1F) & _HASH_MASK
    for name in sorted(categories):
        for char in name:
            value = (value * _HASH_BASE + ord(char)) & _HASH_MASK
        value = (value * _HASH_BASE + 0x1E) & _HASH_MASK
    return value


class PatternCache:
    """
    Unbounded cache of compiled patterns keyed by (source, flags).

    Example:
        cache = PatternCache()
        pattern = cache.get(r"\\bshadow\\w*", re.IGNORECASE)
    """

    def __init__(self):
        self._patterns: dict[tuple[str, int], re.Pattern] = {}
        self.hits = 0
        self.misses = 0
        self.compilations = 0

    def get(self, source: str, flags: int = 0) -> re.Pattern:
        key = (source, flags)
        pattern = self._patterns.get(key)
        if pattern is not None:
            self.hits += 1
            return pattern

        self.misses += 1
        pattern = re.compile(source, flags)
        self.compilations += 1
        self._patterns[key] = pattern
        return pattern

    def __len__(self) -> int:
        return len(self._patterns)

    def clear(self) -> None:
        self._patterns.clear()


class LRUResultCache:
    """
    Bounded least-recently-used cache of highlighting results.
    """

    def __init__(self, capacity: int = RESULT_CACHE_CAPACITY):
        """
        Args:
            capacity: Maximum number of cached results (at least 1)

        Raises:
            ValueError: If capacity < 1
        """
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        # key -> (text, result)
        self._entries: OrderedDict[int, tuple[str, HighlightResult]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: int, text: str) -> HighlightResult | None:
        """
        Look up a result and promote it to most recently used.

        Args:
            key: rolling_hash() of the text and category set
            text: The text, to guard against hash collisions

        Returns:
            Cached result, or None on a miss
        """
        entry = self._entries.get(key)
        if entry is None or entry[0] != text:
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return entry[1]

    def put(self, key: int, text: str, result: HighlightResult) -> None:
        """Store a result, evicting the least recently used entry when full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (text, result)

        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evictions += 1

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: int) -> bool:
        return key in self._entries

    def clear(self) -> None:
        self._entries.clear()


class ResultCache:
    """
    Facade over the pattern cache and the LRU result cache.

    The engine drops cached results whenever learning state changes
    (feedback, configuration, reset); compiled patterns stay valid.
    """

    def __init__(self, capacity: int = RESULT_CACHE_CAPACITY):
        self.patterns = PatternCache()
        self.results = LRUResultCache(capacity)

    def get_pattern(self, source: str, flags: int = 0) -> re.Pattern:
        return self.patterns.get(source, flags)

    @staticmethod
    def make_key(text: str, categories: Iterable[str]) -> int:
        return rolling_hash(text, categories)

    def get_result(self, text: str, categories: Iterable[str]) -> HighlightResult | None:
        return self.results.get(self.make_key(text, categories), text)

    def put_result(self, text: str, categories: Iterable[str], result: HighlightResult) -> None:
        self.results.put(self.make_key(text, categories), text, result)

    def invalidate_results(self) -> None:
        if len(self.results):
            debug_log(f"[CACHE] Invalidated {len(self.results)} cached results")
        self.results.clear()

    def clear(self) -> None:
        self.patterns.clear()
        self.results.clear()

    def get_statistics(self) -> dict[str, Any]:
        lookups = self.results.hits + self.results.misses
        return {
            "result_entries": len(self.results),
            "result_capacity": self.results.capacity,
            "result_hits": self.results.hits,
            "result_misses": self.results.misses,
            "result_evictions": self.results.evictions,
            "result_hit_rate": (self.results.hits / lookups) if lookups else 0.0,
            "pattern_entries": len(self.patterns),
            "pattern_hits": self.patterns.hits,
            "pattern_misses": self.patterns.misses,
            "pattern_compilations": self.patterns.compilations,
        }
