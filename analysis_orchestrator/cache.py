"""
Run Result Cache
================
In-memory, time-bounded memoization of complete runs.

Key: SHA-256 over the resolved target path and a canonical (key-sorted)
JSON rendering of the run options, so option order never changes the key.
Control options that do not influence the analysis (``use_cache``) are
excluded from the key.

Entries older than the TTL are treated as absent and are overwritten by the
next write; nothing is evicted eagerly. The cache is advisory only: a miss
costs latency, never correctness.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import copy
import hashlib
import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger

from analysis_orchestrator.config import CACHE


# Options that steer the orchestrator but not the analysis itself
NON_KEY_OPTIONS = frozenset({"use_cache"})


@dataclass
class CacheEntry:
    """A single cached run result."""
    key: str
    result: Any
    timestamp: float

    def age(self, now: float) -> float:
        return now - self.timestamp


def normalize_target(target: str) -> str:
    """Resolve a target path so equivalent spellings share a key."""
    return os.path.realpath(os.path.expanduser(str(target)))


def make_cache_key(target: str, options: Optional[Mapping[str, Any]] = None) -> str:
    """
    Derive the cache key for a (target, options) pair.

    Args:
        target: Analysis target (a filesystem path)
        options: Run options; ``use_cache`` is ignored

    Returns:
        Hex SHA-256 digest
    """
    relevant = {k: v for k, v in (options or {}).items() if k not in NON_KEY_OPTIONS}
    canonical = json.dumps(
        {"target": normalize_target(target), "options": relevant},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResultCache:
    """
    TTL cache for RunResults.

    Usage:
        cache = ResultCache(ttl_seconds=300)
        key = make_cache_key(target, options)
        cached = cache.get(key)
        if cached is None:
            result = await run(...)
            cache.put(key, result)
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Entry lifetime (default from config, 5 minutes)
            clock: Monotonic time source, injectable for tests
        """
        self.ttl_seconds = CACHE.TTL_SECONDS if ttl_seconds is None else float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the fresh entry for ``key``, or None on a miss."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.age(now) >= self.ttl_seconds:
                self.misses += 1
                if entry is not None:
                    logger.debug(f"Cache entry {key[:12]} expired ({entry.age(now):.1f}s old)")
                return None
            self.hits += 1
        try:
            result = copy.deepcopy(entry.result)
        except Exception as e:
            logger.warning(f"Dropping cache entry {key[:12]}: copy failed ({type(e).__name__}: {e})")
            self.invalidate(key)
            return None
        logger.debug(f"Cache hit for {key[:12]}")
        return result

    def put(self, key: str, result: Any) -> bool:
        """
        Store ``result`` under ``key``, replacing any previous entry.

        Returns:
            False if the result could not be copied and was not cached
        """
        try:
            stored = copy.deepcopy(result)
        except Exception as e:
            logger.warning(f"Result for {key[:12]} not cached: copy failed ({type(e).__name__}: {e})")
            return False
        entry = CacheEntry(key=key, result=stored, timestamp=self._clock())
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"Cached run result under {key[:12]}")
        return True

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cleared run result cache")

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            fresh = sum(1 for e in self._entries.values() if e.age(now) < self.ttl_seconds)
            return {
                "entries": len(self._entries),
                "fresh_entries": fresh,
                "hits": self.hits,
                "misses": self.misses,
                "ttl_seconds": self.ttl_seconds,
            }
