"""
TTL result cache for compatibility computations.

Keys are canonical fingerprints of a participant-id set plus the algorithm
configuration, so the same request in any id order maps to the same entry.

Key Design Decisions:
- Expired entries are misses and are removed on access
- Any backend failure is logged and treated as a miss; it never reaches
  the caller as a computation failure
- Two backends: in-process memory (bounded, oldest-first eviction) and
  joblib files on disk (one file per key)
- Last writer wins; recomputation is idempotent
"""

import hashlib
import json
import logging
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import joblib

from ..errors import CacheError

logger = logging.getLogger(__name__)


def make_cache_key(participant_ids: Iterable[Any], config: Optional[Dict[str, Any]] = None) -> str:
    """
    Build an order-independent cache key.

    Args:
        participant_ids: Participant ids (any order)
        config: Algorithm configuration that affects the result

    Returns:
        Hex SHA-256 digest
    """
    payload = {
        "participants": sorted(str(pid) for pid in participant_ids),
        "config": config or {},
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """
    One cached value.

    Attributes:
        key: Cache key
        value: Cached value
        created_at: Creation time (seconds since epoch)
        ttl: Time-to-live in seconds (None or <= 0 never expires)
    """
    key: str
    value: Any
    created_at: float
    ttl: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        if self.ttl is None or self.ttl <= 0:
            return False
        return now >= self.created_at + self.ttl


class MemoryCacheBackend:
    """
    Thread-safe in-memory store with a bounded number of entries.

    Attributes:
        max_entries: Oldest entries are evicted beyond this count
    """

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put_entry(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries.pop(entry.key, None)
            self._entries[entry.key] = entry
            while self.max_entries and len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class JoblibCacheBackend:
    """
    On-disk store: one joblib file per key under a directory.

    Corrupt or unreadable files are removed and reported as CacheError.
    """

    SUFFIX = ".joblib"

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}{self.SUFFIX}"

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            entry = joblib.load(path)
        except Exception as e:
            logger.warning(f"Removing unreadable cache file {path.name}: {e}")
            path.unlink(missing_ok=True)
            raise CacheError(f"Corrupt cache file for key {key[:12]}") from e
        if not isinstance(entry, CacheEntry):
            path.unlink(missing_ok=True)
            raise CacheError(f"Unexpected object in cache file for key {key[:12]}")
        return entry

    def put_entry(self, entry: CacheEntry) -> None:
        path = self._path(entry.key)
        tmp_path = path.with_name(f"{path.name}.{threading.get_ident()}.tmp")
        with self._lock:
            joblib.dump(entry, tmp_path)
            os.replace(tmp_path, path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock:
            if path.exists():
                path.unlink()
                return True
        return False

    def clear(self) -> None:
        with self._lock:
            for path in self.directory.glob(f"*{self.SUFFIX}"):
                path.unlink(missing_ok=True)

    def __len__(self) -> int:
        return len(list(self.directory.glob(f"*{self.SUFFIX}")))


@dataclass
class CacheConfig:
    """
    Configuration for the result cache.

    Attributes:
        backend: "memory" or "joblib"
        directory: Directory for the joblib backend
        default_ttl: TTL in seconds used when set() is called without one
        max_entries: Entry bound for the memory backend
        pair_max_entries: Entry bound for the separate pair-score cache
    """
    backend: str = "memory"
    directory: Optional[str] = None
    default_ttl: float = 3600.0
    max_entries: int = 1000
    pair_max_entries: int = 20000

    def validate(self) -> None:
        """Validate configuration values."""
        if self.backend not in ("memory", "joblib"):
            raise ValueError(f"Unknown cache backend: {self.backend}")
        if self.backend == "joblib" and not self.directory:
            raise ValueError("cache.directory is required for the joblib backend")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CacheConfig":
        """Create from main config dictionary."""
        c = config.get("cache", {}) or {}
        return cls(
            backend=c.get("backend", "memory"),
            directory=c.get("directory"),
            default_ttl=c.get("default_ttl", 3600.0),
            max_entries=c.get("max_entries", 1000),
            pair_max_entries=c.get("pair_max_entries", 20000),
        )


class ResultCache:
    """
    Key/value cache with TTL and hit/miss accounting.

    Attributes:
        backend: Storage backend (memory or joblib)
        default_ttl: TTL applied when set() is called without one
    """

    def __init__(
        self,
        backend: Optional[Any] = None,
        default_ttl: float = 3600.0,
        clock: Callable[[], float] = time.time
    ):
        self.backend = backend if backend is not None else MemoryCacheBackend()
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "errors": 0, "sets": 0, "evictions": 0}

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        clock: Callable[[], float] = time.time,
        for_pairs: bool = False
    ) -> "ResultCache":
        """
        Create a cache with the backend named in a CacheConfig.

        With for_pairs the cache holds single pair scores: the memory backend
        is bounded by pair_max_entries and joblib files go to a "pairs"
        subdirectory.
        """
        config.validate()
        if config.backend == "joblib":
            directory = Path(config.directory) / "pairs" if for_pairs else Path(config.directory)
            backend = JoblibCacheBackend(str(directory))
        else:
            max_entries = config.pair_max_entries if for_pairs else config.max_entries
            backend = MemoryCacheBackend(max_entries=max_entries)
        return cls(backend=backend, default_ttl=config.default_ttl, clock=clock)

    def _count(self, name: str) -> None:
        with self._lock:
            self._stats[name] += 1

    def lookup(self, key: str) -> Tuple[bool, Any]:
        """
        Look up a key.

        Args:
            key: Cache key

        Returns:
            Tuple of (hit, value); value is None on a miss
        """
        try:
            entry = self.backend.get_entry(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key[:12]}, treated as miss: {e}")
            self._count("errors")
            self._count("misses")
            return False, None

        if entry is None:
            self._count("misses")
            return False, None

        if entry.is_expired(self._clock()):
            self._evict(key)
            self._count("misses")
            return False, None

        self._count("hits")
        return True, entry.value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for key, or default on a miss."""
        hit, value = self.lookup(key)
        return value if hit else default

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store
            ttl: TTL in seconds (default_ttl if omitted)

        Returns:
            True if stored, False if the backend failed
        """
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        try:
            self.backend.put_entry(entry)
        except Exception as e:
            logger.warning(f"Cache write failed for {key[:12]}: {e}")
            self._count("errors")
            return False
        self._count("sets")
        return True

    def invalidate(self, key: str) -> bool:
        """Remove one key. Returns True if an entry was removed."""
        try:
            return bool(self.backend.delete(key))
        except Exception as e:
            logger.warning(f"Cache invalidate failed for {key[:12]}: {e}")
            self._count("errors")
            return False

    def clear(self) -> None:
        """Remove every entry."""
        try:
            self.backend.clear()
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")
            self._count("errors")

    def _evict(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception as e:
            logger.warning(f"Cache eviction failed for {key[:12]}: {e}")
            self._count("errors")
            return
        self._count("evictions")

    def stats(self) -> Dict[str, Any]:
        """Hit/miss counters, hit rate and current size."""
        with self._lock:
            stats = dict(self._stats)
        lookups = stats["hits"] + stats["misses"]
        stats["hit_rate"] = stats["hits"] / lookups if lookups else 0.0
        try:
            stats["size"] = len(self.backend)
        except Exception:
            stats["size"] = None
        return stats
