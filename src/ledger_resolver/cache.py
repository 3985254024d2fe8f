"""
Resolution cache for the ledger resolver.

Two TTL-bound in-memory tiers sit in front of the mirror: a positive tier of
record snapshots for names that resolved, and a negative tier of absence
markers for names the ledger confirmed missing. A name is never held by both
tiers at once; any write to one tier evicts the other for the same key.
Expiry is passive and checked at read time. Eviction is time-based only.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from .config import CacheConfig
from .models import DomainRecord

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its absolute expiry time."""

    value: V
    expires_at: float


@dataclass
class CacheStats:
    """Counts of live entries and lookups per tier."""

    positive_entries: int
    negative_entries: int
    positive_hits: int
    negative_hits: int
    misses: int


class TTLStore(Generic[V]):
    """
    A dictionary whose entries expire after a fixed time-to-live.

    Expired entries are dropped lazily on access or by ``purge_expired``.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, value: V) -> None:
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=self._clock() + self._ttl_seconds,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)


class ResolutionCache:
    """
    Two-tier cache of resolution outcomes.

    Lookup order is negative tier, then positive tier, then miss. All
    operations take a single lock, so each per-key read-modify-write is
    atomic with respect to concurrent callers.
    """

    # Stored in the negative tier; only its presence matters
    ABSENT = True

    def __init__(
        self,
        config: CacheConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            config: Tier lifetimes
            clock: Monotonic time source, injectable for tests
        """
        self._positive: TTLStore[DomainRecord] = TTLStore(config.positive_ttl_seconds, clock)
        self._negative: TTLStore[bool] = TTLStore(config.negative_ttl_seconds, clock)
        self._lock = threading.RLock()
        self._positive_hits = 0
        self._negative_hits = 0
        self._misses = 0

    def lookup(self, name: str) -> tuple[bool, Optional[DomainRecord]]:
        """
        Look a name up in both tiers.

        Returns:
            ``(True, None)`` on a negative hit, ``(True, record)`` on a
            positive hit, ``(False, None)`` on a miss
        """
        with self._lock:
            if self._negative.has(name):
                self._negative_hits += 1
                return True, None
            record = self._positive.get(name)
            if record is not None:
                self._positive_hits += 1
                return True, record.copy()
            self._misses += 1
            return False, None

    def set_positive(self, name: str, record: DomainRecord) -> None:
        with self._lock:
            self._negative.delete(name)
            self._positive.set(name, record.copy())

    def set_negative(self, name: str) -> None:
        with self._lock:
            self._positive.delete(name)
            self._negative.set(name, self.ABSENT)

    def refresh_if_present(self, name: str, record: DomainRecord) -> bool:
        """
        Replace a live positive entry with a newer record.

        Names not held by the positive tier are left untouched.

        Returns:
            True if an entry was refreshed
        """
        with self._lock:
            if not self._positive.has(name):
                return False
            self._positive.set(name, record.copy())
            return True

    def clear_negative(self, name: str) -> bool:
        with self._lock:
            return self._negative.delete(name)

    def invalidate(self, name: str) -> None:
        """Remove a name from both tiers."""
        with self._lock:
            self._positive.delete(name)
            self._negative.delete(name)

    def has_positive(self, name: str) -> bool:
        with self._lock:
            return self._positive.has(name)

    def has_negative(self, name: str) -> bool:
        with self._lock:
            return self._negative.has(name)

    def purge_expired(self) -> int:
        with self._lock:
            return self._positive.purge_expired() + self._negative.purge_expired()

    def clear(self) -> None:
        with self._lock:
            self._positive.clear()
            self._negative.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                positive_entries=len(self._positive),
                negative_entries=len(self._negative),
                positive_hits=self._positive_hits,
                negative_hits=self._negative_hits,
                misses=self._misses,
            )
