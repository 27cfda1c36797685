"""
Permission Cache - process-local caching for user snapshots and sessions.

Two TTL-bounded caches share one lock:
1. Users:    user_id -> UserSnapshot   (5-min TTL, 1000 entries)
2. Sessions: token   -> SessionValidation (10-min TTL, 2000 entries)

Eviction:
- When a cache is full, the oldest 10% of entries by insertion are dropped.
- Sessions expiring within 60 seconds are never cached.
- Expired entries are dropped on read and by the periodic cleanup sweep.
- A session entry never outlives the user snapshot it was cached with, and
  caching a session never extends that snapshot's TTL.

Invalidation:
- invalidate_user() drops the snapshot and every session of that user.
- Any invalidation bumps a generation counter; a snapshot loaded before the
  bump is refused by set_user(), so a slow store read can never resurrect
  stale permissions.

Lifecycle is owned by the caller: construct, start(), shutdown().
There is no module-level instance.
"""

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from config.settings import RBACCacheSettings

from .store import SessionRecord, UserSnapshot

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Rough per-entry footprint used for the memory estimate in stats
USER_ENTRY_BYTES = 500
SESSION_ENTRY_BYTES = 800


# =============================================================================
# CACHE ENTRY
# =============================================================================

@dataclass
class CacheEntry:
    """Cached value with its expiry."""
    value: Any
    cached_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired."""
        return now >= self.expires_at


@dataclass(frozen=True)
class SessionValidation:
    """A validated session together with its user's snapshot."""
    session: SessionRecord
    snapshot: UserSnapshot

    @property
    def user_id(self) -> str:
        return self.session.user_id


# =============================================================================
# TTL CACHE
# =============================================================================

class TTLCache:
    """
    Thread-safe TTL cache with insertion-order batch eviction.

    Re-setting a key moves it to the newest position. When the cache is
    full the oldest `eviction_fraction` of entries are dropped in one go.
    """

    def __init__(
        self,
        name: str,
        maxsize: int = 1000,
        ttl_seconds: float = 300,
        eviction_fraction: float = 0.1,
        clock: Clock = time.time,
        lock: Optional[threading.RLock] = None,
    ):
        self.name = name
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self.eviction_fraction = eviction_fraction
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = lock or threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def eviction_batch(self) -> int:
        return max(1, math.floor(self.maxsize * self.eviction_fraction))

    def get(self, key: str) -> Optional[Any]:
        """Get a live value, counting the hit or miss."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                self.misses += 1
                return None

            self.hits += 1
            return entry.value

    def peek(self, key: str) -> Optional[Any]:
        """Get a value without touching counters or expiry."""
        with self._lock:
            entry = self._cache.get(key)
            return entry.value if entry else None

    def deadline(self, key: str) -> Optional[float]:
        """Expiry time of a live entry, or None when absent or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry.expires_at

    def set(self, key: str, value: Any, expires_at: Optional[float] = None) -> None:
        """Insert or replace a value. expires_at may only shorten the TTL."""
        with self._lock:
            now = self._clock()
            deadline = now + self.ttl_seconds
            if expires_at is not None:
                deadline = min(deadline, expires_at)

            if key in self._cache:
                del self._cache[key]
            elif len(self._cache) >= self.maxsize:
                self._evict_oldest()

            self._cache[key] = CacheEntry(value=value, cached_at=now, expires_at=deadline)

    def _evict_oldest(self) -> None:
        """Drop the oldest batch of entries (must hold lock)."""
        count = min(self.eviction_batch, len(self._cache))
        for _ in range(count):
            self._cache.popitem(last=False)
        self.evictions += count
        logger.debug(f"Evicted {count} entries from {self.name} cache")

    def invalidate(self, key: str) -> bool:
        """Remove entry from cache."""
        with self._lock:
            return self._cache.pop(key, None) is not None

    def invalidate_where(self, predicate: Callable[[Any], bool]) -> int:
        """Remove all entries whose value matches predicate."""
        with self._lock:
            keys = [k for k, e in self._cache.items() if predicate(e.value)]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def purge_expired(self, extra: Optional[Callable[[Any, float], bool]] = None) -> int:
        """Remove expired entries in one scan."""
        with self._lock:
            now = self._clock()
            keys = [
                k for k, e in self._cache.items()
                if e.is_expired(now) or (extra is not None and extra(e.value, now))
            ]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def clear(self) -> None:
        """Clear all entries and counters."""
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self.maxsize,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": round(self.hit_rate, 4),
            }


# =============================================================================
# PERMISSION CACHE
# =============================================================================

class PermissionCache:
    """
    User snapshot and session validation cache.

    Usage:
        cache = PermissionCache(settings.cache)
        cache.start()
        ...
        cache.shutdown()
    """

    def __init__(
        self,
        settings: Optional[RBACCacheSettings] = None,
        clock: Clock = time.time,
    ):
        self.settings = settings or RBACCacheSettings()
        self._clock = clock
        self._lock = threading.RLock()
        self._generation = 0

        self._users = TTLCache(
            "user",
            maxsize=self.settings.user_max_entries,
            ttl_seconds=self.settings.user_ttl_seconds,
            eviction_fraction=self.settings.eviction_fraction,
            clock=clock,
            lock=self._lock,
        )
        self._sessions = TTLCache(
            "session",
            maxsize=self.settings.session_max_entries,
            ttl_seconds=self.settings.session_ttl_seconds,
            eviction_fraction=self.settings.eviction_fraction,
            clock=clock,
            lock=self._lock,
        )

        self._stop = threading.Event()
        self._worker: Optional[threading.Thread] = None

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @property
    def generation(self) -> int:
        """Read before a store load; pass to set_user() afterwards."""
        with self._lock:
            return self._generation

    def get_user(self, user_id: str) -> Optional[UserSnapshot]:
        return self._users.get(user_id)

    def set_user(self, snapshot: UserSnapshot, generation: Optional[int] = None) -> bool:
        """
        Cache a snapshot.

        Returns False without caching when an invalidation happened after
        `generation` was read.
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(
                    f"Discarded stale snapshot for user {snapshot.user_id}",
                    extra={"user_id": snapshot.user_id},
                )
                return False
            self._users.set(snapshot.user_id, snapshot)
            return True

    def invalidate_user(self, user_id: str) -> int:
        """Drop the user's snapshot and all of their sessions."""
        with self._lock:
            self._generation += 1
            removed = int(self._users.invalidate(user_id))
            removed += self._sessions.invalidate_where(lambda v: v.user_id == user_id)
        logger.debug(f"Invalidated {removed} cache entries for user {user_id}")
        return removed

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def get_session_validation(self, token: str) -> Optional[SessionValidation]:
        with self._lock:
            validation = self._sessions.get(token)
            if validation is None:
                return None
            if validation.session.expires_at_ts <= self._clock():
                self._sessions.invalidate(token)
                return None
            return validation

    def set_session_validation(
        self,
        validation: SessionValidation,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Cache a validated session and its user snapshot.

        Sessions with less than session_min_remaining_seconds left are not
        cached. An already cached user snapshot keeps its original deadline,
        and the session entry expires no later than that snapshot.
        Returns True if the session was cached.
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                return False

            now = self._clock()
            expires_at = validation.session.expires_at_ts
            if expires_at - now < self.settings.session_min_remaining_seconds:
                return False

            user_id = validation.snapshot.user_id
            user_deadline = self._users.deadline(user_id)
            if user_deadline is None:
                self._users.set(user_id, validation.snapshot)
                user_deadline = self._users.deadline(user_id)
            if user_deadline is not None:
                expires_at = min(expires_at, user_deadline)

            self._sessions.set(validation.session.token, validation, expires_at=expires_at)
            return True

    def invalidate_session(self, token: str) -> bool:
        with self._lock:
            return self._sessions.invalidate(token)

    def invalidate_user_sessions(self, user_id: str) -> int:
        with self._lock:
            self._generation += 1
            return self._sessions.invalidate_where(lambda v: v.user_id == user_id)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def cleanup(self) -> Dict[str, int]:
        """Remove expired entries from both caches."""
        users = self._users.purge_expired()
        sessions = self._sessions.purge_expired(
            lambda v, now: v.session.expires_at_ts <= now
        )
        if users or sessions:
            logger.debug(f"Cache cleanup removed {users} users and {sessions} sessions")
        return {"users": users, "sessions": sessions}

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._users.clear()
            self._sessions.clear()
        logger.info("Permission cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            users = self._users.stats()
            sessions = self._sessions.stats()
        estimated = users["size"] * USER_ENTRY_BYTES + sessions["size"] * SESSION_ENTRY_BYTES
        return {
            "users": users,
            "sessions": sessions,
            "memory": {
                "estimated_bytes": estimated,
                "estimated_kb": round(estimated / 1024, 2),
            },
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self, cleanup_interval: Optional[float] = None) -> None:
        """Start the periodic cleanup thread. Calling twice is a no-op."""
        if self.running:
            return
        interval = cleanup_interval or self.settings.cleanup_interval_seconds
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._cleanup_loop,
            args=(interval,),
            name="permission-cache-cleanup",
            daemon=True,
        )
        self._worker.start()
        logger.info(f"Permission cache cleanup started (every {interval}s)")

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the cleanup thread and wait for it to exit."""
        self._stop.set()
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.join(timeout)
            logger.info("Permission cache cleanup stopped")

    def _cleanup_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.cleanup()
            except Exception:
                logger.exception("Permission cache cleanup failed")

    def __enter__(self) -> "PermissionCache":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()


# =============================================================================
# HEALTH
# =============================================================================

# Hit rates are only judged once there has been some traffic
MIN_LOOKUPS_FOR_HIT_RATE = 20


def assess_cache_health(stats: Dict[str, Any]) -> Dict[str, Any]:
    """Classify cache stats as healthy, warning or critical."""
    issues = []
    recommendations = []
    users = stats["users"]
    sessions = stats["sessions"]

    def lookups(s):
        return s["hits"] + s["misses"]

    if lookups(sessions) >= MIN_LOOKUPS_FOR_HIT_RATE and sessions["hit_rate"] < 0.5:
        issues.append("Low session cache hit rate")
        recommendations.append("Consider increasing session cache TTL")

    if lookups(users) >= MIN_LOOKUPS_FOR_HIT_RATE and users["hit_rate"] < 0.3:
        issues.append("Low user cache hit rate")
        recommendations.append("Consider increasing user cache TTL")

    session_util = sessions["size"] / sessions["max_size"]
    user_util = users["size"] / users["max_size"]

    if session_util > 0.9:
        issues.append("Session cache near capacity")
        recommendations.append("Consider increasing session cache size")

    if user_util > 0.9:
        issues.append("User cache near capacity")
        recommendations.append("Consider increasing user cache size")

    status = "healthy"
    if issues:
        status = "warning"
    if session_util > 0.9 and user_util > 0.9:
        status = "critical"

    return {"status": status, "issues": issues, "recommendations": recommendations}
