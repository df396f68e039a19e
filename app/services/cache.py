"""
Process-wide read-through cache for task and profile lookups.

CostAwareCache is a bounded in-memory store: every entry carries a cost
(approximate bytes) and the sum of costs never exceeds max_cost. When an
insert needs room, a few resident keys are sampled and the least frequently
used one (by a count-min sketch estimate) is the eviction candidate; if the
incoming key is colder than that candidate the insert is rejected instead.
This is approximate LFU with recency as tie-breaker, not exact LRU.

CacheService layers fixed key namespaces, fixed costs and typed pydantic
(de)serialization on top, and absorbs every cache fault: callers always fall
back to storage and never fail because of the cache.
"""

import logging
import random
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Protocol, TypeVar
from urllib.parse import quote

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from app.schemas.task import TaskList, TaskPage, TaskRead
from app.schemas.user import UserProfile

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

USER_PROFILE_COST = 1024
TASK_COST = 2048
USER_TASKS_COST = 5120
TASK_PAGE_COST = 2048


class CacheBackend(Protocol):
    def set(self, key: str, value: bytes, cost: int, ttl: float | None = None) -> bool: ...

    def get(self, key: str) -> tuple[bytes | None, bool]: ...

    def delete(self, key: str) -> None: ...

    def sweep_expired(self) -> int: ...

    def metrics(self) -> dict[str, int]: ...


class FrequencySketch:
    """
    Count-min sketch of access frequency with 4-bit saturating counters.

    After sample_size increments every counter is halved so old popularity
    fades and newly hot keys can displace formerly hot ones.
    """

    DEPTH = 4
    MAX_COUNT = 15

    def __init__(self, width: int, rng: random.Random | None = None) -> None:
        self.width = max(16, width)
        self.sample_size = 10 * self.width
        rng = rng or random.Random()
        self._seeds = [rng.getrandbits(64) for _ in range(self.DEPTH)]
        self._rows = [bytearray(self.width) for _ in range(self.DEPTH)]
        self._additions = 0

    def _indexes(self, key: str) -> list[int]:
        h = hash(key)
        return [hash((seed, h)) % self.width for seed in self._seeds]

    def increment(self, key: str) -> None:
        for row, idx in zip(self._rows, self._indexes(key)):
            if row[idx] < self.MAX_COUNT:
                row[idx] += 1
        self._additions += 1
        if self._additions >= self.sample_size:
            self._age()

    def estimate(self, key: str) -> int:
        return min(row[idx] for row, idx in zip(self._rows, self._indexes(key)))

    def _age(self) -> None:
        self._rows = [bytearray(count >> 1 for count in row) for row in self._rows]
        self._additions //= 2


class _Entry:
    __slots__ = ("value", "cost", "expires_at", "last_access")

    def __init__(self, value: bytes, cost: int, expires_at: float | None, now: float) -> None:
        self.value = value
        self.cost = cost
        self.expires_at = expires_at
        self.last_access = now

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class CostAwareCache:
    """Thread-safe bounded cache; all public methods take the internal lock."""

    def __init__(
        self,
        max_cost: int,
        num_counters: int = 100_000,
        sample_size: int = 5,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        if max_cost < 1:
            raise ValueError("max_cost must be positive")
        self.max_cost = max_cost
        self.sample_size = max(1, sample_size)
        self._clock = clock
        self._rng = rng or random.Random()
        self._sketch = FrequencySketch(num_counters, self._rng)
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        # Dense key list + positions give O(1) random sampling and removal.
        self._keys: list[str] = []
        self._positions: dict[str, int] = {}
        self._used_cost = 0
        self._counters = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "rejected": 0,
            "evictions": 0,
            "expired": 0,
        }

    def get(self, key: str) -> tuple[bytes | None, bool]:
        with self._lock:
            self._sketch.increment(key)
            entry = self._entries.get(key)
            if entry is None:
                self._counters["misses"] += 1
                return None, False
            now = self._clock()
            if entry.expired(now):
                self._remove(key)
                self._counters["expired"] += 1
                self._counters["misses"] += 1
                return None, False
            entry.last_access = now
            self._counters["hits"] += 1
            return entry.value, True

    def set(self, key: str, value: bytes, cost: int, ttl: float | None = None) -> bool:
        """
        Insert or replace key. Returns False when the entry is not admitted.

        Replacing an existing key is always admitted when its cost fits the budget.
        """
        if cost < 0:
            raise ValueError("cost must be non-negative")
        if cost > self.max_cost:
            with self._lock:
                self._counters["rejected"] += 1
            return False
        with self._lock:
            self._sketch.increment(key)
            now = self._clock()
            replacing = key in self._entries
            if replacing:
                self._remove(key)
            if not self._make_room(key, cost, now, force=replacing):
                self._counters["rejected"] += 1
                return False
            expires_at = now + ttl if ttl is not None else None
            self._insert(key, _Entry(value, cost, expires_at, now))
            self._counters["sets"] += 1
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._entries:
                self._remove(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._keys.clear()
            self._positions.clear()
            self._used_cost = 0

    def sweep_expired(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                self._remove(key)
            self._counters["expired"] += len(stale)
            return len(stale)

    def metrics(self) -> dict[str, int]:
        with self._lock:
            return {
                **self._counters,
                "entries": len(self._entries),
                "cost": self._used_cost,
                "max_cost": self.max_cost,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    # Internal helpers below assume self._lock is held.

    def _make_room(self, key: str, cost: int, now: float, force: bool) -> bool:
        incoming = self._sketch.estimate(key)
        while self._used_cost + cost > self.max_cost:
            victim = self._pick_victim(now)
            if victim is None:
                return False
            victim_entry = self._entries[victim]
            if (
                not force
                and not victim_entry.expired(now)
                and incoming < self._sketch.estimate(victim)
            ):
                return False
            self._remove(victim)
            self._counters["evictions"] += 1
        return True

    def _pick_victim(self, now: float) -> str | None:
        if not self._keys:
            return None
        sample = self._rng.sample(self._keys, min(self.sample_size, len(self._keys)))

        def rank(key: str) -> tuple[int, int, float]:
            entry = self._entries[key]
            # Expired entries first, then lowest frequency, then least recently used.
            return (0 if entry.expired(now) else 1, self._sketch.estimate(key), entry.last_access)

        return min(sample, key=rank)

    def _insert(self, key: str, entry: _Entry) -> None:
        self._entries[key] = entry
        self._positions[key] = len(self._keys)
        self._keys.append(key)
        self._used_cost += entry.cost

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._used_cost -= entry.cost
        idx = self._positions.pop(key)
        last = self._keys.pop()
        if last != key:
            self._keys[idx] = last
            self._positions[last] = idx


def _key_part(value: str) -> str:
    return quote(value, safe="")


def user_profile_key(user_id: uuid.UUID) -> str:
    return f"user_profile:{user_id}"


def task_key(task_id: uuid.UUID) -> str:
    return f"task:{task_id}"


def user_tasks_key(user_id: uuid.UUID) -> str:
    return f"user_tasks:{user_id}"


def task_page_key(
    user_id: uuid.UUID,
    is_admin: bool,
    page: int,
    page_size: int,
    search: str,
    sort_by: str,
    sort_order: str,
    filters: Mapping[str, str] | None = None,
) -> str:
    """
    Composite key for one paginated task query; every result-affecting parameter is in it.
    Free-text parts are percent-encoded, so no value can contain the ":" separator.
    """
    key = (
        f"tasks:user:{user_id}:admin:{str(is_admin).lower()}:page:{page}:size:{page_size}"
        f":search:{_key_part(search)}:sort:{_key_part(sort_by)}:{_key_part(sort_order)}"
    )
    for name in sorted(filters or {}):
        key += f":{_key_part(name)}:{_key_part(filters[name])}"
    return key


class CacheService:
    """Typed entity accessors over a CacheBackend. Never raises."""

    def __init__(self, backend: CacheBackend, query_ttl_seconds: float | None = 30) -> None:
        self.backend = backend
        self.query_ttl_seconds = query_ttl_seconds

    def set(self, key: str, value: BaseModel, cost: int, ttl: float | None = None) -> bool:
        """Serialize and store value; False if it was not cached (never fatal)."""
        try:
            return self.backend.set(key, value.model_dump_json().encode("utf-8"), cost, ttl)
        except Exception:
            logger.warning("Cache set failed for key=%s", key, exc_info=True)
            return False

    def get(self, key: str, model: type[M]) -> M | None:
        """Return the cached value for key as model, or None on miss or any cache fault."""
        try:
            data, found = self.backend.get(key)
        except Exception:
            logger.warning("Cache get failed for key=%s", key, exc_info=True)
            return None
        if not found or data is None:
            return None
        try:
            return model.model_validate_json(data)
        except SchemaValidationError:
            logger.warning("Discarding undecodable cache entry key=%s", key)
            self.delete(key)
            return None

    def delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception:
            logger.warning("Cache delete failed for key=%s", key, exc_info=True)

    def get_user_profile(self, user_id: uuid.UUID) -> UserProfile | None:
        return self.get(user_profile_key(user_id), UserProfile)

    def set_user_profile(self, profile: UserProfile) -> bool:
        return self.set(user_profile_key(profile.id), profile, USER_PROFILE_COST)

    def get_task(self, task_id: uuid.UUID) -> TaskRead | None:
        return self.get(task_key(task_id), TaskRead)

    def set_task(self, task: TaskRead) -> bool:
        return self.set(task_key(task.id), task, TASK_COST)

    def get_user_tasks(self, user_id: uuid.UUID) -> TaskList | None:
        return self.get(user_tasks_key(user_id), TaskList)

    def set_user_tasks(self, user_id: uuid.UUID, tasks: TaskList) -> bool:
        return self.set(user_tasks_key(user_id), tasks, USER_TASKS_COST)

    def get_task_page(self, key: str) -> TaskPage | None:
        return self.get(key, TaskPage)

    def set_task_page(self, key: str, page: TaskPage) -> bool:
        return self.set(key, page, TASK_PAGE_COST, ttl=self.query_ttl_seconds)

    def invalidate_user_cache(self, user_id: uuid.UUID) -> None:
        """Drop the user's profile and aggregate task list. Paginated query keys age out via TTL."""
        self.delete(user_profile_key(user_id))
        self.delete(user_tasks_key(user_id))

    def invalidate_task_cache(self, task_id: uuid.UUID) -> None:
        self.delete(task_key(task_id))

    def sweep_expired(self) -> int:
        try:
            return self.backend.sweep_expired()
        except Exception:
            logger.warning("Cache sweep failed", exc_info=True)
            return 0

    def metrics(self) -> dict[str, int]:
        try:
            return self.backend.metrics()
        except Exception:
            logger.warning("Cache metrics unavailable", exc_info=True)
            return {}
