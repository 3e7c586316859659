"""
In-memory repositories

Same interface as the PostgreSQL repositories, kept in dicts behind a lock.
Used for the "memory" storage backend (single process) and in tests.
Values are copied in and out so callers cannot mutate stored state.
"""
import copy
import itertools
import logging
from datetime import datetime
from threading import Lock as ThreadLock
from typing import Dict, List, Optional, Sequence, Tuple

from lockgate.models.domain import BoardLockGating, Lock, LockFilters, ResourceRef, VerificationRecord
from lockgate.utils import utc_now

logger = logging.getLogger(__name__)


class InMemoryLockRepository:

    def __init__(self):
        self.locks: Dict[int, Lock] = {}
        self.lock = ThreadLock()
        self._ids = itertools.count(1)

    async def get_by_id(self, lock_id: int) -> Optional[Lock]:
        with self.lock:
            found = self.locks.get(lock_id)
            return copy.deepcopy(found) if found else None

    async def get_many(self, lock_ids: Sequence[int]) -> Dict[int, Lock]:
        with self.lock:
            return {i: copy.deepcopy(self.locks[i]) for i in lock_ids if i in self.locks}

    async def name_exists(self, community_id: str, creator_user_id: str, name: str,
                          exclude_id: Optional[int] = None) -> bool:
        wanted = name.lower()
        with self.lock:
            return any(
                lock.community_id == community_id
                and lock.creator_user_id == creator_user_id
                and lock.name.lower() == wanted
                and lock.id != exclude_id
                for lock in self.locks.values()
            )

    async def list(self, filters: LockFilters) -> Tuple[List[Lock], int]:
        def visible(lock: Lock) -> bool:
            if lock.community_id != filters.community_id:
                return False
            if not filters.viewer_is_admin and not (
                lock.creator_user_id == filters.viewer_user_id or lock.is_public or lock.is_template
            ):
                return False
            if filters.creator_user_id and lock.creator_user_id != filters.creator_user_id:
                return False
            if filters.is_public is not None and lock.is_public != filters.is_public:
                return False
            if filters.is_template is not None and lock.is_template != filters.is_template:
                return False
            if filters.tag and filters.tag not in lock.tags:
                return False
            if filters.search:
                needle = filters.search.lower()
                if needle not in lock.name.lower() and needle not in (lock.description or "").lower():
                    return False
            return True

        with self.lock:
            matches = [lock for lock in self.locks.values() if visible(lock)]

        matches.sort(key=lambda lock: lock.created_at or datetime.min, reverse=True)
        matches.sort(key=lambda lock: (lock.is_template, lock.usage_count), reverse=True)
        page = matches[filters.offset:filters.offset + filters.limit]
        return [copy.deepcopy(lock) for lock in page], len(matches)

    async def create(self, lock: Lock) -> Lock:
        now = utc_now()
        with self.lock:
            lock.id = next(self._ids)
            lock.created_at = now
            lock.updated_at = now
            self.locks[lock.id] = copy.deepcopy(lock)
        logger.info(f"Created lock {lock.id} '{lock.name}' by user {lock.creator_user_id}")
        return lock

    async def update(self, lock: Lock) -> Lock:
        with self.lock:
            stored = self.locks.get(lock.id)
            if stored is not None:
                lock.updated_at = utc_now()
                # Statistics are owned by record_attempt
                lock.usage_count = stored.usage_count
                lock.success_rate = stored.success_rate
                lock.avg_verification_time = stored.avg_verification_time
                self.locks[lock.id] = copy.deepcopy(lock)
        return lock

    async def delete(self, lock_id: int) -> bool:
        with self.lock:
            return self.locks.pop(lock_id, None) is not None

    async def record_attempt(self, lock_id: int, success: bool, elapsed_seconds: float) -> None:
        with self.lock:
            lock = self.locks.get(lock_id)
            if lock is None:
                return
            n = lock.usage_count
            lock.success_rate = (lock.success_rate * n + (1.0 if success else 0.0)) / (n + 1)
            lock.avg_verification_time = (lock.avg_verification_time * n + elapsed_seconds) / (n + 1)
            lock.usage_count = n + 1


class InMemoryVerificationRepository:

    def __init__(self):
        self.records: Dict[tuple, VerificationRecord] = {}
        self.lock = ThreadLock()

    async def upsert(self, record: VerificationRecord) -> bool:
        with self.lock:
            current = self.records.get(record.key)
            if current is not None and current.verified_at > record.verified_at:
                logger.info(f"Skipped stale verification for {record.key}")
                return False
            self.records[record.key] = copy.deepcopy(record)
            return True

    async def list_active(self, user_id: str, lock_ids: Sequence[int], now: datetime) -> List[VerificationRecord]:
        wanted = set(lock_ids)
        with self.lock:
            return [
                copy.deepcopy(r) for r in self.records.values()
                if r.user_id == user_id and r.lock_id in wanted and r.is_active(now)
            ]

    async def list_for_user(self, user_id: str) -> List[VerificationRecord]:
        with self.lock:
            found = [copy.deepcopy(r) for r in self.records.values() if r.user_id == user_id]
        return sorted(found, key=lambda r: r.verified_at, reverse=True)

    async def delete_expired(self, before: datetime) -> int:
        with self.lock:
            expired = [key for key, r in self.records.items() if r.expires_at <= before]
            for key in expired:
                del self.records[key]
        return len(expired)


class InMemoryPolicyRepository:

    def __init__(self):
        self.policies: Dict[str, BoardLockGating] = {}
        self.lock = ThreadLock()

    async def get(self, resource: ResourceRef) -> Optional[BoardLockGating]:
        with self.lock:
            found = self.policies.get(str(resource))
            return copy.deepcopy(found) if found else None

    async def set(self, resource: ResourceRef, gating: BoardLockGating) -> None:
        with self.lock:
            self.policies[str(resource)] = copy.deepcopy(gating)
        logger.info(f"Set gating on {resource}: locks={gating.lock_ids} ({gating.fulfillment.value})")

    async def resources_using_lock(self, lock_id: int) -> List[str]:
        with self.lock:
            return sorted(rid for rid, g in self.policies.items() if lock_id in g.lock_ids)


class InMemoryPostRepository:
    """Post authorship registered by the embedding application or tests"""

    def __init__(self):
        self.authors: Dict[str, str] = {}
        self.lock = ThreadLock()

    def set_author(self, post_id: str, user_id: str) -> None:
        with self.lock:
            self.authors[str(post_id)] = user_id

    async def author_of(self, post_id: str) -> Optional[str]:
        with self.lock:
            return self.authors.get(str(post_id))
