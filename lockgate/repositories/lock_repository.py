"""
Lock Repository - PostgreSQL storage for lock definitions

Storage: PostgreSQL (locks table)

The gating configuration (categories + fulfillment) is stored as one JSONB
document; amounts inside it are decimal strings.
"""
import json
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import asyncpg

from lockgate.models.domain import Category, FulfillmentMode, Lock, LockFilters
from lockgate.utils import ensure_utc

logger = logging.getLogger(__name__)

LOCK_COLUMNS = """
    id, name, description, icon, color, gating_config,
    creator_user_id, community_id, is_template, is_public, tags,
    usage_count, success_rate, avg_verification_time,
    created_at, updated_at
"""


class LockRepository:
    """
    Repository for Lock domain model
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get_by_id(self, lock_id: int) -> Optional[Lock]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                SELECT {LOCK_COLUMNS}
                FROM locks
                WHERE id = $1
            """, lock_id)

            return self._row_to_lock(row) if row else None

    async def get_many(self, lock_ids: Sequence[int]) -> Dict[int, Lock]:
        """Locks by id; missing ids are simply absent from the result"""
        if not lock_ids:
            return {}
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT {LOCK_COLUMNS}
                FROM locks
                WHERE id = ANY($1::int[])
            """, list(lock_ids))

            return {row['id']: self._row_to_lock(row) for row in rows}

    async def name_exists(self, community_id: str, creator_user_id: str, name: str,
                          exclude_id: Optional[int] = None) -> bool:
        """Case-insensitive name clash within one creator's locks in a community"""
        async with self.db_pool.acquire() as conn:
            found = await conn.fetchval("""
                SELECT 1 FROM locks
                WHERE community_id = $1
                  AND creator_user_id = $2
                  AND LOWER(name) = LOWER($3)
                  AND ($4::int IS NULL OR id <> $4)
                LIMIT 1
            """, community_id, creator_user_id, name, exclude_id)
            return found is not None

    async def list(self, filters: LockFilters) -> Tuple[List[Lock], int]:
        """
        Locks visible to the viewer, templates first, then most used, then newest.

        Returns:
            (page of locks, total matching)
        """
        conditions = ["community_id = $1"]
        params: list = [filters.community_id]

        def add(condition: str, value) -> None:
            params.append(value)
            conditions.append(condition.format(n=len(params)))

        if not filters.viewer_is_admin:
            add("(creator_user_id = ${n} OR is_public = TRUE OR is_template = TRUE)", filters.viewer_user_id)
        if filters.creator_user_id:
            add("creator_user_id = ${n}", filters.creator_user_id)
        if filters.is_public is not None:
            add("is_public = ${n}", filters.is_public)
        if filters.is_template is not None:
            add("is_template = ${n}", filters.is_template)
        if filters.tag:
            add("${n} = ANY(tags)", filters.tag)
        if filters.search:
            add("(name ILIKE ${n} OR description ILIKE ${n})", f"%{filters.search}%")

        where = " AND ".join(conditions)

        async with self.db_pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM locks WHERE {where}", *params)
            rows = await conn.fetch(f"""
                SELECT {LOCK_COLUMNS}
                FROM locks
                WHERE {where}
                ORDER BY is_template DESC, usage_count DESC, created_at DESC
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """, *params, filters.limit, filters.offset)

            return [self._row_to_lock(row) for row in rows], total

    # =========================================================================
    # CREATE / UPDATE / DELETE
    # =========================================================================

    async def create(self, lock: Lock) -> Lock:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO locks (
                    name, description, icon, color, gating_config,
                    creator_user_id, community_id, is_template, is_public, tags,
                    created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9, $10, NOW(), NOW())
                RETURNING id, created_at, updated_at
            """,
                lock.name,
                lock.description,
                lock.icon,
                lock.color,
                json.dumps(lock.gating_config()),
                lock.creator_user_id,
                lock.community_id,
                lock.is_template,
                lock.is_public,
                list(lock.tags),
            )

            lock.id = row['id']
            lock.created_at = ensure_utc(row['created_at'])
            lock.updated_at = ensure_utc(row['updated_at'])

            logger.info(f"Created lock {lock.id} '{lock.name}' by user {lock.creator_user_id}")
            return lock

    async def update(self, lock: Lock) -> Lock:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE locks
                SET name = $2, description = $3, icon = $4, color = $5,
                    gating_config = $6::jsonb, is_template = $7, is_public = $8,
                    tags = $9, updated_at = NOW()
                WHERE id = $1
                RETURNING updated_at
            """,
                lock.id,
                lock.name,
                lock.description,
                lock.icon,
                lock.color,
                json.dumps(lock.gating_config()),
                lock.is_template,
                lock.is_public,
                list(lock.tags),
            )

            if row:
                lock.updated_at = ensure_utc(row['updated_at'])
                logger.info(f"Updated lock {lock.id}")
            return lock

    async def delete(self, lock_id: int) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute("DELETE FROM locks WHERE id = $1", lock_id)

            rows_deleted = int(result.split()[-1])
            if rows_deleted > 0:
                logger.info(f"Deleted lock {lock_id}")
                return True
            return False

    async def record_attempt(self, lock_id: int, success: bool, elapsed_seconds: float) -> None:
        """
        Fold one verification attempt into the usage statistics.

        SET expressions read the pre-update row, so the rolling averages use
        the old usage_count as n.
        """
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                UPDATE locks
                SET success_rate = (success_rate * usage_count + $2) / (usage_count + 1),
                    avg_verification_time = (avg_verification_time * usage_count + $3) / (usage_count + 1),
                    usage_count = usage_count + 1
                WHERE id = $1
            """, lock_id, 1.0 if success else 0.0, float(elapsed_seconds))

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _row_to_lock(self, row) -> Lock:
        config = row['gating_config']
        if isinstance(config, str):
            config = json.loads(config)

        return Lock(
            id=row['id'],
            name=row['name'],
            description=row['description'],
            icon=row['icon'],
            color=row['color'],
            categories=[Category.from_dict(c) for c in config.get('categories', [])],
            fulfillment=FulfillmentMode(config['fulfillment']),
            creator_user_id=row['creator_user_id'],
            community_id=row['community_id'],
            is_template=row['is_template'],
            is_public=row['is_public'],
            tags=list(row['tags'] or []),
            usage_count=row['usage_count'],
            success_rate=float(row['success_rate']),
            avg_verification_time=float(row['avg_verification_time']),
            created_at=ensure_utc(row['created_at']),
            updated_at=ensure_utc(row['updated_at']),
        )
