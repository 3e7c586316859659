"""
Policy Repository - lock gating attached to posts and boards

Storage: PostgreSQL (gating_policies table)

Boards and posts themselves live elsewhere; this table only records which
locks a resource references and how they combine.
"""
import logging
from typing import List, Optional

import asyncpg

from lockgate.models.domain import BoardLockGating, FulfillmentMode, ResourceRef

logger = logging.getLogger(__name__)


class PolicyRepository:

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get(self, resource: ResourceRef) -> Optional[BoardLockGating]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT lock_ids, fulfillment, verification_duration_hours
                FROM gating_policies
                WHERE resource_id = $1
            """, str(resource))

            if not row:
                return None

            hours = row['verification_duration_hours']
            return BoardLockGating(
                lock_ids=list(row['lock_ids'] or []),
                fulfillment=FulfillmentMode(row['fulfillment']),
                verification_duration_hours=float(hours) if hours is not None else None,
            )

    async def set(self, resource: ResourceRef, gating: BoardLockGating) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO gating_policies (
                    resource_id, lock_ids, fulfillment, verification_duration_hours, updated_at
                )
                VALUES ($1, $2, $3, $4, NOW())
                ON CONFLICT (resource_id) DO UPDATE SET
                    lock_ids = EXCLUDED.lock_ids,
                    fulfillment = EXCLUDED.fulfillment,
                    verification_duration_hours = EXCLUDED.verification_duration_hours,
                    updated_at = NOW()
            """,
                str(resource),
                list(gating.lock_ids),
                gating.fulfillment.value,
                gating.verification_duration_hours,
            )

            logger.info(f"Set gating on {resource}: locks={gating.lock_ids} ({gating.fulfillment.value})")

    async def resources_using_lock(self, lock_id: int) -> List[str]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT resource_id FROM gating_policies
                WHERE $1 = ANY(lock_ids)
                ORDER BY resource_id
            """, lock_id)
            return [row['resource_id'] for row in rows]
