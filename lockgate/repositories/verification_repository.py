"""
Verification Repository - the verification ledger

Storage: PostgreSQL (pre_verifications table)

One row per (user, lock, category). Expiry is never written back: reads
filter on expires_at, so an expired row is just ignored.
"""
import json
import logging
from datetime import datetime
from typing import List, Sequence

import asyncpg

from lockgate.models.domain import CategoryType, VerificationRecord
from lockgate.utils import ensure_utc

logger = logging.getLogger(__name__)


class VerificationRepository:
    """
    Repository for VerificationRecord domain model
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def upsert(self, record: VerificationRecord) -> bool:
        """
        Insert or replace the record for its (user, lock, category) key.

        Last write wins by verified_at: an older verification finishing late
        does not overwrite a newer one.

        Returns:
            True if the row was written
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO pre_verifications (
                    user_id, lock_id, category_type,
                    verified_at, expires_at, proof_payload, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, NOW())
                ON CONFLICT (user_id, lock_id, category_type) DO UPDATE SET
                    verified_at = EXCLUDED.verified_at,
                    expires_at = EXCLUDED.expires_at,
                    proof_payload = EXCLUDED.proof_payload,
                    updated_at = NOW()
                WHERE pre_verifications.verified_at <= EXCLUDED.verified_at
                RETURNING user_id
            """,
                record.user_id,
                record.lock_id,
                record.category_type.value,
                record.verified_at,
                record.expires_at,
                json.dumps(record.proof_payload),
            )

            if row is None:
                logger.info(f"Skipped stale verification for {record.key}")
                return False
            logger.info(
                f"Recorded verification user={record.user_id} lock={record.lock_id} "
                f"category={record.category_type.value} until {record.expires_at.isoformat()}"
            )
            return True

    async def list_active(self, user_id: str, lock_ids: Sequence[int], now: datetime) -> List[VerificationRecord]:
        """Unexpired records of one user for the given locks"""
        if not lock_ids:
            return []
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT user_id, lock_id, category_type, verified_at, expires_at, proof_payload
                FROM pre_verifications
                WHERE user_id = $1
                  AND lock_id = ANY($2::int[])
                  AND expires_at > $3
            """, user_id, list(lock_ids), now)

            return [self._row_to_record(row) for row in rows]

    async def list_for_user(self, user_id: str) -> List[VerificationRecord]:
        """All records of a user, expired ones included, newest first"""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT user_id, lock_id, category_type, verified_at, expires_at, proof_payload
                FROM pre_verifications
                WHERE user_id = $1
                ORDER BY verified_at DESC
            """, user_id)

            return [self._row_to_record(row) for row in rows]

    async def delete_expired(self, before: datetime) -> int:
        """Housekeeping only; reads never depend on it"""
        async with self.db_pool.acquire() as conn:
            result = await conn.execute("""
                DELETE FROM pre_verifications WHERE expires_at <= $1
            """, before)

            deleted = int(result.split()[-1])
            if deleted:
                logger.info(f"Deleted {deleted} expired verifications")
            return deleted

    def _row_to_record(self, row) -> VerificationRecord:
        payload = row['proof_payload']
        if isinstance(payload, str):
            payload = json.loads(payload)

        return VerificationRecord(
            user_id=row['user_id'],
            lock_id=row['lock_id'],
            category_type=CategoryType(row['category_type']),
            verified_at=ensure_utc(row['verified_at']),
            expires_at=ensure_utc(row['expires_at']),
            proof_payload=payload or {},
        )
