"""
Post Repository - read-only view of forum post authorship

Storage: PostgreSQL (posts table, owned by the forum application)

Only the author of a post (or a community admin) may change the locks
gating it, so the lock service asks here who wrote a post.
"""
import logging
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)


class PostRepository:

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def author_of(self, post_id: str) -> Optional[str]:
        """Author user id, or None when the post does not exist"""
        if not post_id.isdigit():
            return None

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT author_user_id FROM posts WHERE id = $1",
                int(post_id),
            )
            return row['author_user_id'] if row else None
