"""
Repository Pattern - Storage abstraction layer

Repositories hide storage details from the verification services.
Consumers work with domain models, not storage-specific types.

- LockRepository:          PostgreSQL (locks)
- VerificationRepository:  PostgreSQL (pre_verifications), the verification ledger
- PolicyRepository:        PostgreSQL (gating_policies)
- PostRepository:          PostgreSQL (posts, read-only), post authorship
- InMemory*Repository:     same interfaces in process memory
"""
import asyncpg

from lockgate.config import get_postgres_config

# Shared database connection pool (initialized on first use)
db_pool = None


async def get_db_pool():
    """Get or create shared database connection pool"""
    global db_pool
    if db_pool is None:
        db_pool = await asyncpg.create_pool(**get_postgres_config().to_asyncpg_kwargs())
    return db_pool


async def close_db_pool():
    global db_pool
    if db_pool is not None:
        await db_pool.close()
        db_pool = None


from .lock_repository import LockRepository  # noqa: E402
from .verification_repository import VerificationRepository  # noqa: E402
from .policy_repository import PolicyRepository  # noqa: E402
from .post_repository import PostRepository  # noqa: E402
from .memory import (  # noqa: E402
    InMemoryLockRepository,
    InMemoryVerificationRepository,
    InMemoryPolicyRepository,
    InMemoryPostRepository,
)

__all__ = [
    'LockRepository',
    'VerificationRepository',
    'PolicyRepository',
    'PostRepository',
    'InMemoryLockRepository',
    'InMemoryVerificationRepository',
    'InMemoryPolicyRepository',
    'InMemoryPostRepository',
    'db_pool',
    'get_db_pool',
    'close_db_pool',
]
