"""
Database Configuration
======================

Connection configuration for the lock registry, the verification ledger
(PostgreSQL) and the shared nonce store (Redis), derived from Settings.
"""
from dataclasses import dataclass

from .settings import Settings, get_settings


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    host: str
    port: int
    user: str
    password: str
    database: str
    min_size: int = 2
    max_size: int = 10

    @classmethod
    def from_settings(cls, settings: Settings, min_size: int = 2, max_size: int = 10) -> 'PostgresConfig':
        return cls(
            host=settings.postgres_host,
            port=settings.postgres_port,
            user=settings.postgres_user,
            password=settings.postgres_password,
            database=settings.postgres_db,
            min_size=min_size,
            max_size=max_size,
        )

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str

    @classmethod
    def from_settings(cls, settings: Settings) -> 'RedisConfig':
        if not settings.redis_url:
            raise ValueError("REDIS_URL is required when NONCE_BACKEND=redis")
        return cls(url=settings.redis_url)


def get_postgres_config(min_size: int = 2, max_size: int = 10) -> PostgresConfig:
    return PostgresConfig.from_settings(get_settings(), min_size=min_size, max_size=max_size)


def get_redis_config() -> RedisConfig:
    return RedisConfig.from_settings(get_settings())


async def create_redis_nonce_store(ttl_seconds: int):
    """Create and connect the Redis nonce store."""
    from lockgate.services.nonce_store import RedisNonceStore
    config = get_redis_config()
    store = RedisNonceStore(config.url, ttl_seconds=ttl_seconds)
    await store.connect()
    return store
