"""
lockgate - FastAPI service

Backends are chosen by settings:
- STORAGE_BACKEND=postgres|memory  locks, ledger and gating policies
- NONCE_BACKEND=redis|memory       challenge nonces (redis when running several workers)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lockgate import __version__
from lockgate.api import locks, verification
from lockgate.config import create_redis_nonce_store, get_settings
from lockgate.repositories import (
    InMemoryLockRepository,
    InMemoryPolicyRepository,
    InMemoryPostRepository,
    InMemoryVerificationRepository,
    LockRepository,
    PolicyRepository,
    PostRepository,
    VerificationRepository,
    close_db_pool,
    get_db_pool,
)
from lockgate.services.factory import build_services
from lockgate.services.nonce_store import InMemoryNonceStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


async def create_storage(settings):
    """(lock_repo, ledger, policy_repo, post_repo) for the configured backend"""
    if settings.storage_backend == "postgres":
        pool = await get_db_pool()
        return LockRepository(pool), VerificationRepository(pool), PolicyRepository(pool), PostRepository(pool)
    if settings.storage_backend != "memory":
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")
    logger.warning("Using in-memory storage; locks and verifications are lost on restart")
    return (
        InMemoryLockRepository(),
        InMemoryVerificationRepository(),
        InMemoryPolicyRepository(),
        InMemoryPostRepository(),
    )


async def create_nonce_store(settings):
    if settings.nonce_backend == "redis":
        return await create_redis_nonce_store(settings.challenge_ttl_seconds)
    if settings.nonce_backend != "memory":
        raise ValueError(f"Unknown NONCE_BACKEND: {settings.nonce_backend}")
    store = InMemoryNonceStore()
    store.start_sweeper(settings.nonce_sweep_interval_seconds)
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    lock_repo, ledger, policy_repo, post_repo = await create_storage(settings)
    nonce_store = await create_nonce_store(settings)

    app.state.services = build_services(settings, nonce_store, lock_repo, ledger, policy_repo, post_repo)
    logger.info(f"lockgate {__version__} started ({settings.environment})")
    try:
        yield
    finally:
        await app.state.services.close()
        if settings.storage_backend == "postgres":
            await close_db_pool()
        logger.info("lockgate stopped")


app = FastAPI(
    title="lockgate",
    description="Lock-based access verification for posts and boards",
    version=__version__,
    lifespan=lifespan,
)

# Enable CORS for the community frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(verification.router)
app.include_router(locks.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/health")
async def api_health():
    return {"status": "ok", "service": "lockgate", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
