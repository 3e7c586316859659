"""
Nonce stores for challenge replay protection

Two interchangeable backends:
- InMemoryNonceStore: single process, dict guarded by a lock (like SimpleCache)
- RedisNonceStore:    shared between workers, SET NX EX + GETDEL

consume_nonce() is the only way a nonce becomes spent. It is a single
compare-and-set, so when two requests race on the same nonce exactly one
of them gets True.
"""
import asyncio
import json
import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Optional

import redis.asyncio as redis

from lockgate.models.domain import Challenge
from lockgate.services.errors import ExpiredChallenge, UnknownOrReusedNonce
from lockgate.utils import utc_now

logger = logging.getLogger(__name__)


class InMemoryNonceStore:
    """Thread-safe in-memory nonce store with TTL"""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.challenges: Dict[str, Challenge] = {}
        # Spent nonces are remembered until their challenge would have expired,
        # so a replay is reported as "consumed" rather than "unknown".
        self.consumed: Dict[str, datetime] = {}
        self.lock = Lock()
        self.clock = clock
        self._sweeper: Optional[asyncio.Task] = None

    async def store(self, challenge: Challenge) -> None:
        with self.lock:
            if challenge.nonce in self.challenges or challenge.nonce in self.consumed:
                raise ValueError("Nonce collision")
            self.challenges[challenge.nonce] = challenge

    async def get(self, nonce: str) -> Optional[Challenge]:
        """Unspent challenge for this nonce (may be expired)"""
        with self.lock:
            return self.challenges.get(nonce)

    async def check(self, nonce: str) -> Challenge:
        """
        Return the live challenge for a nonce without consuming it.

        Raises:
            UnknownOrReusedNonce: nonce never issued, swept, or already spent
            ExpiredChallenge: past its TTL
        """
        with self.lock:
            challenge = self.challenges.get(nonce)
            if challenge is None:
                if nonce in self.consumed:
                    raise UnknownOrReusedNonce("Challenge has already been used", reason="consumed")
                raise UnknownOrReusedNonce(reason="unknown")
            if challenge.is_expired(self.clock()):
                del self.challenges[nonce]
                raise ExpiredChallenge()
            return challenge

    async def consume_nonce(self, nonce: str) -> bool:
        """Atomically mark a nonce as spent; False if unknown, spent or expired"""
        with self.lock:
            challenge = self.challenges.get(nonce)
            if challenge is None:
                return False
            del self.challenges[nonce]
            if challenge.is_expired(self.clock()):
                return False
            self.consumed[nonce] = challenge.expires_at
            return True

    def sweep_expired(self) -> int:
        """Remove all expired challenges and spent-nonce markers"""
        now = self.clock()
        with self.lock:
            expired = [n for n, c in self.challenges.items() if c.is_expired(now)]
            for nonce in expired:
                del self.challenges[nonce]
            spent = [n for n, expires_at in self.consumed.items() if now >= expires_at]
            for nonce in spent:
                del self.consumed[nonce]

        if expired:
            logger.info(f"Swept {len(expired)} expired nonces")
        return len(expired)

    def start_sweeper(self, interval_seconds: float = 60) -> None:
        """Run sweep_expired() periodically on the running event loop"""
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop(interval_seconds))

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep_expired()

    async def stats(self) -> dict:
        now = self.clock()
        with self.lock:
            live = sum(1 for c in self.challenges.values() if not c.is_expired(now))
            return {
                "total_nonces": len(self.challenges) + len(self.consumed),
                "used_nonces": len(self.consumed),
                "valid_nonces": live,
            }

    async def close(self) -> None:
        """Stop the sweeper and drop all state"""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        with self.lock:
            self.challenges.clear()
            self.consumed.clear()


class RedisNonceStore:
    """
    Redis-backed nonce store

    Keys:
    - 'nonce:challenge:{nonce}' → challenge JSON
    - 'nonce:used:{nonce}'      → spent marker

    Both outlive the challenge by grace_seconds, so a late submission is
    reported as expired (or consumed) rather than unknown. GETDEL makes
    consumption atomic on the server: only one caller can read the value
    before it is gone.
    """

    KEY_PREFIX = 'nonce:challenge:'
    USED_PREFIX = 'nonce:used:'

    def __init__(self, redis_url: str, ttl_seconds: int = 900, grace_seconds: int = 900,
                 clock: Callable[[], datetime] = utc_now):
        self.redis = None
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.grace_seconds = grace_seconds
        self.clock = clock

    async def connect(self):
        """Initialize Redis connection"""
        self.redis = await redis.from_url(self.redis_url, decode_responses=True)

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.close()

    def _key_lifetime(self, challenge: Challenge) -> int:
        remaining = int((challenge.expires_at - self.clock()).total_seconds())
        return max(remaining, 1) + self.grace_seconds

    async def store(self, challenge: Challenge) -> None:
        created = await self.redis.set(
            self.KEY_PREFIX + challenge.nonce,
            json.dumps(challenge.to_dict()),
            nx=True,
            ex=self._key_lifetime(challenge),
        )
        if not created:
            raise ValueError("Nonce collision")

    async def get(self, nonce: str) -> Optional[Challenge]:
        """Unspent challenge for this nonce (may be expired)"""
        raw = await self.redis.get(self.KEY_PREFIX + nonce)
        if raw is None:
            return None
        return Challenge.from_dict(json.loads(raw))

    async def check(self, nonce: str) -> Challenge:
        challenge = await self.get(nonce)
        if challenge is None:
            if await self.redis.exists(self.USED_PREFIX + nonce):
                raise UnknownOrReusedNonce("Challenge has already been used", reason="consumed")
            raise UnknownOrReusedNonce(reason="unknown")
        if challenge.is_expired(self.clock()):
            raise ExpiredChallenge()
        return challenge

    async def consume_nonce(self, nonce: str) -> bool:
        raw = await self.redis.getdel(self.KEY_PREFIX + nonce)
        if raw is None:
            return False
        challenge = Challenge.from_dict(json.loads(raw))
        if challenge.is_expired(self.clock()):
            return False
        await self.redis.set(self.USED_PREFIX + nonce, "1", ex=self._key_lifetime(challenge))
        return True

    def sweep_expired(self) -> int:
        """Redis expires keys on its own"""
        return 0

    def start_sweeper(self, interval_seconds: float = 60) -> None:
        """No-op: key TTLs take the place of the sweeper"""

    async def stats(self) -> dict:
        now = self.clock()
        pending = 0
        live = 0
        async for key in self.redis.scan_iter(match=self.KEY_PREFIX + "*"):
            raw = await self.redis.get(key)
            if raw is None:
                continue
            pending += 1
            if not Challenge.from_dict(json.loads(raw)).is_expired(now):
                live += 1

        used = 0
        async for _ in self.redis.scan_iter(match=self.USED_PREFIX + "*"):
            used += 1

        return {
            "total_nonces": pending + used,
            "used_nonces": used,
            "valid_nonces": live,
        }
