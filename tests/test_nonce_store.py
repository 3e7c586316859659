"""
Tests for the nonce stores and challenge issuance
"""

import asyncio
import re
from datetime import timedelta

import fakeredis.aioredis
import pytest

from lockgate.models.domain import CategoryType
from lockgate.services.challenge_issuer import ChallengeIssuer, build_signing_message
from lockgate.services.errors import ExpiredChallenge, UnknownOrReusedNonce
from lockgate.services.nonce_store import InMemoryNonceStore, RedisNonceStore

PROFILE = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
CHAIN_IDS = {CategoryType.UNIVERSAL_PROFILE: 42, CategoryType.ETHEREUM_PROFILE: 1}


@pytest.fixture
def store(clock):
    return InMemoryNonceStore(clock=clock)


@pytest.fixture
def issuer(store, clock):
    return ChallengeIssuer(store, CHAIN_IDS, ttl_seconds=900, clock=clock)


class TestChallengeIssuer:

    @pytest.mark.asyncio
    async def test_challenge_fields(self, issuer, clock):
        challenge = await issuer.issue_challenge("board:7", PROFILE, CategoryType.UNIVERSAL_PROFILE)

        assert re.fullmatch(r"[0-9a-f]{32}", challenge.nonce)
        assert challenge.claimed_identity == PROFILE.lower()
        assert challenge.resource_id == "board:7"
        assert challenge.chain_id == 42
        assert challenge.issued_at == clock.now
        assert challenge.expires_at - challenge.issued_at == timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_signing_message_layout(self, issuer):
        challenge = await issuer.issue_challenge("post:12", PROFILE, CategoryType.ETHEREUM_PROFILE)

        lines = challenge.signing_message.split("\n")
        assert lines[0] == "Common Ground Lock Verification Challenge:"
        assert f"Profile: {PROFILE.lower()}" in lines
        assert "Resource: post:12" in lines
        assert "Category: ethereum_profile" in lines
        assert f"Nonce: {challenge.nonce}" in lines
        assert "Chain: 1 (Ethereum Mainnet)" in lines
        assert "Issued At: 2025-01-01T12:00:00Z" in lines
        assert challenge.signing_message == build_signing_message(challenge)

    @pytest.mark.asyncio
    async def test_nonces_are_unique(self, issuer):
        nonces = set()
        for _ in range(20):
            challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
            nonces.add(challenge.nonce)
        assert len(nonces) == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identity", ["", "0x123", "abcdef0123456789abcdef0123456789abcdef01", "0x" + "g" * 40])
    async def test_rejects_bad_identity(self, issuer, identity):
        with pytest.raises(ValueError):
            await issuer.issue_challenge("post:1", identity, CategoryType.ETHEREUM_PROFILE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("resource", ["", "post", "post:", "comment:3", "12"])
    async def test_rejects_bad_resource(self, issuer, resource):
        with pytest.raises(ValueError):
            await issuer.issue_challenge(resource, PROFILE, CategoryType.ETHEREUM_PROFILE)


class TestNonceConsumption:

    @pytest.mark.asyncio
    async def test_consume_exactly_once(self, issuer, store):
        challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)

        assert await store.consume_nonce(challenge.nonce) is True
        assert await store.consume_nonce(challenge.nonce) is False

    @pytest.mark.asyncio
    async def test_check_does_not_consume(self, issuer, store):
        challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)

        checked = await store.check(challenge.nonce)
        assert checked.nonce == challenge.nonce
        assert await store.consume_nonce(challenge.nonce) is True

    @pytest.mark.asyncio
    async def test_reused_nonce_reported_as_consumed(self, issuer, store):
        challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        await store.consume_nonce(challenge.nonce)

        with pytest.raises(UnknownOrReusedNonce) as exc:
            await store.check(challenge.nonce)
        assert exc.value.reason == "consumed"

    @pytest.mark.asyncio
    async def test_unknown_nonce(self, store):
        with pytest.raises(UnknownOrReusedNonce) as exc:
            await store.check("f" * 32)
        assert exc.value.reason == "unknown"
        assert await store.consume_nonce("f" * 32) is False

    @pytest.mark.asyncio
    async def test_expired_nonce(self, issuer, store, clock):
        challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        clock.advance(minutes=15)

        with pytest.raises(ExpiredChallenge):
            await store.check(challenge.nonce)
        assert await store.consume_nonce(challenge.nonce) is False

    @pytest.mark.asyncio
    async def test_expired_nonce_cannot_be_consumed(self, issuer, store, clock):
        challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        clock.advance(minutes=16)
        assert await store.consume_nonce(challenge.nonce) is False

    @pytest.mark.asyncio
    async def test_concurrent_consumers_single_winner(self, issuer, store):
        challenge = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)

        results = await asyncio.gather(*(store.consume_nonce(challenge.nonce) for _ in range(25)))
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, issuer, store, clock):
        old = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        clock.advance(minutes=10)
        fresh = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        clock.advance(minutes=6)

        assert store.sweep_expired() == 1
        assert await store.get(old.nonce) is None
        assert await store.get(fresh.nonce) is not None

    @pytest.mark.asyncio
    async def test_stats_and_close(self, issuer, store):
        first = await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        await issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        await store.consume_nonce(first.nonce)

        assert await store.stats() == {"total_nonces": 2, "used_nonces": 1, "valid_nonces": 1}

        await store.close()
        assert (await store.stats())["total_nonces"] == 0


# =============================================================================
# REDIS BACKEND
# =============================================================================

class TestRedisNonceStore:

    @pytest.fixture
    def redis_store(self, clock):
        store = RedisNonceStore("redis://localhost:6379/0", ttl_seconds=900, grace_seconds=900, clock=clock)
        store.redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
        return store

    @pytest.fixture
    def redis_issuer(self, redis_store, clock):
        return ChallengeIssuer(redis_store, CHAIN_IDS, ttl_seconds=900, clock=clock)

    @pytest.mark.asyncio
    async def test_round_trip_and_check(self, redis_issuer, redis_store):
        challenge = await redis_issuer.issue_challenge("board:7", PROFILE, CategoryType.UNIVERSAL_PROFILE)

        checked = await redis_store.check(challenge.nonce)
        assert checked == challenge
        assert checked.signing_message == challenge.signing_message

    @pytest.mark.asyncio
    async def test_concurrent_consumers_single_winner(self, redis_issuer, redis_store):
        challenge = await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)

        results = await asyncio.gather(*(redis_store.consume_nonce(challenge.nonce) for _ in range(25)))
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_replay_reported_as_consumed(self, redis_issuer, redis_store):
        challenge = await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        assert await redis_store.consume_nonce(challenge.nonce) is True

        with pytest.raises(UnknownOrReusedNonce) as exc:
            await redis_store.check(challenge.nonce)
        assert exc.value.reason == "consumed"
        assert await redis_store.consume_nonce(challenge.nonce) is False

    @pytest.mark.asyncio
    async def test_unknown_nonce(self, redis_store):
        with pytest.raises(UnknownOrReusedNonce) as exc:
            await redis_store.check("f" * 32)
        assert exc.value.reason == "unknown"
        assert await redis_store.consume_nonce("f" * 32) is False

    @pytest.mark.asyncio
    async def test_expired_challenge_is_reported_as_expired(self, redis_issuer, redis_store, clock):
        challenge = await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        clock.advance(minutes=20)

        with pytest.raises(ExpiredChallenge):
            await redis_store.check(challenge.nonce)
        assert await redis_store.consume_nonce(challenge.nonce) is False

    @pytest.mark.asyncio
    async def test_keys_outlive_challenge_by_grace(self, redis_issuer, redis_store):
        challenge = await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)

        ttl = await redis_store.redis.ttl(RedisNonceStore.KEY_PREFIX + challenge.nonce)
        assert 900 < ttl <= 1800

        await redis_store.consume_nonce(challenge.nonce)
        ttl = await redis_store.redis.ttl(RedisNonceStore.USED_PREFIX + challenge.nonce)
        assert 900 < ttl <= 1800

    @pytest.mark.asyncio
    async def test_nonce_collision(self, redis_issuer, redis_store):
        challenge = await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)

        with pytest.raises(ValueError):
            await redis_store.store(challenge)

    @pytest.mark.asyncio
    async def test_stats_match_in_memory_shape(self, redis_issuer, redis_store, clock):
        first = await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        await redis_issuer.issue_challenge("post:1", PROFILE, CategoryType.ETHEREUM_PROFILE)
        await redis_store.consume_nonce(first.nonce)

        assert await redis_store.stats() == {"total_nonces": 2, "used_nonces": 1, "valid_nonces": 1}

        clock.advance(minutes=15)
        assert (await redis_store.stats())["valid_nonces"] == 0

    def test_sweeper_is_a_no_op(self, redis_store):
        redis_store.start_sweeper(1)
        assert redis_store.sweep_expired() == 0
