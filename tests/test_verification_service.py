"""
End-to-end tests for the verification flow

challenge → signature → nonce consumption → requirement checks → ledger
→ access status, on in-memory storage and the fake chain.
"""

from datetime import timedelta

import pytest
from eth_account import Account

from lockgate.models.api.user import UserPublic
from lockgate.models.domain import (
    BoardLockGating,
    Category,
    CategoryType,
    FulfillmentMode,
    FungibleBalance,
    Lock,
    NativeBalance,
    ResourceRef,
    VerificationRecord,
)
from lockgate.services.errors import (
    ExpiredChallenge,
    ExternalServiceUnavailable,
    InvalidSignature,
    MalformedRequirementConfig,
    RequirementUnsatisfied,
    ResourceNotGated,
    UnknownOrReusedNonce,
)
from lockgate.utils import add_hours

from fakes import sign

OWNER = UserPublic(user_id="u-owner", community_id="c1")
ADMIN = UserPublic(user_id="u-admin", community_id="c1", is_admin=True)
TOKEN = "0x" + "a1" * 20
ETH = CategoryType.ETHEREUM_PROFILE
UP = CategoryType.UNIVERSAL_PROFILE


def lock_with(*requirements, name="Holders", mode=FulfillmentMode.ANY, category=ETH):
    return Lock(
        id=None,
        name=name,
        community_id="",
        creator_user_id="",
        categories=[Category(type=category, requirements=tuple(requirements), fulfillment=mode)],
        fulfillment=FulfillmentMode.ANY,
    )


async def gate(services, resource_id, *locks, fulfillment=FulfillmentMode.ANY, hours=4):
    created = [await services.lock_service.create_lock(OWNER, lock) for lock in locks]
    await services.lock_service.apply_gating(
        ADMIN, ResourceRef.parse(resource_id), [lock.id for lock in created], fulfillment, hours
    )
    return created


async def attempt(services, account, resource_id, lock_id, category=ETH, user_id="u1", signer=None):
    challenge = await services.verification.issue_challenge(resource_id, account.address, category)
    signature = sign(signer or account, challenge.signing_message)
    return challenge, await services.verification.submit(
        user_id, challenge.nonce, account.address, lock_id, category, signature
    )


# =============================================================================
# HAPPY PATH
# =============================================================================

class TestSubmit:

    @pytest.mark.asyncio
    async def test_verify_and_gain_access(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10 ** 18
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(10 ** 17)))

        before = await services.verification.access_status("u1", "board:7")
        assert before.access_granted is False

        _, result = await attempt(services, account, "board:7", lock.id)
        assert result.status == "verified"
        assert result.expires_at == clock.now + timedelta(hours=4)

        after = await services.verification.access_status("u1", "board:7")
        assert after.access_granted is True
        assert after.expires_at == clock.now + timedelta(hours=4)

        # Another user is not covered by this verification
        assert (await services.verification.access_status("u2", "board:7")).access_granted is False

    @pytest.mark.asyncio
    async def test_universal_profile_key_without_code(self, services, chain, account):
        chain.balances[account.address.lower()] = 5
        (lock,) = await gate(services, "post:3", lock_with(NativeBalance(5), category=UP))

        _, result = await attempt(services, account, "post:3", lock.id, category=UP)
        assert result.category_type == UP

    @pytest.mark.asyncio
    async def test_ledger_keeps_proof(self, services, chain, account):
        chain.balances[account.address.lower()] = 10
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))

        challenge, _ = await attempt(services, account, "board:7", lock.id)

        (record,) = await services.verification.ledger.list_for_user("u1")
        assert record.lock_id == lock.id
        assert record.proof_payload["nonce"] == challenge.nonce
        assert record.proof_payload["resource_id"] == "board:7"
        assert record.proof_payload["chain_id"] == 1
        assert record.proof_payload["requirements"][0]["satisfied"] is True

    @pytest.mark.asyncio
    async def test_reverification_extends_expiry(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))

        await attempt(services, account, "board:7", lock.id)
        clock.advance(hours=3)
        _, result = await attempt(services, account, "board:7", lock.id)

        status = await services.verification.access_status("u1", "board:7")
        assert status.expires_at == result.expires_at == clock.now + timedelta(hours=4)

    @pytest.mark.asyncio
    async def test_access_lapses_at_expiry(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)), hours=1)

        await attempt(services, account, "board:7", lock.id)
        clock.advance(hours=1)

        status = await services.verification.access_status("u1", "board:7")
        assert status.access_granted is False

    @pytest.mark.asyncio
    async def test_all_board_needs_every_lock(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10
        first, second = await gate(
            services, "board:7",
            lock_with(NativeBalance(1), name="A"),
            lock_with(NativeBalance(2), name="B"),
            fulfillment=FulfillmentMode.ALL,
        )

        await attempt(services, account, "board:7", first.id)
        status = await services.verification.access_status("u1", "board:7")
        assert status.access_granted is False
        assert status.verified_count == 1
        assert status.required_count == 2

        clock.advance(hours=1)
        await attempt(services, account, "board:7", second.id)
        status = await services.verification.access_status("u1", "board:7")
        assert status.access_granted is True
        # Valid until the first verification runs out
        assert status.expires_at == clock.now + timedelta(hours=3)


# =============================================================================
# DURATION
# =============================================================================

class TestDuration:

    async def gate_directly(self, services, resource_id, hours):
        lock = await services.lock_service.create_lock(OWNER, lock_with(NativeBalance(1)))
        await services.verification.policy_repo.set(
            ResourceRef.parse(resource_id),
            BoardLockGating(lock_ids=[lock.id], fulfillment=FulfillmentMode.ANY, verification_duration_hours=hours),
        )
        return lock

    @pytest.mark.asyncio
    async def test_post_default(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10
        lock = await self.gate_directly(services, "post:1", None)

        _, result = await attempt(services, account, "post:1", lock.id)
        assert result.expires_at == clock.now + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_board_default(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10
        lock = await self.gate_directly(services, "board:1", None)

        _, result = await attempt(services, account, "board:1", lock.id)
        assert result.expires_at == clock.now + timedelta(hours=4)

    @pytest.mark.asyncio
    async def test_capped_at_one_week(self, services, chain, clock, account):
        chain.balances[account.address.lower()] = 10
        lock = await self.gate_directly(services, "board:1", 1000)

        _, result = await attempt(services, account, "board:1", lock.id)
        assert result.expires_at == clock.now + timedelta(hours=168)


# =============================================================================
# NONCE HANDLING
# =============================================================================

class TestNonceHandling:

    @pytest.mark.asyncio
    async def test_replay_is_rejected(self, services, chain, account):
        chain.balances[account.address.lower()] = 10
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))

        challenge, _ = await attempt(services, account, "board:7", lock.id)
        signature = sign(account, challenge.signing_message)

        with pytest.raises(UnknownOrReusedNonce) as exc:
            await services.verification.submit("u1", challenge.nonce, account.address, lock.id, ETH, signature)
        assert exc.value.reason == "consumed"

    @pytest.mark.asyncio
    async def test_invalid_signature_does_not_burn_nonce(self, services, chain, account):
        chain.balances[account.address.lower()] = 10
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        challenge = await services.verification.issue_challenge("board:7", account.address, ETH)

        forged = sign(Account.create(), challenge.signing_message)
        with pytest.raises(InvalidSignature):
            await services.verification.submit("u1", challenge.nonce, account.address, lock.id, ETH, forged)

        result = await services.verification.submit(
            "u1", challenge.nonce, account.address, lock.id, ETH, sign(account, challenge.signing_message)
        )
        assert result.status == "verified"

    @pytest.mark.asyncio
    async def test_identity_mismatch(self, services, chain, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        challenge = await services.verification.issue_challenge("board:7", account.address, ETH)
        other = Account.create()

        with pytest.raises(UnknownOrReusedNonce) as exc:
            await services.verification.submit(
                "u1", challenge.nonce, other.address, lock.id, ETH, sign(other, challenge.signing_message)
            )
        assert exc.value.reason == "mismatch"

    @pytest.mark.asyncio
    async def test_category_mismatch(self, services, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        challenge = await services.verification.issue_challenge("board:7", account.address, ETH)

        with pytest.raises(UnknownOrReusedNonce):
            await services.verification.submit(
                "u1", challenge.nonce, account.address, lock.id, UP, sign(account, challenge.signing_message)
            )

    @pytest.mark.asyncio
    async def test_expired_challenge(self, services, clock, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        challenge = await services.verification.issue_challenge("board:7", account.address, ETH)
        clock.advance(minutes=16)

        with pytest.raises(ExpiredChallenge):
            await services.verification.submit(
                "u1", challenge.nonce, account.address, lock.id, ETH, sign(account, challenge.signing_message)
            )

    @pytest.mark.asyncio
    async def test_unsatisfied_attempt_burns_nonce(self, services, chain, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        challenge = await services.verification.issue_challenge("board:7", account.address, ETH)
        signature = sign(account, challenge.signing_message)

        with pytest.raises(RequirementUnsatisfied):
            await services.verification.submit("u1", challenge.nonce, account.address, lock.id, ETH, signature)

        chain.balances[account.address.lower()] = 10
        with pytest.raises(UnknownOrReusedNonce):
            await services.verification.submit("u1", challenge.nonce, account.address, lock.id, ETH, signature)


# =============================================================================
# FAILURES
# =============================================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_unsatisfied_records_nothing(self, services, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))

        with pytest.raises(RequirementUnsatisfied) as exc:
            await attempt(services, account, "board:7", lock.id)
        assert exc.value.details == ["Hold at least 1 wei of the native coin: Balance 0 wei, needs 1"]

        assert await services.verification.ledger.list_for_user("u1") == []
        stored = await services.lock_service.get_lock(OWNER, lock.id)
        assert stored.usage_count == 1
        assert stored.success_rate == 0.0

    @pytest.mark.asyncio
    async def test_lookup_failure_is_unavailable(self, services, chain, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        chain.down_hosts.add("eth.rpc.test")

        with pytest.raises(ExternalServiceUnavailable) as exc:
            await attempt(services, account, "board:7", lock.id)
        assert "eth.rpc.test" not in exc.value.message
        assert await services.verification.ledger.list_for_user("u1") == []

    @pytest.mark.asyncio
    async def test_malformed_node_answer_is_unavailable(self, services, chain, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))
        chain.null_results.add("eth_getBalance")

        with pytest.raises(ExternalServiceUnavailable):
            await attempt(services, account, "board:7", lock.id)

        assert await services.verification.ledger.list_for_user("u1") == []
        stored = await services.lock_service.get_lock(OWNER, lock.id)
        assert stored.usage_count == 1
        assert stored.success_rate == 0.0

    @pytest.mark.asyncio
    async def test_definite_failure_wins_over_lookup_failure(self, services, chain, account):
        # ALL: the balance is definitively short, so the unknown token answer cannot help
        (lock,) = await gate(
            services, "board:7",
            lock_with(NativeBalance(1), FungibleBalance(TOKEN, 1), mode=FulfillmentMode.ALL),
        )

        with pytest.raises(RequirementUnsatisfied) as exc:
            await attempt(services, account, "board:7", lock.id)
        assert len(exc.value.details) == 2

    @pytest.mark.asyncio
    async def test_any_with_only_lookup_failures_is_unavailable(self, services, chain, account):
        (lock,) = await gate(
            services, "board:7",
            lock_with(NativeBalance(1), FungibleBalance(TOKEN, 1), mode=FulfillmentMode.ANY),
        )

        with pytest.raises(ExternalServiceUnavailable):
            await attempt(services, account, "board:7", lock.id)

    @pytest.mark.asyncio
    async def test_lock_not_on_resource(self, services, chain, account):
        (gated,) = await gate(services, "board:7", lock_with(NativeBalance(1), name="A"))
        (other,) = await gate(services, "board:8", lock_with(NativeBalance(1), name="B"))

        with pytest.raises(ResourceNotGated):
            await attempt(services, account, "board:7", other.id)

    @pytest.mark.asyncio
    async def test_ungated_resource(self, services, account):
        with pytest.raises(ResourceNotGated):
            await attempt(services, account, "board:99", 1)

    @pytest.mark.asyncio
    async def test_lock_has_no_such_category(self, services, account):
        (lock,) = await gate(services, "board:7", lock_with(NativeBalance(1)))

        with pytest.raises(MalformedRequirementConfig):
            await attempt(services, account, "board:7", lock.id, category=UP)


# =============================================================================
# LEDGER
# =============================================================================

class TestLedger:

    def record(self, clock, verified_offset_hours, hours=4):
        verified_at = add_hours(clock.now, verified_offset_hours)
        return VerificationRecord(
            user_id="u1",
            lock_id=1,
            category_type=ETH,
            verified_at=verified_at,
            expires_at=add_hours(verified_at, hours),
        )

    @pytest.mark.asyncio
    async def test_older_attempt_cannot_overwrite_newer(self, services, clock):
        ledger = services.verification.ledger
        newer = self.record(clock, 1)
        older = self.record(clock, 0)

        assert await ledger.upsert(newer) is True
        assert await ledger.upsert(older) is False
        (stored,) = await ledger.list_for_user("u1")
        assert stored.verified_at == newer.verified_at

    @pytest.mark.asyncio
    async def test_expired_records_are_filtered_on_read(self, services, clock):
        ledger = services.verification.ledger
        await ledger.upsert(self.record(clock, -5))

        assert await ledger.list_active("u1", [1], clock.now) == []
        assert len(await ledger.list_for_user("u1")) == 1
        assert await ledger.delete_expired(clock.now) == 1
