"""
Tests for the fulfillment evaluator

Covers composition at requirement, category, lock and resource level and
the expiry aggregation rule: ANY is valid until the last expiry, ALL only
until the first.
"""

from datetime import datetime, timedelta, timezone

import pytest

from lockgate.models.domain import (
    BoardLockGating,
    Category,
    CategoryType,
    ExternalError,
    FulfillmentMode,
    Lock,
    NativeBalance,
    Satisfied,
    Unsatisfied,
    VerificationRecord,
    VerificationStatus,
)
from lockgate.services.fulfillment import (
    CategoryState,
    aggregate_expiry,
    evaluate_access,
    evaluate_lock,
    requirements_fulfilled,
)

UP = CategoryType.UNIVERSAL_PROFILE
ETH = CategoryType.ETHEREUM_PROFILE
ANY = FulfillmentMode.ANY
ALL = FulfillmentMode.ALL

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
T1 = NOW + timedelta(hours=1)
T2 = NOW + timedelta(hours=5)
T3 = NOW + timedelta(hours=9)


def make_lock(lock_id, mode=ANY, categories=(UP, ETH), disabled=()):
    return Lock(
        id=lock_id,
        name=f"Lock {lock_id}",
        community_id="c1",
        creator_user_id="u-owner",
        categories=[
            Category(type=t, requirements=(NativeBalance(1),), fulfillment=ANY, enabled=t not in disabled)
            for t in categories
        ],
        fulfillment=mode,
    )


def record(lock_id, category, expires_at, user="u1", verified_at=None):
    return VerificationRecord(
        user_id=user,
        lock_id=lock_id,
        category_type=category,
        verified_at=verified_at or NOW - timedelta(minutes=5),
        expires_at=expires_at,
    )


# =============================================================================
# REQUIREMENT LEVEL
# =============================================================================

class TestRequirementsFulfilled:

    def test_empty_is_never_fulfilled(self):
        assert requirements_fulfilled([], ANY) is False
        assert requirements_fulfilled([], ALL) is False

    def test_any_needs_one(self):
        outcomes = [Unsatisfied("no"), Satisfied(), ExternalError("down")]
        assert requirements_fulfilled(outcomes, ANY) is True

    def test_all_needs_every(self):
        assert requirements_fulfilled([Satisfied(), Satisfied()], ALL) is True
        assert requirements_fulfilled([Satisfied(), Unsatisfied("no")], ALL) is False

    def test_external_error_never_counts_as_satisfied(self):
        assert requirements_fulfilled([ExternalError("timeout")], ANY) is False
        assert requirements_fulfilled([Satisfied(), ExternalError("timeout")], ALL) is False

    @pytest.mark.parametrize("flags", [
        [True], [False], [True, False], [False, False], [True, True, False], [True, True, True],
    ])
    def test_any_and_all_match_builtins(self, flags):
        outcomes = [Satisfied() if f else Unsatisfied("no") for f in flags]
        assert requirements_fulfilled(outcomes, ANY) == any(flags)
        assert requirements_fulfilled(outcomes, ALL) == all(flags)


# =============================================================================
# LOCK LEVEL
# =============================================================================

class TestEvaluateLock:

    def test_any_lock_one_category(self):
        decision = evaluate_lock(make_lock(1, ANY), [record(1, ETH, T1)], NOW)
        assert decision.fulfilled is True
        assert decision.expires_at == T1

    def test_all_lock_needs_every_enabled_category(self):
        lock = make_lock(1, ALL)
        assert evaluate_lock(lock, [record(1, ETH, T2)], NOW).fulfilled is False

        decision = evaluate_lock(lock, [record(1, ETH, T2), record(1, UP, T1)], NOW)
        assert decision.fulfilled is True
        assert decision.expires_at == T1

    def test_any_lock_expiry_is_latest_category(self):
        decision = evaluate_lock(make_lock(1, ANY), [record(1, ETH, T2), record(1, UP, T1)], NOW)
        assert decision.expires_at == T2

    def test_disabled_categories_are_ignored(self):
        lock = make_lock(1, ALL, disabled=(UP,))
        decision = evaluate_lock(lock, [record(1, ETH, T1)], NOW)
        assert decision.fulfilled is True
        assert [c.type for c in decision.categories] == [ETH]

    def test_record_for_disabled_category_does_not_count(self):
        lock = make_lock(1, ANY, disabled=(UP,))
        assert evaluate_lock(lock, [record(1, UP, T1)], NOW).fulfilled is False

    def test_expired_record_does_not_count(self):
        decision = evaluate_lock(make_lock(1, ANY), [record(1, ETH, NOW)], NOW)
        assert decision.fulfilled is False
        eth = next(c for c in decision.categories if c.type == ETH)
        assert eth.status == VerificationStatus.EXPIRED

    def test_records_of_other_locks_are_ignored(self):
        assert evaluate_lock(make_lock(1), [record(2, ETH, T1)], NOW).fulfilled is False

    def test_status_per_category(self):
        decision = evaluate_lock(make_lock(1, ALL), [record(1, UP, T1)], NOW)
        statuses = {c.type: c.status for c in decision.categories}
        assert statuses == {UP: VerificationStatus.VERIFIED, ETH: VerificationStatus.NOT_STARTED}
        assert decision.unmet == ["Lock 'Lock 1': verify Ethereum profile"]


# =============================================================================
# RESOURCE LEVEL
# =============================================================================

class TestEvaluateAccess:

    def test_no_gating_grants_access(self):
        decision = evaluate_access(None, {}, [], NOW)
        assert decision.access_granted is True
        assert decision.required_count == 0

    def test_empty_lock_list_grants_access(self):
        gating = BoardLockGating(lock_ids=[], fulfillment=ALL, verification_duration_hours=4)
        assert evaluate_access(gating, {}, [], NOW).access_granted is True

    def test_any_board_valid_until_last_expiry(self):
        locks = {1: make_lock(1), 2: make_lock(2)}
        gating = BoardLockGating(lock_ids=[1, 2], fulfillment=ANY, verification_duration_hours=4)
        records = [record(1, ETH, T1), record(2, ETH, T2)]

        decision = evaluate_access(gating, locks, records, NOW)
        assert decision.access_granted is True
        assert decision.verified_count == 2
        assert decision.expires_at == T2
        assert decision.next_expiry_at == T1

    def test_all_board_valid_until_first_expiry(self):
        locks = {1: make_lock(1), 2: make_lock(2)}
        gating = BoardLockGating(lock_ids=[1, 2], fulfillment=ALL, verification_duration_hours=4)
        records = [record(1, ETH, T1), record(2, ETH, T2)]

        decision = evaluate_access(gating, locks, records, NOW)
        assert decision.access_granted is True
        assert decision.expires_at == T1
        assert decision.next_expiry_at == T1

    def test_all_board_denied_after_first_expiry(self):
        locks = {1: make_lock(1), 2: make_lock(2)}
        gating = BoardLockGating(lock_ids=[1, 2], fulfillment=ALL, verification_duration_hours=4)
        records = [record(1, ETH, T1), record(2, ETH, T2)]

        later = T1 + timedelta(seconds=1)
        decision = evaluate_access(gating, locks, records, later)
        assert decision.access_granted is False
        assert decision.verified_count == 1
        assert decision.expires_at is None
        assert decision.unmet == ["Lock 'Lock 1': verify Universal Profile or Ethereum profile"]

    def test_any_board_survives_first_expiry(self):
        locks = {1: make_lock(1), 2: make_lock(2)}
        gating = BoardLockGating(lock_ids=[1, 2], fulfillment=ANY, verification_duration_hours=4)
        records = [record(1, ETH, T1), record(2, ETH, T2)]

        decision = evaluate_access(gating, locks, records, T1 + timedelta(seconds=1))
        assert decision.access_granted is True
        assert decision.expires_at == T2

    def test_missing_lock_counts_as_unsatisfied(self):
        gating = BoardLockGating(lock_ids=[1, 99], fulfillment=ALL, verification_duration_hours=4)
        decision = evaluate_access(gating, {1: make_lock(1)}, [record(1, ETH, T1)], NOW)

        assert decision.access_granted is False
        assert decision.required_count == 2
        assert "Lock #99 is no longer available" in decision.unmet

    def test_decision_is_pure(self):
        locks = {1: make_lock(1)}
        gating = BoardLockGating(lock_ids=[1], fulfillment=ANY, verification_duration_hours=4)
        records = [record(1, UP, T1)]

        first = evaluate_access(gating, locks, records, NOW)
        second = evaluate_access(gating, locks, records, NOW)
        assert first == second

    def test_to_dict_uses_iso_timestamps(self):
        locks = {1: make_lock(1)}
        gating = BoardLockGating(lock_ids=[1], fulfillment=ANY, verification_duration_hours=4)
        data = evaluate_access(gating, locks, [record(1, UP, T1)], NOW).to_dict()

        assert data["access_granted"] is True
        assert data["fulfillment_mode"] == "any"
        assert data["expires_at"] == "2025-06-01T13:00:00Z"
        assert data["locks"][0]["categories"][0]["status"] == "verified"


# =============================================================================
# N-WAY COMPOSITION
# =============================================================================

class TestThreeWayComposition:
    """
    Categories are limited to the two profile types, but the combinator
    that folds them is the same one used for requirements and locks, so
    the rule is checked here over three entries.
    """

    def states(self, *verified):
        return [
            CategoryState(
                type=ETH,
                status=VerificationStatus.VERIFIED if ok else VerificationStatus.NOT_STARTED,
                expires_at=expiry if ok else None,
            )
            for ok, expiry in zip(verified, (T1, T2, T3))
        ]

    def test_any_one_of_three(self):
        assert requirements_fulfilled(self.states(False, True, False), ANY) is True
        assert requirements_fulfilled(self.states(False, False, False), ANY) is False

    def test_all_two_of_three(self):
        assert requirements_fulfilled(self.states(True, True, False), ALL) is False
        assert requirements_fulfilled(self.states(True, True, True), ALL) is True

    def test_expiry_over_three(self):
        assert aggregate_expiry([T2, T1, T3], ANY) == T3
        assert aggregate_expiry([T2, T1, T3], ALL) == T1

    def test_three_lock_board(self):
        locks = {i: make_lock(i, categories=(ETH,)) for i in (1, 2, 3)}
        records = [record(1, ETH, T2), record(3, ETH, T3)]

        any_board = BoardLockGating(lock_ids=[1, 2, 3], fulfillment=ANY, verification_duration_hours=4)
        decision = evaluate_access(any_board, locks, records[:1], NOW)
        assert decision.access_granted is True
        assert decision.verified_count == 1
        assert decision.expires_at == T2

        all_board = BoardLockGating(lock_ids=[1, 2, 3], fulfillment=ALL, verification_duration_hours=4)
        decision = evaluate_access(all_board, locks, records, NOW)
        assert decision.access_granted is False
        assert decision.verified_count == 2
        assert decision.required_count == 3

        decision = evaluate_access(all_board, locks, records + [record(2, ETH, T1)], NOW)
        assert decision.access_granted is True
        assert decision.expires_at == T1
