"""
Fulfillment evaluator

Pure functions that decide access from the verification ledger. Nothing
here performs I/O or keeps state: the same (gating, locks, records, now)
always gives the same decision, so access is recomputed on every read and
an expired record simply stops counting.

Composition happens at three levels, each ANY or ALL:
- requirements inside a category
- categories inside a lock
- locks inside a resource's gating
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from lockgate.models.domain import (
    BoardLockGating,
    CategoryType,
    FulfillmentMode,
    Lock,
    VerificationRecord,
    VerificationStatus,
)
from lockgate.utils import isoformat_z

CATEGORY_LABELS = {
    CategoryType.UNIVERSAL_PROFILE: "Universal Profile",
    CategoryType.ETHEREUM_PROFILE: "Ethereum profile",
}


def requirements_fulfilled(outcomes: Iterable, mode: FulfillmentMode) -> bool:
    """
    Combine requirement outcomes (anything with a .satisfied flag).

    An empty list is never fulfilled, in either mode.
    """
    flags = [o.satisfied for o in outcomes]
    if not flags:
        return False
    if mode == FulfillmentMode.ALL:
        return all(flags)
    return any(flags)


def aggregate_expiry(expiries: List[datetime], mode: FulfillmentMode) -> Optional[datetime]:
    """ANY stays valid until the last expiry, ALL only until the first"""
    if not expiries:
        return None
    if mode == FulfillmentMode.ALL:
        return min(expiries)
    return max(expiries)


@dataclass
class CategoryState:
    type: CategoryType
    status: VerificationStatus
    verified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def satisfied(self) -> bool:
        return self.status == VerificationStatus.VERIFIED

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "status": self.status.value,
            "verified_at": isoformat_z(self.verified_at),
            "expires_at": isoformat_z(self.expires_at),
        }


@dataclass
class LockDecision:
    lock_id: int
    lock_name: Optional[str]
    fulfilled: bool
    fulfillment: Optional[FulfillmentMode] = None
    expires_at: Optional[datetime] = None
    categories: List[CategoryState] = field(default_factory=list)
    unmet: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "lock_id": self.lock_id,
            "name": self.lock_name,
            "fulfilled": self.fulfilled,
            "fulfillment": self.fulfillment.value if self.fulfillment else None,
            "expires_at": isoformat_z(self.expires_at),
            "categories": [c.to_dict() for c in self.categories],
            "unmet": list(self.unmet),
        }


@dataclass
class AccessDecision:
    access_granted: bool
    verified_count: int
    required_count: int
    fulfillment_mode: FulfillmentMode
    expires_at: Optional[datetime] = None
    next_expiry_at: Optional[datetime] = None
    locks: List[LockDecision] = field(default_factory=list)
    unmet: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "access_granted": self.access_granted,
            "verified_count": self.verified_count,
            "required_count": self.required_count,
            "fulfillment_mode": self.fulfillment_mode.value,
            "expires_at": isoformat_z(self.expires_at),
            "next_expiry_at": isoformat_z(self.next_expiry_at),
            "locks": [lock.to_dict() for lock in self.locks],
            "unmet": list(self.unmet),
        }


def _latest_records(lock_id: int, records: Iterable[VerificationRecord]) -> Dict[CategoryType, VerificationRecord]:
    latest: Dict[CategoryType, VerificationRecord] = {}
    for record in records:
        if record.lock_id != lock_id:
            continue
        current = latest.get(record.category_type)
        if current is None or record.expires_at > current.expires_at:
            latest[record.category_type] = record
    return latest


def evaluate_lock(lock: Lock, records: Iterable[VerificationRecord], now: datetime) -> LockDecision:
    """
    Decide whether one lock is fulfilled for a user.

    Only enabled categories count. A category is verified when it has a
    record with expires_at > now.
    """
    latest = _latest_records(lock.id, records)
    states: List[CategoryState] = []

    for category in lock.enabled_categories:
        record = latest.get(category.type)
        if record is None:
            states.append(CategoryState(type=category.type, status=VerificationStatus.NOT_STARTED))
        else:
            states.append(CategoryState(
                type=category.type,
                status=record.status_at(now),
                verified_at=record.verified_at,
                expires_at=record.expires_at,
            ))

    fulfilled = requirements_fulfilled(states, lock.fulfillment)
    expires_at = None
    if fulfilled:
        expires_at = aggregate_expiry([s.expires_at for s in states if s.satisfied], lock.fulfillment)

    unmet: List[str] = []
    if not fulfilled:
        pending = [CATEGORY_LABELS[s.type] for s in states if not s.satisfied]
        if not states:
            unmet.append(f"Lock '{lock.name}' has no enabled categories")
        elif lock.fulfillment == FulfillmentMode.ALL:
            unmet.append(f"Lock '{lock.name}': verify {' and '.join(pending)}")
        else:
            unmet.append(f"Lock '{lock.name}': verify {' or '.join(pending)}")

    return LockDecision(
        lock_id=lock.id,
        lock_name=lock.name,
        fulfilled=fulfilled,
        fulfillment=lock.fulfillment,
        expires_at=expires_at,
        categories=states,
        unmet=unmet,
    )


def evaluate_access(
    gating: Optional[BoardLockGating],
    locks: Mapping[int, Lock],
    records: Iterable[VerificationRecord],
    now: datetime,
) -> AccessDecision:
    """
    Decide resource access from the gating policy and the user's records.

    A resource without gating (or with no locks) is open. A referenced lock
    missing from `locks` counts as unsatisfied.
    """
    if gating is None or not gating.lock_ids:
        mode = gating.fulfillment if gating else FulfillmentMode.ANY
        return AccessDecision(access_granted=True, verified_count=0, required_count=0, fulfillment_mode=mode)

    records = list(records)
    decisions: List[LockDecision] = []
    for lock_id in gating.lock_ids:
        lock = locks.get(lock_id)
        if lock is None:
            decisions.append(LockDecision(
                lock_id=lock_id,
                lock_name=None,
                fulfilled=False,
                unmet=[f"Lock #{lock_id} is no longer available"],
            ))
        else:
            decisions.append(evaluate_lock(lock, records, now))

    satisfied = [d for d in decisions if d.fulfilled]
    verified_count = len(satisfied)
    required_count = len(gating.lock_ids)

    if gating.fulfillment == FulfillmentMode.ALL:
        granted = verified_count >= required_count
    else:
        granted = verified_count >= 1

    expiries = [d.expires_at for d in satisfied if d.expires_at is not None]
    unmet = [reason for d in decisions if not d.fulfilled for reason in d.unmet]

    return AccessDecision(
        access_granted=granted,
        verified_count=verified_count,
        required_count=required_count,
        fulfillment_mode=gating.fulfillment,
        expires_at=aggregate_expiry(expiries, gating.fulfillment) if granted else None,
        next_expiry_at=min(expiries) if expiries else None,
        locks=decisions,
        unmet=unmet if not granted else [],
    )
