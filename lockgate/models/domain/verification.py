"""
Verification domain models

Storage: PostgreSQL (pre_verifications table)

A VerificationRecord is never transitioned to "expired" by a background
job: status is derived from expires_at whenever the record is read.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union

from .requirement import CategoryType, Requirement


class VerificationStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"


@dataclass
class VerificationRecord:
    """One verified (user, lock, category) combination"""
    user_id: str
    lock_id: int
    category_type: CategoryType
    verified_at: datetime
    expires_at: datetime
    proof_payload: dict = field(default_factory=dict)

    @property
    def key(self) -> tuple:
        return (self.user_id, self.lock_id, self.category_type)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now

    def status_at(self, now: datetime) -> VerificationStatus:
        if self.is_active(now):
            return VerificationStatus.VERIFIED
        return VerificationStatus.EXPIRED


# =============================================================================
# Verifier outcomes
# =============================================================================

@dataclass(frozen=True)
class Satisfied:
    detail: str = ""

    satisfied = True


@dataclass(frozen=True)
class Unsatisfied:
    reason: str

    satisfied = False


@dataclass(frozen=True)
class ExternalError:
    """A lookup failed or timed out; treated as unsatisfied"""
    reason: str

    satisfied = False


VerificationOutcome = Union[Satisfied, Unsatisfied, ExternalError]


@dataclass(frozen=True)
class RequirementResult:
    requirement: Requirement
    outcome: VerificationOutcome

    @property
    def satisfied(self) -> bool:
        return self.outcome.satisfied

    def to_dict(self) -> dict:
        data = {
            "requirement": self.requirement.describe(),
            "kind": self.requirement.kind,
            "satisfied": self.satisfied,
        }
        if isinstance(self.outcome, Unsatisfied):
            data["reason"] = self.outcome.reason
        elif isinstance(self.outcome, ExternalError):
            data["reason"] = "This requirement could not be checked right now, please try again"
        return data
