"""
Verification service

Orchestrates one verification attempt end to end:

    check nonce → check binding → resolve lock/category → check signature
    → consume nonce (exactly once) → run requirement checks concurrently
    → write ledger record → update lock statistics

and answers access-status queries by re-evaluating the ledger.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from lockgate.models.domain import (
    CategoryType,
    Challenge,
    ExternalError,
    ResourceRef,
    RequirementResult,
    VerificationRecord,
)
from lockgate.services.challenge_issuer import ChallengeIssuer
from lockgate.services.errors import (
    ExternalServiceUnavailable,
    LockNotFound,
    MalformedRequirementConfig,
    RequirementUnsatisfied,
    ResourceNotGated,
    UnknownOrReusedNonce,
)
from lockgate.services.fulfillment import AccessDecision, evaluate_access, requirements_fulfilled
from lockgate.services.signatures import SignatureValidator
from lockgate.services.verifiers import NetworkContext, verify_requirements
from lockgate.utils import add_hours, isoformat_z, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    status: str  # "verified"
    lock_id: int
    category_type: CategoryType
    expires_at: Optional[datetime] = None
    requirements: List[RequirementResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "lock_id": self.lock_id,
            "category_type": self.category_type.value,
            "expires_at": isoformat_z(self.expires_at),
            "requirements": [r.to_dict() for r in self.requirements],
        }


class _Optimistic:
    """Outcome view that counts lookup failures as satisfied"""

    def __init__(self, result: RequirementResult):
        self.satisfied = result.satisfied or isinstance(result.outcome, ExternalError)


class VerificationService:

    def __init__(
        self,
        issuer: ChallengeIssuer,
        nonce_store,
        signatures: SignatureValidator,
        networks: Dict[CategoryType, NetworkContext],
        lock_repo,
        ledger,
        policy_repo,
        lock_service,
        default_hours: Callable[[str], float],
        max_verification_hours: float = 168.0,
        external_timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.issuer = issuer
        self.nonce_store = nonce_store
        self.signatures = signatures
        self.networks = networks
        self.lock_repo = lock_repo
        self.ledger = ledger
        self.policy_repo = policy_repo
        self.lock_service = lock_service
        self.default_hours = default_hours
        self.max_verification_hours = max_verification_hours
        self.external_timeout = external_timeout
        self.clock = clock

    async def issue_challenge(self, resource_id: str, claimed_identity: str,
                              category_type: CategoryType) -> Challenge:
        return await self.issuer.issue_challenge(resource_id, claimed_identity, category_type)

    def _duration_hours(self, resource: ResourceRef, configured: Optional[float]) -> float:
        hours = configured if configured and configured > 0 else self.default_hours(resource.kind)
        return min(hours, self.max_verification_hours)

    async def submit(
        self,
        user_id: str,
        nonce: str,
        claimed_identity: str,
        lock_id: int,
        category_type: CategoryType,
        signature: str,
        proof_payload: Optional[dict] = None,
    ) -> SubmitResult:
        """
        Verify one category of one lock for a user.

        Raises:
            ExpiredChallenge / UnknownOrReusedNonce: challenge unusable
            InvalidSignature: signature is not by the claimed identity
            ResourceNotGated / LockNotFound: lock is not part of the resource's gating
            MalformedRequirementConfig: lock has no such enabled category
            RequirementUnsatisfied: requirements definitively not met
            ExternalServiceUnavailable: a lookup failed and the answer is unknown
        """
        challenge = await self.nonce_store.check(nonce)

        if challenge.claimed_identity != claimed_identity.lower() or challenge.category_type != category_type:
            raise UnknownOrReusedNonce("Challenge was issued for a different profile", reason="mismatch")

        resource = ResourceRef.parse(challenge.resource_id)
        gating = await self.policy_repo.get(resource)
        if gating is None or not gating.lock_ids:
            raise ResourceNotGated()
        if lock_id not in gating.lock_ids:
            raise ResourceNotGated(f"Lock {lock_id} is not required for {resource}")

        lock = await self.lock_repo.get_by_id(lock_id)
        if lock is None:
            raise LockNotFound()
        category = lock.category(category_type)
        if category is None:
            raise MalformedRequirementConfig([f"Lock has no enabled {category_type.value} category"])

        await self.signatures.validate(category_type, challenge.claimed_identity,
                                       challenge.signing_message, signature)

        if not await self.nonce_store.consume_nonce(nonce):
            raise UnknownOrReusedNonce("Challenge has already been used", reason="consumed")

        started = time.monotonic()
        results = await verify_requirements(
            category.requirements,
            challenge.claimed_identity,
            self.networks[category_type],
            timeout=self.external_timeout,
        )
        fulfilled = requirements_fulfilled(results, category.fulfillment)
        await self.lock_service.record_attempt(lock_id, fulfilled, time.monotonic() - started)

        if not fulfilled:
            if requirements_fulfilled([_Optimistic(r) for r in results], category.fulfillment):
                logger.warning(
                    f"Verification of lock {lock_id} for {challenge.claimed_identity} "
                    f"could not complete: external lookup failed"
                )
                raise ExternalServiceUnavailable(results=results)
            details = [
                f"{r.requirement.describe()}: {r.to_dict()['reason']}"
                for r in results if not r.satisfied
            ]
            logger.info(f"Lock {lock_id} not satisfied for {challenge.claimed_identity}: {details}")
            raise RequirementUnsatisfied(details, results=results)

        verified_at = self.clock()
        hours = self._duration_hours(resource, gating.verification_duration_hours)
        record = VerificationRecord(
            user_id=user_id,
            lock_id=lock_id,
            category_type=category_type,
            verified_at=verified_at,
            expires_at=add_hours(verified_at, hours),
            proof_payload={
                "claimed_identity": challenge.claimed_identity,
                "resource_id": challenge.resource_id,
                "chain_id": challenge.chain_id,
                "nonce": challenge.nonce,
                "signature": signature,
                "requirements": [r.to_dict() for r in results],
                "client_proof": proof_payload or {},
            },
        )
        await self.ledger.upsert(record)

        return SubmitResult(
            status="verified",
            lock_id=lock_id,
            category_type=category_type,
            expires_at=record.expires_at,
            requirements=results,
        )

    async def access_status(self, user_id: str, resource_id: str) -> AccessDecision:
        """Current access decision for a user on a post or board"""
        resource = ResourceRef.parse(resource_id)
        gating = await self.policy_repo.get(resource)
        lock_ids = gating.lock_ids if gating else []

        now = self.clock()
        locks = await self.lock_repo.get_many(lock_ids)
        records = await self.ledger.list_active(user_id, lock_ids, now)
        return evaluate_access(gating, locks, records, now)
