"""
Requirement verifiers

One verifier per requirement variant. Each answers, for a claimed identity,
Satisfied / Unsatisfied / ExternalError. Verifiers never raise for lookup
problems: transport failures, timeouts and unusable responses all become
ExternalError, which the evaluator treats as not satisfied.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx
from eth_abi.exceptions import DecodingError

from lockgate.models.domain import (
    CategoryType,
    CollectionOwnership,
    DomainNameOwnership,
    ExternalError,
    FollowDirection,
    FungibleBalance,
    MultiTokenBalance,
    NativeBalance,
    Requirement,
    RequirementResult,
    Satisfied,
    SocialFollow,
    SpecificItemOwnership,
    Unsatisfied,
    VerificationOutcome,
    short_address,
)
from lockgate.services.chain_client import ChainLookupError, ContractReverted, JsonRpcClient, TokenReader
from lockgate.services.errors import MalformedRequirementConfig
from lockgate.services.name_resolver import EnsResolver, matches_domain_pattern
from lockgate.services.social_graph import SocialGraphError

logger = logging.getLogger(__name__)

# Malformed upstream payloads surface as TypeError/KeyError/AttributeError while decoding
LOOKUP_ERRORS = (
    httpx.HTTPError,
    ChainLookupError,
    SocialGraphError,
    DecodingError,
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
)


@dataclass
class NetworkContext:
    """External clients for one category's network"""
    category_type: CategoryType
    rpc: JsonRpcClient
    tokens: TokenReader
    social_graph: object                 # Lsp26FollowerRegistry | EfpClient
    names: Optional[EnsResolver] = None  # ENS exists on Ethereum only
    bytes32_item_ids: bool = False       # LSP8 tokenOwnerOf(bytes32) vs ERC-721 ownerOf(uint256)


class RequirementVerifier:
    """Base verifier: runs _check under a timeout and maps lookup failures"""

    def __init__(self, context: NetworkContext, timeout: float = 10.0):
        self.context = context
        self.timeout = timeout

    async def verify(self, requirement: Requirement, claimed_identity: str) -> VerificationOutcome:
        try:
            return await asyncio.wait_for(
                self._check(requirement, claimed_identity.lower()),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{requirement.kind} check timed out after {self.timeout}s for {claimed_identity}")
            return ExternalError(f"{requirement.kind} lookup timed out")
        except LOOKUP_ERRORS as e:
            logger.warning(f"{requirement.kind} check failed for {claimed_identity}: {e}")
            return ExternalError(f"{requirement.kind} lookup failed: {e}")

    async def _check(self, requirement, claimed_identity: str) -> VerificationOutcome:
        raise NotImplementedError


class SocialFollowVerifier(RequirementVerifier):

    async def _check(self, requirement: SocialFollow, claimed_identity: str) -> VerificationOutcome:
        graph = self.context.social_graph

        if requirement.direction == FollowDirection.MIN_FOLLOWER_COUNT:
            count = await graph.follower_count(claimed_identity)
            if count >= requirement.threshold:
                return Satisfied(f"{count} followers")
            return Unsatisfied(f"Has {count} followers, needs at least {requirement.threshold}")

        target = (requirement.target_identity or "").lower()
        if target == claimed_identity:
            return Satisfied("Target is the claimed profile")

        if requirement.direction == FollowDirection.FOLLOWS:
            if await graph.is_following(claimed_identity, target):
                return Satisfied(f"Follows {short_address(target)}")
            return Unsatisfied(f"Does not follow {short_address(target)}")

        if await graph.is_following(target, claimed_identity):
            return Satisfied(f"Followed by {short_address(target)}")
        return Unsatisfied(f"Not followed by {short_address(target)}")


class FungibleBalanceVerifier(RequirementVerifier):

    async def _check(self, requirement: FungibleBalance, claimed_identity: str) -> VerificationOutcome:
        balance = await self.context.tokens.balance_of(requirement.asset_id, claimed_identity)
        label = requirement.symbol or short_address(requirement.asset_id)
        if balance >= requirement.minimum_amount:
            return Satisfied(f"Holds {balance} {label}")
        return Unsatisfied(f"Holds {balance} {label}, needs {requirement.minimum_amount}")


class CollectionOwnershipVerifier(RequirementVerifier):

    async def _check(self, requirement: CollectionOwnership, claimed_identity: str) -> VerificationOutcome:
        count = await self.context.tokens.balance_of(requirement.asset_id, claimed_identity)
        label = requirement.symbol or short_address(requirement.asset_id)
        if count >= requirement.minimum_count:
            return Satisfied(f"Owns {count} from {label}")
        return Unsatisfied(f"Owns {count} from {label}, needs {requirement.minimum_count}")


class SpecificItemOwnershipVerifier(RequirementVerifier):
    """Owner of the enumerated item must be the claimed identity"""

    async def _check(self, requirement: SpecificItemOwnership, claimed_identity: str) -> VerificationOutcome:
        label = requirement.symbol or short_address(requirement.asset_id)
        try:
            owner = await self.context.tokens.owner_of_item(
                requirement.asset_id, requirement.item_id, self.context.bytes32_item_ids
            )
        except ContractReverted:
            return Unsatisfied(f"Item #{requirement.item_id} of {label} does not exist")

        if owner == claimed_identity:
            return Satisfied(f"Owns item #{requirement.item_id} of {label}")
        return Unsatisfied(f"Item #{requirement.item_id} of {label} is owned by {short_address(owner)}")


class MultiTokenBalanceVerifier(RequirementVerifier):

    async def _check(self, requirement: MultiTokenBalance, claimed_identity: str) -> VerificationOutcome:
        balance = await self.context.tokens.balance_of_token(
            requirement.asset_id, claimed_identity, requirement.token_id
        )
        if balance >= requirement.minimum_amount:
            return Satisfied(f"Holds {balance} of token #{requirement.token_id}")
        return Unsatisfied(
            f"Holds {balance} of token #{requirement.token_id}, needs {requirement.minimum_amount}"
        )


class DomainNameOwnershipVerifier(RequirementVerifier):

    async def _check(self, requirement: DomainNameOwnership, claimed_identity: str) -> VerificationOutcome:
        if self.context.names is None:
            return Unsatisfied("Domain names are not supported on this network")

        name = await self.context.names.verified_name(claimed_identity)
        if not name:
            return Unsatisfied("No ENS name is set for this address")

        if not requirement.required_patterns:
            return Satisfied(f"Owns {name}")
        for pattern in requirement.required_patterns:
            if matches_domain_pattern(name, pattern):
                return Satisfied(f"Owns {name}")
        return Unsatisfied(f"{name} does not match {', '.join(requirement.required_patterns)}")


class NativeBalanceVerifier(RequirementVerifier):

    async def _check(self, requirement: NativeBalance, claimed_identity: str) -> VerificationOutcome:
        balance = await self.context.rpc.get_balance(claimed_identity)
        if balance >= requirement.minimum_amount:
            return Satisfied(f"Balance {balance} wei")
        return Unsatisfied(f"Balance {balance} wei, needs {requirement.minimum_amount}")


def build_verifier(requirement: Requirement, context: NetworkContext, timeout: float = 10.0) -> RequirementVerifier:
    """Verifier for a requirement variant; unknown variants are a configuration error"""
    match requirement:
        case SocialFollow():
            return SocialFollowVerifier(context, timeout)
        case FungibleBalance():
            return FungibleBalanceVerifier(context, timeout)
        case CollectionOwnership():
            return CollectionOwnershipVerifier(context, timeout)
        case SpecificItemOwnership():
            return SpecificItemOwnershipVerifier(context, timeout)
        case MultiTokenBalance():
            return MultiTokenBalanceVerifier(context, timeout)
        case DomainNameOwnership():
            return DomainNameOwnershipVerifier(context, timeout)
        case NativeBalance():
            return NativeBalanceVerifier(context, timeout)
        case _:
            raise MalformedRequirementConfig([f"Unsupported requirement type: {type(requirement).__name__}"])


async def verify_requirements(
    requirements: Sequence[Requirement],
    claimed_identity: str,
    context: NetworkContext,
    timeout: float = 10.0,
) -> List[RequirementResult]:
    """Run every requirement check of a category concurrently"""
    verifiers = [build_verifier(r, context, timeout) for r in requirements]
    outcomes = await asyncio.gather(
        *(v.verify(r, claimed_identity) for v, r in zip(verifiers, requirements))
    )
    return [RequirementResult(requirement=r, outcome=o) for r, o in zip(requirements, outcomes)]
