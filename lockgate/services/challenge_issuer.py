"""
Challenge issuer

Produces single-use signing challenges bound to (resource, claimed identity).
"""
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict

from lockgate.models.domain import CategoryType, Challenge, ResourceRef
from lockgate.utils import utc_now, isoformat_z

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r'^0x[a-fA-F0-9]{40}$')

NETWORK_NAMES = {
    CategoryType.UNIVERSAL_PROFILE: "LUKSO Mainnet",
    CategoryType.ETHEREUM_PROFILE: "Ethereum Mainnet",
}


def is_valid_address(address: str) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address))


def build_signing_message(challenge: Challenge) -> str:
    """Canonical text the client signs; must stay byte-for-byte stable"""
    network = NETWORK_NAMES[challenge.category_type]
    return (
        "Common Ground Lock Verification Challenge:\n"
        "\n"
        f"Profile: {challenge.claimed_identity}\n"
        f"Resource: {challenge.resource_id}\n"
        f"Category: {challenge.category_type.value}\n"
        f"Nonce: {challenge.nonce}\n"
        f"Chain: {challenge.chain_id} ({network})\n"
        f"Issued At: {isoformat_z(challenge.issued_at)}\n"
        "\n"
        "Sign this message to prove you own the profile and meet the requirements to comment."
    )


class ChallengeIssuer:
    """Issues challenges into a nonce store"""

    def __init__(
        self,
        nonce_store,
        chain_ids: Dict[CategoryType, int],
        ttl_seconds: int = 900,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.nonce_store = nonce_store
        self.chain_ids = chain_ids
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    async def issue_challenge(
        self,
        resource_id: str,
        claimed_identity: str,
        category_type: CategoryType,
    ) -> Challenge:
        """
        Create and store a new challenge.

        Args:
            resource_id: 'post:<id>' or 'board:<id>'
            claimed_identity: 0x address the user claims to control
            category_type: network the signature and requirements belong to

        Returns:
            Stored Challenge with its signing message

        Raises:
            ValueError: malformed resource id or address
        """
        resource = ResourceRef.parse(resource_id)
        if not is_valid_address(claimed_identity):
            raise ValueError("Invalid address format (must be 0x followed by 40 hex characters)")

        issued_at = self.clock().replace(microsecond=0)
        challenge = Challenge(
            nonce=secrets.token_hex(16),
            claimed_identity=claimed_identity.lower(),
            resource_id=str(resource),
            category_type=category_type,
            chain_id=self.chain_ids[category_type],
            issued_at=issued_at,
            expires_at=issued_at + self.ttl,
            signing_message="",
        )
        challenge.signing_message = build_signing_message(challenge)

        await self.nonce_store.store(challenge)
        logger.info(
            f"Issued challenge for {challenge.claimed_identity} on {challenge.resource_id} "
            f"({category_type.value}), expires {isoformat_z(challenge.expires_at)}"
        )
        return challenge
