"""
Challenge domain model
"""
from dataclasses import dataclass
from datetime import datetime

from .requirement import CategoryType


@dataclass
class Challenge:
    """
    Single-use, time-boxed signing challenge

    Bound to one (resource, claimed identity) pair. The signing_message is
    the exact text the client must sign; verification re-reads it from the
    store instead of trusting a message echoed back by the client.
    """
    nonce: str
    claimed_identity: str  # lower-cased 0x address
    resource_id: str
    category_type: CategoryType
    chain_id: int
    issued_at: datetime
    expires_at: datetime
    signing_message: str

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "claimed_identity": self.claimed_identity,
            "resource_id": self.resource_id,
            "category_type": self.category_type.value,
            "chain_id": self.chain_id,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "signing_message": self.signing_message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Challenge":
        return cls(
            nonce=data["nonce"],
            claimed_identity=data["claimed_identity"],
            resource_id=data["resource_id"],
            category_type=CategoryType(data["category_type"]),
            chain_id=int(data["chain_id"]),
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            signing_message=data["signing_message"],
        )
