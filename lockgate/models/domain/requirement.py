"""
Requirement domain models

A requirement is one concrete, typed condition a user has to meet. The set of
variants is closed: every verifier dispatches with an exhaustive match over
these classes, so adding a variant means adding a verifier as well.

Amounts are plain ints in the asset's smallest unit (wei for native coins).
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import ClassVar, Optional, Tuple, Union


class FulfillmentMode(str, Enum):
    """Boolean composition rule used at category, lock and board level"""
    ANY = "any"
    ALL = "all"


class CategoryType(str, Enum):
    """
    Requirement families, one per identity network.

    universal_profile: LUKSO Universal Profiles (LSP7/LSP8 assets, LSP26 followers)
    ethereum_profile:  Ethereum accounts (ERC-20/721/1155, ENS, EFP followers)
    """
    UNIVERSAL_PROFILE = "universal_profile"
    ETHEREUM_PROFILE = "ethereum_profile"


class FollowDirection(str, Enum):
    FOLLOWS = "follows"
    FOLLOWED_BY = "followed_by"
    MIN_FOLLOWER_COUNT = "min_follower_count"


def short_address(address: str) -> str:
    """0x1234...abcd form used in user-facing messages"""
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


@dataclass(frozen=True)
class SocialFollow:
    direction: FollowDirection
    target_identity: Optional[str] = None
    threshold: int = 0

    kind: ClassVar[str] = "social_follow"

    def describe(self) -> str:
        if self.direction == FollowDirection.MIN_FOLLOWER_COUNT:
            return f"At least {self.threshold} followers"
        if self.direction == FollowDirection.FOLLOWS:
            return f"Follow {short_address(self.target_identity or '')}"
        return f"Be followed by {short_address(self.target_identity or '')}"


@dataclass(frozen=True)
class FungibleBalance:
    asset_id: str
    minimum_amount: int
    symbol: Optional[str] = None

    kind: ClassVar[str] = "fungible_balance"

    def describe(self) -> str:
        return f"Hold at least {self.minimum_amount} of {self.symbol or short_address(self.asset_id)}"


@dataclass(frozen=True)
class CollectionOwnership:
    asset_id: str
    minimum_count: int = 1
    symbol: Optional[str] = None

    kind: ClassVar[str] = "collection_ownership"

    def describe(self) -> str:
        return f"Own at least {self.minimum_count} item(s) from {self.symbol or short_address(self.asset_id)}"


@dataclass(frozen=True)
class SpecificItemOwnership:
    """Ownership of exactly one enumerated item; never satisfied by a collection count"""
    asset_id: str
    item_id: str
    symbol: Optional[str] = None

    kind: ClassVar[str] = "specific_item_ownership"

    def describe(self) -> str:
        return f"Own item #{self.item_id} of {self.symbol or short_address(self.asset_id)}"


@dataclass(frozen=True)
class MultiTokenBalance:
    """ERC-1155 balance of one token id"""
    asset_id: str
    token_id: str
    minimum_amount: int
    name: Optional[str] = None

    kind: ClassVar[str] = "multi_token_balance"

    def describe(self) -> str:
        label = self.name or f"token #{self.token_id}"
        return f"Hold at least {self.minimum_amount} of {label} ({short_address(self.asset_id)})"


@dataclass(frozen=True)
class DomainNameOwnership:
    """An ENS name bound to the identity; empty patterns accept any name"""
    required_patterns: Tuple[str, ...] = ()

    kind: ClassVar[str] = "domain_name_ownership"

    def describe(self) -> str:
        if not self.required_patterns:
            return "Own an ENS name"
        return f"Own an ENS name matching {', '.join(self.required_patterns)}"


@dataclass(frozen=True)
class NativeBalance:
    minimum_amount: int

    kind: ClassVar[str] = "native_balance"

    def describe(self) -> str:
        return f"Hold at least {self.minimum_amount} wei of the native coin"


Requirement = Union[
    SocialFollow,
    FungibleBalance,
    CollectionOwnership,
    SpecificItemOwnership,
    MultiTokenBalance,
    DomainNameOwnership,
    NativeBalance,
]

REQUIREMENT_TYPES = (
    SocialFollow,
    FungibleBalance,
    CollectionOwnership,
    SpecificItemOwnership,
    MultiTokenBalance,
    DomainNameOwnership,
    NativeBalance,
)

# Variants that only exist on one network
ETHEREUM_ONLY_KINDS = frozenset({DomainNameOwnership.kind, MultiTokenBalance.kind})


def requirement_to_dict(requirement: Requirement) -> dict:
    """JSON-safe form; amounts become decimal strings"""
    data = asdict(requirement)
    for key in ("minimum_amount", "minimum_count", "threshold"):
        if key in data and data[key] is not None:
            data[key] = str(data[key])
    for key, value in list(data.items()):
        if isinstance(value, Enum):
            data[key] = value.value
        elif isinstance(value, tuple):
            data[key] = list(value)
    data["kind"] = requirement.kind
    return data


REQUIREMENT_BY_KIND = {cls.kind: cls for cls in REQUIREMENT_TYPES}


def requirement_from_dict(data: dict) -> Requirement:
    """Rebuild a requirement from its stored form (see requirement_to_dict)"""
    values = dict(data)
    kind = values.pop("kind", None)
    cls = REQUIREMENT_BY_KIND.get(kind)
    if cls is None:
        raise ValueError(f"Unknown requirement kind: {kind!r}")

    for key in ("minimum_amount", "minimum_count", "threshold"):
        if values.get(key) is not None:
            values[key] = int(values[key])
    if cls is SocialFollow:
        values["direction"] = FollowDirection(values["direction"])
    if cls is DomainNameOwnership:
        values["required_patterns"] = tuple(values.get("required_patterns") or ())
    return cls(**values)
