"""
Gating configuration API models (Pydantic schemas)

Requirements are a discriminated union on "kind". Amounts are accepted as
integers or decimal strings and always returned as decimal strings, so
values above 2**53 survive JavaScript clients.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer

from lockgate.models.domain import (
    Category,
    CategoryType,
    CollectionOwnership,
    DomainNameOwnership,
    FollowDirection,
    FulfillmentMode,
    FungibleBalance,
    MultiTokenBalance,
    NativeBalance,
    SocialFollow,
    SpecificItemOwnership,
)


def parse_amount(value):
    if isinstance(value, bool):
        raise ValueError("amount must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError("amount must be a whole number or a decimal string")


Amount = Annotated[int, BeforeValidator(parse_amount), PlainSerializer(str, return_type=str)]


# =============================================================================
# REQUIREMENTS
# =============================================================================

class SocialFollowSchema(BaseModel):
    kind: Literal["social_follow"]
    direction: FollowDirection
    target_identity: Optional[str] = None
    threshold: Amount = 0

    def to_domain(self) -> SocialFollow:
        return SocialFollow(
            direction=self.direction,
            target_identity=self.target_identity.lower() if self.target_identity else None,
            threshold=self.threshold,
        )


class FungibleBalanceSchema(BaseModel):
    kind: Literal["fungible_balance"]
    asset_id: str
    minimum_amount: Amount
    symbol: Optional[str] = None

    def to_domain(self) -> FungibleBalance:
        return FungibleBalance(self.asset_id.lower(), self.minimum_amount, self.symbol)


class CollectionOwnershipSchema(BaseModel):
    kind: Literal["collection_ownership"]
    asset_id: str
    minimum_count: Amount = 1
    symbol: Optional[str] = None

    def to_domain(self) -> CollectionOwnership:
        return CollectionOwnership(self.asset_id.lower(), self.minimum_count, self.symbol)


class SpecificItemOwnershipSchema(BaseModel):
    kind: Literal["specific_item_ownership"]
    asset_id: str
    item_id: str
    symbol: Optional[str] = None

    def to_domain(self) -> SpecificItemOwnership:
        return SpecificItemOwnership(self.asset_id.lower(), self.item_id.strip(), self.symbol)


class MultiTokenBalanceSchema(BaseModel):
    kind: Literal["multi_token_balance"]
    asset_id: str
    token_id: str
    minimum_amount: Amount
    name: Optional[str] = None

    def to_domain(self) -> MultiTokenBalance:
        return MultiTokenBalance(self.asset_id.lower(), self.token_id.strip(), self.minimum_amount, self.name)


class DomainNameOwnershipSchema(BaseModel):
    kind: Literal["domain_name_ownership"]
    required_patterns: List[str] = []

    def to_domain(self) -> DomainNameOwnership:
        return DomainNameOwnership(tuple(p.strip().lower() for p in self.required_patterns))


class NativeBalanceSchema(BaseModel):
    kind: Literal["native_balance"]
    minimum_amount: Amount

    def to_domain(self) -> NativeBalance:
        return NativeBalance(self.minimum_amount)


RequirementSchema = Annotated[
    Union[
        SocialFollowSchema,
        FungibleBalanceSchema,
        CollectionOwnershipSchema,
        SpecificItemOwnershipSchema,
        MultiTokenBalanceSchema,
        DomainNameOwnershipSchema,
        NativeBalanceSchema,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# CATEGORIES AND LOCK GATING
# =============================================================================

class CategorySchema(BaseModel):
    type: CategoryType
    enabled: bool = True
    fulfillment: FulfillmentMode
    requirements: List[RequirementSchema]

    def to_domain(self) -> Category:
        return Category(
            type=self.type,
            requirements=tuple(r.to_domain() for r in self.requirements),
            fulfillment=self.fulfillment,
            enabled=self.enabled,
        )


class GatingConfigSchema(BaseModel):
    """Lock-level gating: categories combined with ANY or ALL"""
    fulfillment: FulfillmentMode
    categories: List[CategorySchema]

    def to_domain(self) -> tuple:
        return [c.to_domain() for c in self.categories], self.fulfillment
