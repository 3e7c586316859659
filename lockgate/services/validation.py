"""
Gating configuration validation

Runs at lock creation/update and when gating is applied to a resource, so a
lock that cannot be verified is rejected up front instead of failing later
for every user. All problems are collected and reported together.
"""
import re
from typing import List, Sequence

from lockgate.models.domain import (
    ETHEREUM_ONLY_KINDS,
    REQUIREMENT_TYPES,
    Category,
    CollectionOwnership,
    DomainNameOwnership,
    FollowDirection,
    FungibleBalance,
    MultiTokenBalance,
    NativeBalance,
    SocialFollow,
    SpecificItemOwnership,
)
from lockgate.models.domain import CategoryType
from lockgate.services.chain_client import parse_item_id
from lockgate.services.challenge_issuer import is_valid_address
from lockgate.services.errors import MalformedRequirementConfig

MAX_UINT256 = 2 ** 256 - 1

# '*', '*.suffix' or an exact name
DOMAIN_PATTERN_RE = re.compile(r'^(\*|(\*\.)?[a-z0-9-]+(\.[a-z0-9-]+)*)$')


def _requirement_errors(requirement, where: str) -> List[str]:
    errors: List[str] = []

    def check_address(value, label):
        if not is_valid_address(value or ""):
            errors.append(f"{where}: {label} must be a 0x address")

    def check_amount(value, label):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{where}: {label} must be an integer")
        elif value <= 0:
            errors.append(f"{where}: {label} must be greater than zero")
        elif value > MAX_UINT256:
            errors.append(f"{where}: {label} is out of range")

    def check_item_id(value, label):
        try:
            item = parse_item_id(value)
        except (ValueError, AttributeError):
            errors.append(f"{where}: {label} must be a decimal or 0x hex id")
            return
        if item < 0 or item > MAX_UINT256:
            errors.append(f"{where}: {label} is out of range")

    if isinstance(requirement, SocialFollow):
        if requirement.direction == FollowDirection.MIN_FOLLOWER_COUNT:
            check_amount(requirement.threshold, "threshold")
        else:
            check_address(requirement.target_identity, "target_identity")
    elif isinstance(requirement, FungibleBalance):
        check_address(requirement.asset_id, "asset_id")
        check_amount(requirement.minimum_amount, "minimum_amount")
    elif isinstance(requirement, CollectionOwnership):
        check_address(requirement.asset_id, "asset_id")
        check_amount(requirement.minimum_count, "minimum_count")
    elif isinstance(requirement, SpecificItemOwnership):
        check_address(requirement.asset_id, "asset_id")
        check_item_id(requirement.item_id, "item_id")
    elif isinstance(requirement, MultiTokenBalance):
        check_address(requirement.asset_id, "asset_id")
        check_item_id(requirement.token_id, "token_id")
        check_amount(requirement.minimum_amount, "minimum_amount")
    elif isinstance(requirement, DomainNameOwnership):
        for pattern in requirement.required_patterns:
            if not DOMAIN_PATTERN_RE.match(pattern.strip().lower()):
                errors.append(f"{where}: invalid domain pattern '{pattern}'")
    elif isinstance(requirement, NativeBalance):
        check_amount(requirement.minimum_amount, "minimum_amount")

    return errors


def gating_errors(categories: Sequence[Category]) -> List[str]:
    """Every problem with a lock's categories, empty when valid"""
    errors: List[str] = []

    if not categories:
        return ["At least one category is required"]
    if not any(c.enabled for c in categories):
        errors.append("At least one category must be enabled")

    seen = set()
    for category in categories:
        label = category.type.value
        if category.type in seen:
            errors.append(f"Duplicate category '{label}'")
        seen.add(category.type)

        if category.enabled and not category.requirements:
            errors.append(f"Category '{label}' has no requirements")

        for index, requirement in enumerate(category.requirements):
            where = f"{label} requirement {index + 1}"
            if not isinstance(requirement, REQUIREMENT_TYPES):
                errors.append(f"{where}: unsupported requirement type {type(requirement).__name__}")
                continue
            if requirement.kind in ETHEREUM_ONLY_KINDS and category.type != CategoryType.ETHEREUM_PROFILE:
                errors.append(f"{where}: {requirement.kind} is only available for ethereum_profile")
            errors.extend(_requirement_errors(requirement, where))

    return errors


def validate_gating(categories: Sequence[Category]) -> None:
    """Raise MalformedRequirementConfig listing every problem"""
    errors = gating_errors(categories)
    if errors:
        raise MalformedRequirementConfig(errors)


def validate_duration_hours(hours: float, max_hours: float) -> None:
    if not hours or hours <= 0:
        raise MalformedRequirementConfig(["verification_duration_hours must be greater than zero"])
    if hours > max_hours:
        raise MalformedRequirementConfig([f"verification_duration_hours cannot exceed {max_hours:g}"])
