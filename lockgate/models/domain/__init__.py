"""
Domain models - storage-agnostic representations
"""
from .requirement import (
    FulfillmentMode,
    CategoryType,
    FollowDirection,
    SocialFollow,
    FungibleBalance,
    CollectionOwnership,
    SpecificItemOwnership,
    MultiTokenBalance,
    DomainNameOwnership,
    NativeBalance,
    Requirement,
    REQUIREMENT_TYPES,
    ETHEREUM_ONLY_KINDS,
    requirement_from_dict,
    requirement_to_dict,
    short_address,
)
from .lock import Category, Lock, LockFilters, BoardLockGating, ResourceRef
from .challenge import Challenge
from .verification import (
    VerificationStatus,
    VerificationRecord,
    Satisfied,
    Unsatisfied,
    ExternalError,
    VerificationOutcome,
    RequirementResult,
)

__all__ = [
    'FulfillmentMode',
    'CategoryType',
    'FollowDirection',
    'SocialFollow',
    'FungibleBalance',
    'CollectionOwnership',
    'SpecificItemOwnership',
    'MultiTokenBalance',
    'DomainNameOwnership',
    'NativeBalance',
    'Requirement',
    'REQUIREMENT_TYPES',
    'ETHEREUM_ONLY_KINDS',
    'requirement_from_dict',
    'requirement_to_dict',
    'short_address',
    'Category',
    'Lock',
    'LockFilters',
    'BoardLockGating',
    'ResourceRef',
    'Challenge',
    'VerificationStatus',
    'VerificationRecord',
    'Satisfied',
    'Unsatisfied',
    'ExternalError',
    'VerificationOutcome',
    'RequirementResult',
]
