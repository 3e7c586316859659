"""
Verification error taxonomy

Every failure of the verification protocol is one of these exceptions. The
message is safe to show to end users; raw external-service errors are only
logged, never carried in the message.
"""
from typing import List, Optional


class VerificationError(Exception):
    """Base class for all lockgate errors"""
    code = "verification_error"
    default_message = "Verification failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ExpiredChallenge(VerificationError):
    code = "expired_challenge"
    default_message = "Challenge has expired, request a new one"


class UnknownOrReusedNonce(VerificationError):
    code = "unknown_or_reused_nonce"
    default_message = "Challenge is unknown or has already been used"

    def __init__(self, message: Optional[str] = None, reason: str = "unknown"):
        super().__init__(message)
        self.reason = reason  # "unknown" | "consumed" | "mismatch"


class InvalidSignature(VerificationError):
    code = "invalid_signature"
    default_message = "Signature does not match the claimed profile"


class RequirementUnsatisfied(VerificationError):
    code = "requirement_unsatisfied"
    default_message = "Requirements not met"

    def __init__(self, details: List[str], message: Optional[str] = None, results: Optional[list] = None):
        self.details = list(details)
        self.results = list(results or [])
        super().__init__(message or "Requirements not met: " + "; ".join(self.details))


class ExternalServiceUnavailable(VerificationError):
    code = "external_service_unavailable"
    default_message = "Requirements could not be checked right now, please try again"

    def __init__(self, message: Optional[str] = None, results: Optional[list] = None):
        super().__init__(message)
        self.results = list(results or [])


class MalformedRequirementConfig(VerificationError):
    code = "malformed_requirement_config"
    default_message = "Invalid gating configuration"

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "Invalid gating configuration: " + "; ".join(self.errors))


class UnauthorizedLockUse(VerificationError):
    code = "unauthorized_lock_use"
    default_message = "You do not have permission to use this lock"


class LockNotFound(VerificationError):
    code = "lock_not_found"
    default_message = "Lock not found"


class ResourceNotGated(VerificationError):
    code = "resource_not_gated"
    default_message = "This resource does not have lock gating configured"


class LockConflict(VerificationError):
    code = "lock_conflict"
    default_message = "Lock cannot be changed in its current state"
