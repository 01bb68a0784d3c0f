"""
Error taxonomy for the rewards core.

Idempotent repeats are never raised: they come back as normal results
(ApplyOutcome.ALREADY_APPLIED, "credited_already", no-op True).
"""
from __future__ import annotations


class RewardsError(Exception):
    """Base error. ``code`` is the stable machine-readable identifier."""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFoundError(RewardsError):
    code = "not_found"


class ConflictError(RewardsError):
    code = "conflict"


class PreconditionFailedError(RewardsError):
    code = "precondition_failed"


class InvalidArgumentError(RewardsError):
    code = "invalid_argument"


class InvalidStateError(RewardsError):
    code = "invalid_state"


class InsufficientFundsError(InvalidStateError):
    code = "insufficient_funds"


class PermissionDeniedError(RewardsError):
    code = "permission_denied"


class ResourceExhaustedError(RewardsError):
    code = "resource_exhausted"


class RetryableError(RewardsError):
    code = "retryable"
