"""
Error taxonomy for the change graph engine.

Every engine-level failure is a typed exception carrying a stable machine
code, a human-readable message and the HTTP-equivalent status a transport
layer should surface.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for all engine errors.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
        status_code: HTTP-equivalent status
    """

    code = "SERVICE_ERROR"
    default_status = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code or self.default_status
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "error": self.code,
            "status_code": self.status_code,
            "message": self.message,
        }


class NotFoundError(ServiceError):
    """A change, target, op, record type, project or package is absent."""

    code = "NOT_FOUND"
    default_status = 404


class InvalidTransitionError(ServiceError):
    """Illegal state-machine move."""

    code = "INVALID_TRANSITION"
    default_status = 400


class ConflictError(ServiceError):
    """Duplicate key, name or pending op, or a lost optimistic-concurrency race."""

    code = "CONFLICT"
    default_status = 409


class ValidationFailureError(ServiceError):
    """Field-type, selector-shape, payload or graph-structural violation."""

    code = "VALIDATION_FAILED"
    default_status = 400


class ImmutabilityError(ServiceError):
    """Mutation attempted on a merged change or an executed op."""

    code = "IMMUTABILITY_VIOLATION"
    default_status = 400


class ForbiddenError(ServiceError):
    """Actor-type or permission guard failure.

    Raised by the RBAC / agent-guard collaborator in front of this engine.
    """

    code = "FORBIDDEN"
    default_status = 403
