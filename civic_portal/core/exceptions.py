"""Typed errors raised by the service layer.

Services raise these instead of ``HTTPException`` so that business rules stay
independent of the web framework; ``main.py`` maps them to responses.

Usage:
    from civic_portal.core.exceptions import ResourceNotFoundError

    if complaint is None:
        raise ResourceNotFoundError("Complaint", complaint_id)
"""
from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base exception for all portal errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class AuthenticationError(PortalError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class PermissionDeniedError(PortalError):
    """User is authenticated but may not perform this action."""

    status_code = 403

    def __init__(self, message: str = "Not authorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="NOT_AUTHORIZED", details=details)


class ResourceNotFoundError(PortalError):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ConflictError(PortalError):
    """Unique constraint style conflicts (duplicate email, duplicate vote)."""

    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class BusinessRuleError(PortalError):
    """A request that is well-formed but violates a portal rule."""

    status_code = 400

    def __init__(self, message: str, code: str = "BUSINESS_RULE", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ValidationError(BusinessRuleError):
    """Form-level validation performed outside pydantic (e.g. password policy)."""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field} if field else None)
