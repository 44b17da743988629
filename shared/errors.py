"""
Shared error handling for the BR Visibility extension.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    run_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class VisibilityLayerException(Exception):
    """Base exception for the extension."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        from shared.logging import run_id_var

        return ErrorResponse(
            run_id=run_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class HostUnavailableError(VisibilityLayerException):
    """Required host APIs are missing."""

    def __init__(self, message: str = "Host unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("HOST_UNAVAILABLE", message, details)


class ScopeClassificationError(VisibilityLayerException):
    """Processing of a single scope failed."""

    def __init__(self, message: str = "Scope classification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SCOPE_CLASSIFICATION_ERROR", message, details)


class PolicyPersistenceError(VisibilityLayerException):
    """Reading or writing the policy store failed."""

    def __init__(self, message: str = "Policy persistence failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("POLICY_PERSISTENCE_ERROR", message, details)


class ValidationError(VisibilityLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)
