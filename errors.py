"""Application-wide exception hierarchy.

Every error carries the HTTP status it maps to, so the exception handlers
registered in ``main.py`` can translate it without a lookup table.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base application error with structured context."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for API responses."""
        result = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(AppError):
    """Raised when input is missing or malformed."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code="VALIDATION_ERROR", details=details)
        self.field = field
        if field and "field" not in self.details:
            self.details["field"] = field


class NotFoundError(AppError):
    """Raised when a requested record does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} not found", code="NOT_FOUND")
        self.resource = resource
        self.identifier = identifier
        self.details["id"] = str(identifier)


class AuthError(AppError):
    """Raised on bad credentials (401) or an insufficient role (403)."""

    def __init__(self, message: str = "Invalid username or password", forbidden: bool = False):
        super().__init__(message, code="FORBIDDEN" if forbidden else "UNAUTHORIZED")
        self.status_code = 403 if forbidden else 401


class StorageError(AppError):
    """Raised when the image storage backend fails."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="STORAGE_ERROR", details=details)


class UnexpectedError(AppError):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="UNEXPECTED_ERROR")
