"""
Custom exception classes for the application.

Every error raised by the import pipeline derives from AppError so routes
can turn it into the standard error body.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# UPLOAD ERRORS
# ===================

class MalformedInputError(ValidationError):
    """Uploaded file is unreadable or has no data rows."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_MALFORMED_INPUT",
            message=message,
            details=details
        )


class UnsupportedFileTypeError(ValidationError):
    """Uploaded file extension is not supported."""

    def __init__(self, filename: str):
        super().__init__(
            code="IMPORT_UNSUPPORTED_FILE_TYPE",
            message="File must be CSV, TSV, TXT or XLSX",
            details={"filename": filename, "valid": [".csv", ".tsv", ".txt", ".xlsx"]}
        )


class FileTooLargeError(AppError):
    """Uploaded file exceeds the configured size limit (413)."""

    def __init__(self, size_bytes: int, max_bytes: int):
        super().__init__(
            code="IMPORT_FILE_TOO_LARGE",
            message=f"File is larger than {max_bytes // (1024 * 1024)} MB",
            status_code=413,
            details={"size_bytes": size_bytes, "max_bytes": max_bytes}
        )


# ===================
# IMPORT SESSION ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session expired, closed, or belongs to another workspace."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class InvalidImportStepError(ConflictError):
    """Event not allowed in the session's current step."""

    def __init__(self, current_step: str, action: str, allowed_steps: Optional[list[str]] = None):
        super().__init__(
            code="IMPORT_INVALID_STEP",
            message=f"Cannot {action} while import is at step '{current_step}'",
            details={
                "current_step": current_step,
                "action": action,
                "allowed_steps": allowed_steps or [],
            }
        )


class MappingIncompleteError(ValidationError):
    """Column mapping does not cover the required fields."""

    def __init__(self, entity_type: str, errors: list[str]):
        super().__init__(
            code="IMPORT_MAPPING_INCOMPLETE",
            message=f"Column mapping for {entity_type} is incomplete",
            details={"entity_type": entity_type, "errors": errors}
        )


class NoImportableRowsError(ValidationError):
    """Preview has no row that would be committed."""

    def __init__(self, total_rows: int, valid_rows: int):
        super().__init__(
            code="IMPORT_NO_IMPORTABLE_ROWS",
            message="No rows are ready to import",
            details={"total_rows": total_rows, "valid_rows": valid_rows}
        )


class CommitInProgressError(ConflictError):
    """A commit is already running for this session."""

    def __init__(self, session_id: str):
        super().__init__(
            code="IMPORT_COMMIT_IN_PROGRESS",
            message="An import is already running for this session",
            details={"session_id": session_id}
        )


# ===================
# STORAGE ERRORS
# ===================

class StorageUnavailableError(ExternalServiceError):
    """
    Storage call failed at the transport level.

    Attributes:
        outcome: Partial batch outcome recorded before the failure
    """

    def __init__(
        self,
        message: str,
        outcome: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            service="supabase",
            message=message,
            details=details
        )
        self.outcome = outcome
