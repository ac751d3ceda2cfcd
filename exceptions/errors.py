"""
Custom exception classes for the application.

Every error carries a machine code, a human message, an HTTP status
and optional details; main.py turns them into JSON responses.
"""

from typing import Optional, Any
from datetime import datetime, timezone


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
        self.timestamp = datetime.now(timezone.utc).isoformat()
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
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
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


class ConfigurationError(AppError):
    """Required configuration is missing (500)."""

    def __init__(
        self,
        message: str,
        missing: Optional[list[str]] = None
    ):
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=message,
            status_code=500,
            details={"missing": missing or []}
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


# ===================
# CSV / MAPPING ERRORS
# ===================

class CsvParseError(ValidationError):
    """Uploaded file could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="CSV_PARSE_ERROR",
            message=message,
            details=details
        )


class MappingRequiredError(ValidationError):
    """A required canonical field has no column mapped to it."""

    def __init__(self, field: str = "appName"):
        super().__init__(
            code="MAPPING_REQUIRED",
            message=f"Please map the {field} field before proceeding",
            details={"field": field}
        )


class RowValidationFailedError(ValidationError):
    """One or more rows failed schema validation."""

    def __init__(self, invalid_rows: list[dict]):
        super().__init__(
            code="ROW_VALIDATION_FAILED",
            message=f"Validation failed for {len(invalid_rows)} rows",
            details={"invalid_rows": invalid_rows}
        )


class InvalidResolutionError(ValidationError):
    """A resolution choice does not fit the group or record."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_RESOLUTION",
            message=message,
            details=details
        )


class InvalidStepTransitionError(ValidationError):
    """Wizard cannot move in the requested direction."""

    def __init__(self, current_step: str, reason: str):
        super().__init__(
            code="INVALID_STEP_TRANSITION",
            message=reason,
            details={"current_step": current_step}
        )


# ===================
# NOT FOUND ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class DuplicateGroupNotFoundError(NotFoundError):
    """No CSV duplicate group with that key."""

    def __init__(self, group_key: str):
        super().__init__(
            resource="Duplicate group",
            identifier=group_key,
            code="DUPLICATE_GROUP_NOT_FOUND"
        )


class RemoteRecordNotFoundError(NotFoundError):
    """Remote record is not among the discovered duplicates."""

    def __init__(self, record_id: str):
        super().__init__(
            resource="Remote record",
            identifier=record_id,
            code="REMOTE_RECORD_NOT_FOUND"
        )


# ===================
# EXTERNAL SERVICE ERRORS
# ===================

class RemoteLookupError(ExternalServiceError):
    """Airtable query failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="airtable",
            message=message,
            details=details
        )


class SubmissionError(ExternalServiceError):
    """Notification webhook rejected or never received the payload."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="webhook",
            message=message,
            details=details
        )
