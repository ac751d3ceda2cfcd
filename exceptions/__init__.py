"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConfigurationError,
    ExternalServiceError,

    # CSV / mapping
    CsvParseError,
    MappingRequiredError,
    RowValidationFailedError,
    InvalidResolutionError,
    InvalidStepTransitionError,

    # Not found
    ImportSessionNotFoundError,
    DuplicateGroupNotFoundError,
    RemoteRecordNotFoundError,

    # External services
    RemoteLookupError,
    SubmissionError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConfigurationError",
    "ExternalServiceError",

    # CSV / mapping
    "CsvParseError",
    "MappingRequiredError",
    "RowValidationFailedError",
    "InvalidResolutionError",
    "InvalidStepTransitionError",

    # Not found
    "ImportSessionNotFoundError",
    "DuplicateGroupNotFoundError",
    "RemoteRecordNotFoundError",

    # External services
    "RemoteLookupError",
    "SubmissionError",
]
