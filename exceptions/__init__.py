"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Upload
    MalformedInputError,
    UnsupportedFileTypeError,
    FileTooLargeError,

    # Import sessions
    ImportSessionNotFoundError,
    InvalidImportStepError,
    MappingIncompleteError,
    NoImportableRowsError,
    CommitInProgressError,

    # Storage
    StorageUnavailableError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Upload
    "MalformedInputError",
    "UnsupportedFileTypeError",
    "FileTooLargeError",

    # Import sessions
    "ImportSessionNotFoundError",
    "InvalidImportStepError",
    "MappingIncompleteError",
    "NoImportableRowsError",
    "CommitInProgressError",

    # Storage
    "StorageUnavailableError",
]
