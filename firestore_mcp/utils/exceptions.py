"""
Custom exceptions for the application.
All store and tool-level failures are expressed with these types.
"""

from typing import List, Optional


class AppException(Exception):
    """Base exception for all application exceptions."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[List[str]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or []
        super().__init__(self.message)


class ValidationError(AppException):
    """Raised when tool arguments are well-formed but not usable."""

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details
        )


class NotFoundError(AppException):
    """Raised when a document is not found."""

    def __init__(
        self,
        message: str = "Document not found",
        collection: Optional[str] = None,
        document_id: Optional[str] = None
    ):
        details = []
        if collection and document_id:
            message = f"Document '{collection}/{document_id}' not found"
            details.append(f"Collection: {collection}")

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details=details
        )


class ConflictError(AppException):
    """Raised when a document already exists."""

    def __init__(
        self,
        message: str = "Document already exists",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="CONFLICT_ERROR",
            details=details
        )


class PermissionDeniedError(AppException):
    """Raised when the service account may not perform the operation."""

    def __init__(
        self,
        message: str = "Permission denied",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="PERMISSION_DENIED",
            details=details
        )


class MissingIndexError(AppException):
    """Raised when a query needs a composite index that does not exist."""

    def __init__(
        self,
        message: str = "The query requires an index",
        index_url: Optional[str] = None
    ):
        details = []
        if index_url:
            details.append(f"Create the index at: {index_url}")

        super().__init__(
            message=message,
            code="MISSING_INDEX",
            details=details
        )
        self.index_url = index_url


class DatabaseError(AppException):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            details=details
        )


class ConfigurationError(AppException):
    """Raised when the server cannot be configured (credentials, project)."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        details: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details
        )
