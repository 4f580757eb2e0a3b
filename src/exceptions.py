"""
Custom exception hierarchy for the study platform.
Provides structured error handling with user-friendly messages and proper categorization.
"""

from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    DATABASE = "database"
    STORAGE = "storage"
    SYSTEM = "system"


class StudyPlatformError(Exception):
    """Base error carrying a user-facing message, a category and structured details."""

    def __init__(
        self,
        message: str,
        *,
        user_message: str | None = None,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.category = category
        self.severity = severity
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "cause": str(self.__cause__) if self.__cause__ else None,
        }


# Authentication and Authorization Errors
class AuthenticationError(StudyPlatformError):
    """The acting identity is not authenticated for the requested operation."""

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(
            message,
            user_message="Please sign in to perform this action.",
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.MEDIUM,
            **kwargs,
        )


class AuthorizationError(StudyPlatformError):
    """Base class for authorization errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "You don't have permission to perform this action.")
        super().__init__(
            message,
            category=ErrorCategory.AUTHORIZATION,
            severity=ErrorSeverity.MEDIUM,
            **kwargs,
        )


class PolicyViolationError(AuthorizationError):
    """A row-level policy rejected a write for the acting identity."""

    def __init__(self, table: str, command: str, role: str, reason: str | None = None):
        message = f"new row violates row-level security policy for table \"{table}\""
        if command in ("UPDATE", "DELETE"):
            message = f"{command} on table \"{table}\" is not permitted for role {role}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            details={"table": table, "command": command, "role": role},
        )
        self.table = table
        self.command = command
        self.role = role


# Validation Errors
class ValidationError(StudyPlatformError):
    """Base class for validation errors."""

    def __init__(self, message: str, field: str | None = None, **kwargs):
        super().__init__(
            message,
            user_message="Invalid input provided. Please check your data and try again.",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            details={"field": field} if field else {},
            **kwargs,
        )


class InvalidInputError(ValidationError):
    """Invalid caller input."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(f"Invalid value for field '{field}': {reason}", field=field)
        self.user_message = f"Invalid {field}: {reason}"
        self.details.update({"value": str(value), "reason": reason})


# Database Errors
class DatabaseError(StudyPlatformError):
    """Base class for database errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "A database error occurred.")
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, category=ErrorCategory.DATABASE, **kwargs)


class DatabaseConnectionError(DatabaseError):
    """Database connection failed."""

    def __init__(self, message: str = "Failed to connect to database"):
        super().__init__(message, severity=ErrorSeverity.CRITICAL)


class ConstraintViolationError(DatabaseError):
    """A uniqueness, foreign-key, not-null or check constraint rejected a write."""

    def __init__(self, table: str, message: str):
        super().__init__(
            message,
            user_message="The data conflicts with existing records or allowed values.",
            severity=ErrorSeverity.MEDIUM,
            details={"table": table},
        )
        self.table = table


class RecordNotFoundError(DatabaseError):
    """Requested record not visible or does not exist."""

    def __init__(self, entity_type: str, identifier: str):
        super().__init__(
            f"{entity_type} with identifier '{identifier}' not found",
            user_message=f"The requested {entity_type.lower()} could not be found.",
            severity=ErrorSeverity.LOW,
            details={"entity_type": entity_type, "identifier": identifier},
        )


# System Errors
class SystemError(StudyPlatformError):
    """Base class for system errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            user_message="A system error occurred. Please try again later.",
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class ConfigurationError(SystemError):
    """Invalid or missing configuration."""

    def __init__(self, setting: str, reason: str = "invalid value"):
        super().__init__(
            f"Configuration error for setting '{setting}': {reason}",
            details={"setting": setting, "reason": reason},
        )


# Storage Errors
class StorageError(StudyPlatformError):
    """Base exception for storage operations."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "File storage operation failed.")
        super().__init__(message, category=ErrorCategory.STORAGE, **kwargs)


class StorageConnectionError(StorageError):
    """Raised when storage connection fails."""


class StorageUploadError(StorageError):
    """Raised when file upload fails."""


class StorageDownloadError(StorageError):
    """Raised when file download fails."""


class StorageDeleteError(StorageError):
    """Raised when file deletion fails."""
