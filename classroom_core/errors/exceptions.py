# =============================================================================
# classroom_core/errors/exceptions.py
# Custom Exception Hierarchy for the Classroom Platform
# =============================================================================

from typing import Optional, Dict, Any


class ClassroomError(Exception):
    """
    Base exception for all classroom platform errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CP_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# AUTHENTICATION EXCEPTIONS
# =============================================================================

class NotAuthenticatedError(ClassroomError):
    """Raised when a remote operation is attempted without a current user"""

    def __init__(
        self,
        message: str = "No authenticated user",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )


class AuthenticationError(ClassroomError):
    """Raised when an explicit sign-in or sign-up attempt fails"""

    def __init__(
        self,
        message: str,
        email: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if email:
            details["email"] = email

        super().__init__(
            message=message,
            code="AUTH_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# SYNC LAYER EXCEPTIONS
# =============================================================================

class RemoteUnavailableError(ClassroomError):
    """Raised when the remote store cannot be reached or rejects a call"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        data_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if data_key:
            details["data_key"] = data_key

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class SerializationError(ClassroomError):
    """Raised when a payload cannot be represented as JSON"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(ClassroomError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# DATA EXCEPTIONS
# =============================================================================

class RecordValidationError(ClassroomError):
    """Raised when a classroom record is missing required fields"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if record_type:
            details["record_type"] = record_type
        if field:
            details["field"] = field

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )
