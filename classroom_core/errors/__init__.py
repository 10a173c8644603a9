# =============================================================================
# classroom_core/errors/__init__.py
# Centralized Error Handling for the Classroom Platform
# =============================================================================

from .exceptions import (
    ClassroomError,
    NotAuthenticatedError,
    AuthenticationError,
    RemoteUnavailableError,
    SerializationError,
    ConfigurationError,
    RecordValidationError,
)

from .handlers import (
    handle_error,
    safe_execute,
)

__all__ = [
    # Exceptions
    "ClassroomError",
    "NotAuthenticatedError",
    "AuthenticationError",
    "RemoteUnavailableError",
    "SerializationError",
    "ConfigurationError",
    "RecordValidationError",
    # Handlers
    "handle_error",
    "safe_execute",
]
