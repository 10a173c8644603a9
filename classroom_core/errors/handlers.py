# =============================================================================
# classroom_core/errors/handlers.py
# Error Handling Utilities for the Classroom Platform
# =============================================================================

from __future__ import annotations
import traceback
from typing import Optional, Callable, TypeVar
import streamlit as st

from classroom_core.logging import get_logger
from .exceptions import ClassroomError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    show_user_message: bool = False,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Sync failures are only logged. Explicit sign-in/sign-up failures are
    the one case shown to the user (show_user_message=True).

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    known = isinstance(error, ClassroomError)
    message = user_message or (error.message if known else str(error))

    if log_error:
        if known:
            # Expected failures (remote down, bad payload) are warnings
            log = logger.warning if error.recoverable else logger.error
            log(f"[{error.code}] {message}", extra={"details": error.details})
        else:
            logger.error(
                f"[UNKNOWN] {message}",
                extra={"details": {"traceback": traceback.format_exc()}},
                exc_info=error,
            )

    recoverable = error.recoverable if known else True

    if show_user_message:
        if recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Returns:
        Function result or default value on error

    Usage:
        profiles = safe_execute(
            service.get_student_profiles,
            default={},
            error_message="Failed to read student profiles",
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default
