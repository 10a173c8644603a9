# =============================================================================
# classroom_core/services/base_service.py
# Result Container and Service Base Class
# =============================================================================

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from classroom_core.logging import get_logger, LogContext
from classroom_core.errors import handle_error, ClassroomError


@dataclass
class ServiceResult:
    """
    Outcome of a store, sync or data-service call.

    Remote operations never raise; callers test the result instead:

        result = await remote.fetch_record_set(owner_id, "attendance")
        if not result:
            logger.warning(result.error)
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        return cls(True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, error_code: str = "UNKNOWN", metadata: Dict[str, Any] = None) -> ServiceResult:
        return cls(False, error=error, error_code=error_code, metadata=metadata)

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        """Failed result carrying the code and details of a ClassroomError."""
        if isinstance(e, ClassroomError):
            return cls.fail(e.message, e.code, metadata=e.details)
        return cls.fail(str(e), "EXCEPTION")


class BaseService:
    """
    Shared plumbing for the local data services.

    Subclasses get a class-named logger, timed operation logging and
    safe_execute, which turns exceptions into failed ServiceResults.
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str, level: int = logging.INFO) -> LogContext:
        """Timed start/complete/failed logging for one operation."""
        return LogContext(self.logger, operation, level)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        log_level: int = logging.INFO,
        **kwargs
    ) -> ServiceResult:
        """
        Run func inside log_operation and wrap its outcome.

        ClassroomErrors go through handle_error (logged, never shown to the
        user); anything else is logged with a traceback.

        Returns:
            ServiceResult.ok(return value) or a failed ServiceResult
        """
        try:
            with self.log_operation(operation, log_level):
                return ServiceResult.ok(func(*args, **kwargs))
        except ClassroomError as e:
            handle_error(e)
            return ServiceResult.from_exception(e)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}")
            return ServiceResult.fail(str(e))
