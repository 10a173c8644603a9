# =============================================================================
# classroom_core/services/__init__.py
# Service Layer for the Classroom Platform
# =============================================================================
"""
Service Layer for the Classroom Platform

Usage Example:
-------------
    from classroom_core.services import ClassroomDataService
    from classroom_core.sync import create_sync_service

    sync = await create_sync_service()
    data = ClassroomDataService(sync.local_store)

    result = data.mark_attendance("2024-01-01", "s1", "present")
    if result.success:
        print(result.data)

Writes made here are mirrored to Supabase by the sync layer's storage
interceptor; reads never wait on the network.
"""

from .base_service import BaseService, ServiceResult
from .data_service import (
    ATTENDANCE_STATUSES,
    DEFAULT_ASSESSMENT_CONFIG,
    ClassroomDataService,
)

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    # Classroom data
    "ClassroomDataService",
    "ATTENDANCE_STATUSES",
    "DEFAULT_ASSESSMENT_CONFIG",
]
