# =============================================================================
# classroom_core/services/data_service.py
# Classroom Data Service - Typed Access to the Managed Record Sets
# =============================================================================

from __future__ import annotations
import copy
import logging
from typing import Any, Callable, Dict, List

import pandas as pd

from .base_service import BaseService, ServiceResult
from classroom_core.errors import RecordValidationError, safe_execute
from classroom_core.sync.keys import (
    STATIC_DATA_KEYS,
    DataKey,
    assessment_config_key,
    parse_data_key,
    parse_storage_key,
    storage_key_for,
)
from classroom_core.sync.local_store import MISSING, LocalStore

DataListener = Callable[[Any, str], None]

ATTENDANCE_STATUSES = ("present", "absent", "tardy")

DEFAULT_ASSESSMENT_CONFIG: Dict[str, Dict[str, Any]] = {
    "Quiz": {"weight": 20, "label": "Quizzes", "isCustom": False},
    "Exam": {"weight": 40, "label": "Exams", "isCustom": False},
    "Project": {"weight": 25, "label": "Projects", "isCustom": False},
    "Assignment": {"weight": 15, "label": "Assignments", "isCustom": False},
}

STUDENT_REQUIRED_FIELDS = ("id", "firstName", "lastName")


class ClassroomDataService(BaseService):
    """
    Service for classroom data.

    Handles:
    - Typed get/set of class records, profiles, attendance, assessment configs
    - Attendance marking
    - Change listeners per data key
    - Local backup (export/import) and storage statistics

    Every write goes through the LocalStore, so an attached
    StorageInterceptor mirrors it remotely without this class knowing.

    Usage:
        service = ClassroomDataService(local_store)
        service.mark_attendance("2024-01-01", "s1", "present")
        service.get_attendance()
    """

    def __init__(self, local_store: LocalStore):
        super().__init__()
        self.local = local_store
        self._listeners: Dict[str, List[DataListener]] = {}
        self.local.add_write_hook(self._on_store_write)

    def close(self) -> None:
        self.local.remove_write_hook(self._on_store_write)

    # =========================================================================
    # GENERIC ACCESS
    # =========================================================================

    def get(self, data_key: str, default: Any = MISSING) -> Any:
        """Read a managed record set ({} when absent and no default given)."""
        return self.local.read(storage_key_for(data_key), default)

    def set(self, data_key: str, value: Any) -> None:
        """
        Write a managed record set.

        Raises:
            SerializationError: value is not JSON-serializable
        """
        self.local.write(storage_key_for(data_key), value)

    def remove(self, data_key: str) -> None:
        self.local.remove(storage_key_for(data_key))
        self._notify_listeners(data_key, None)

    def clear(self) -> int:
        """Remove every managed key locally. Remote rows are kept."""
        removed = [parse_storage_key(k).data_key for k in self.local.managed_keys()]
        count = self.local.clear_managed()
        for data_key in removed:
            self._notify_listeners(data_key, None)
        return count

    # =========================================================================
    # TYPED ACCESSORS
    # =========================================================================

    def get_class_records(self) -> Dict[str, Any]:
        return self.get(DataKey.CLASS_RECORDS.value)

    def set_class_records(self, records: Dict[str, Any]) -> None:
        self.set(DataKey.CLASS_RECORDS.value, records)

    def get_student_profiles(self) -> Dict[str, Any]:
        return self.get(DataKey.STUDENT_PROFILES.value)

    def set_student_profiles(self, profiles: Dict[str, Any]) -> None:
        self.set(DataKey.STUDENT_PROFILES.value, profiles)

    def get_teacher_profile(self) -> Dict[str, Any]:
        return self.get(DataKey.TEACHER_PROFILE.value)

    def set_teacher_profile(self, profile: Dict[str, Any]) -> None:
        self.set(DataKey.TEACHER_PROFILE.value, profile)

    def get_attendance(self) -> Dict[str, Dict[str, str]]:
        return self.get(DataKey.ATTENDANCE.value)

    def set_attendance(self, attendance: Dict[str, Dict[str, str]]) -> None:
        self.set(DataKey.ATTENDANCE.value, attendance)

    def get_assessment_config(self, class_name: str) -> Dict[str, Any]:
        """Assessment weights for a class, or the default weights when none are stored."""
        return self.get(
            assessment_config_key(class_name),
            copy.deepcopy(DEFAULT_ASSESSMENT_CONFIG),
        )

    def set_assessment_config(self, class_name: str, config: Dict[str, Any]) -> None:
        self.set(assessment_config_key(class_name), config)

    def mark_attendance(self, date: str, student_id: str, status: str) -> ServiceResult:
        """
        Record one student's attendance for a date.

        Args:
            date: ISO date, e.g. "2024-01-01"
            student_id: Student identifier
            status: "present", "absent" or "tardy"

        Returns:
            ServiceResult with the day's attendance map
        """
        def _mark():
            if status not in ATTENDANCE_STATUSES:
                raise RecordValidationError(
                    f"Unknown attendance status '{status}'",
                    record_type="attendance",
                    field="status",
                )
            if not student_id:
                raise RecordValidationError(
                    "A student id is required",
                    record_type="attendance",
                    field="student_id",
                )

            attendance = self.get_attendance()
            day = attendance.setdefault(date, {})
            day[student_id] = status
            self.set_attendance(attendance)
            return day

        return self.safe_execute(f"Marking attendance for {student_id}", _mark, log_level=logging.DEBUG)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def validate_student_profile(profile: Any) -> None:
        """Raises RecordValidationError unless id, firstName and lastName are set."""
        if not isinstance(profile, dict):
            raise RecordValidationError("Student profile must be an object", record_type="studentProfile")
        for field in STUDENT_REQUIRED_FIELDS:
            if not profile.get(field):
                raise RecordValidationError(
                    f"Student profile is missing '{field}'",
                    record_type="studentProfile",
                    field=field,
                )

    @staticmethod
    def validate_class_record(record: Any) -> None:
        """Raises RecordValidationError unless the record holds a students list."""
        if not isinstance(record, dict) or not isinstance(record.get("students"), list):
            raise RecordValidationError(
                "Class record must contain a 'students' list",
                record_type="classRecord",
                field="students",
            )

    @staticmethod
    def validate_teacher_profile(profile: Any) -> None:
        if not isinstance(profile, dict):
            raise RecordValidationError("Teacher profile must be an object", record_type="teacherProfile")

    def is_valid(self, record_type: str, data: Any) -> bool:
        """True when data passes the validator for record_type; unknown types pass."""
        validators = {
            "studentProfile": self.validate_student_profile,
            "classRecord": self.validate_class_record,
            "teacherProfile": self.validate_teacher_profile,
        }
        validator = validators.get(record_type)
        if validator is None:
            return True

        def _check():
            validator(data)
            return True

        return safe_execute(_check, default=False, error_message=f"Invalid {record_type}")

    # =========================================================================
    # BACKUP
    # =========================================================================

    def export_data(self) -> ServiceResult:
        """ServiceResult with {data_key: value} for every managed key held locally."""
        def _export():
            data = {}
            for storage_key in self.local.managed_keys():
                managed = parse_storage_key(storage_key)
                data[managed.data_key] = self.local.read(storage_key)
            return data

        return self.safe_execute("Exporting local data", _export)

    def import_data(self, data: Dict[str, Any]) -> ServiceResult:
        """
        Write each managed key of a backup; unknown keys are skipped.

        Returns:
            ServiceResult with imported and skipped key lists
        """
        def _import():
            imported, skipped = [], []
            for data_key, value in data.items():
                managed = parse_data_key(data_key)
                if managed is None:
                    skipped.append(data_key)
                    continue
                self.local.write(managed.storage_key, value)
                imported.append(data_key)
            if skipped:
                self.logger.warning(f"Import skipped unknown keys: {skipped}")
            return {"imported": imported, "skipped": skipped}

        return self.safe_execute("Importing local data", _import)

    def storage_stats(self) -> pd.DataFrame:
        """
        Stored size of each managed key.

        Returns:
            DataFrame with columns data_key, bytes, size (static keys always
            listed, assessment configs when present), plus a TOTAL row
        """
        data_keys = list(STATIC_DATA_KEYS)
        for storage_key in self.local.managed_keys():
            data_key = parse_storage_key(storage_key).data_key
            if data_key not in data_keys:
                data_keys.append(data_key)

        rows = []
        for data_key in data_keys:
            raw = self.local.get_item(storage_key_for(data_key))
            rows.append({"data_key": data_key, "bytes": len(raw.encode("utf-8")) if raw else 0})

        df = pd.DataFrame(rows, columns=["data_key", "bytes"])
        total = pd.DataFrame([{"data_key": "TOTAL", "bytes": int(df["bytes"].sum())}])
        df = pd.concat([df, total], ignore_index=True)
        df["size"] = df["bytes"].apply(format_bytes)
        return df

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def add_listener(self, data_key: str, callback: DataListener) -> None:
        """Call callback(value, data_key) whenever data_key is written locally."""
        callbacks = self._listeners.setdefault(data_key, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def remove_listener(self, data_key: str, callback: DataListener) -> None:
        callbacks = self._listeners.get(data_key, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _on_store_write(self, storage_key: str, raw: str) -> None:
        managed = parse_storage_key(storage_key)
        if managed is None or not self._listeners.get(managed.data_key):
            return
        self._notify_listeners(managed.data_key, self.local.read(storage_key))

    def _notify_listeners(self, data_key: str, value: Any) -> None:
        for callback in list(self._listeners.get(data_key, [])):
            try:
                callback(value, data_key)
            except Exception as e:
                self.logger.error(f"Error in data listener for {data_key}: {e}")


def format_bytes(num_bytes: int) -> str:
    """Human-readable byte count, e.g. 1536 -> '1.5 KB'."""
    if num_bytes == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
