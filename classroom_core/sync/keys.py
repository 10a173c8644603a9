# =============================================================================
# classroom_core/sync/keys.py
# Managed Storage Keys and Payload Encoding
# =============================================================================
"""
The fixed set of record sets that are persisted locally and mirrored to
the remote store.

Local storage keys carry the "schoolPlatform_" prefix; remote rows use the
bare data key:

    schoolPlatform_attendance              <->  attendance
    schoolPlatform_assessmentConfig_Math   <->  assessmentConfig_Math
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from classroom_core.errors import SerializationError

STORAGE_PREFIX = "schoolPlatform_"
# Local-only marker: the user whose record sets the local store holds
SYNC_OWNER_KEY = STORAGE_PREFIX + "syncOwner"
SUB_KEY_SEPARATOR = "_"


class DataKey(str, Enum):
    """Record set names."""
    CLASS_RECORDS = "classRecords"
    STUDENT_PROFILES = "studentProfiles"
    TEACHER_PROFILE = "teacherProfile"
    ATTENDANCE = "attendance"
    ASSESSMENT_CONFIG = "assessmentConfig"  # Parameterized by class name


STATIC_DATA_KEYS: Tuple[str, ...] = (
    DataKey.CLASS_RECORDS.value,
    DataKey.STUDENT_PROFILES.value,
    DataKey.TEACHER_PROFILE.value,
    DataKey.ATTENDANCE.value,
)

PARAMETERIZED_DATA_KEYS: Tuple[str, ...] = (
    DataKey.ASSESSMENT_CONFIG.value,
)

EMPTY_TEXT_PAYLOADS = ("", "{}", "[]", "null")


@dataclass(frozen=True)
class ManagedKey:
    """A recognized key, in both its local and remote spelling."""
    data_key: str
    storage_key: str
    base: str
    sub_key: Optional[str] = None


def assessment_config_key(class_name: str) -> str:
    """Data key holding the assessment weights of one class."""
    if not class_name:
        raise ValueError("class_name must be a non-empty string")
    return f"{DataKey.ASSESSMENT_CONFIG.value}{SUB_KEY_SEPARATOR}{class_name}"


def parse_data_key(data_key: str) -> Optional[ManagedKey]:
    """
    Resolve a remote data key against the enumeration.

    Returns:
        ManagedKey, or None when the key is not managed
    """
    if not isinstance(data_key, str):
        return None

    if data_key in STATIC_DATA_KEYS:
        return ManagedKey(data_key, STORAGE_PREFIX + data_key, data_key)

    for base in PARAMETERIZED_DATA_KEYS:
        prefix = base + SUB_KEY_SEPARATOR
        if data_key.startswith(prefix) and len(data_key) > len(prefix):
            return ManagedKey(
                data_key,
                STORAGE_PREFIX + data_key,
                base,
                sub_key=data_key[len(prefix):],
            )

    return None


def parse_storage_key(storage_key: str) -> Optional[ManagedKey]:
    """Resolve a local storage key; None for anything outside the enumeration."""
    if not isinstance(storage_key, str) or not storage_key.startswith(STORAGE_PREFIX):
        return None
    return parse_data_key(storage_key[len(STORAGE_PREFIX):])


def is_managed_data_key(data_key: str) -> bool:
    return parse_data_key(data_key) is not None


def storage_key_for(data_key: str) -> str:
    """Local storage key for a managed data key."""
    managed = parse_data_key(data_key)
    if managed is None:
        raise KeyError(f"Unmanaged data key: {data_key}")
    return managed.storage_key


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================

def is_empty_payload(value: Any) -> bool:
    """True for values that count as 'no data' when merging."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in EMPTY_TEXT_PAYLOADS
    if isinstance(value, (dict, list, tuple)):
        return len(value) == 0
    return False


def encode_payload(value: Any, key: Optional[str] = None) -> str:
    """Serialize a payload to JSON text."""
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Payload is not JSON-serializable: {e}", key=key)


def decode_payload(text: Optional[str], key: Optional[str] = None) -> Any:
    """Parse JSON text; None and blank text decode to None."""
    if text is None or (isinstance(text, str) and text.strip() == ""):
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Malformed JSON payload: {e}", key=key)
