# =============================================================================
# tests/unit/test_keys.py
# Unit Tests for Managed Keys and Payload Encoding
# =============================================================================

import pytest

from classroom_core.errors import SerializationError
from classroom_core.sync.keys import (
    STATIC_DATA_KEYS,
    DataKey,
    assessment_config_key,
    decode_payload,
    encode_payload,
    is_empty_payload,
    is_managed_data_key,
    parse_data_key,
    parse_storage_key,
    storage_key_for,
)


class TestKeyEnumeration:
    """Test recognition of managed keys"""

    def test_static_keys_are_managed(self):
        """Every static key maps to a prefixed storage key"""
        for data_key in STATIC_DATA_KEYS:
            assert is_managed_data_key(data_key)
            assert storage_key_for(data_key) == f"schoolPlatform_{data_key}"

    def test_assessment_config_carries_class_name(self):
        """Assessment configs are parameterized by class name"""
        managed = parse_storage_key("schoolPlatform_assessmentConfig_Math 101")

        assert managed is not None
        assert managed.data_key == "assessmentConfig_Math 101"
        assert managed.base == DataKey.ASSESSMENT_CONFIG.value
        assert managed.sub_key == "Math 101"

    def test_bare_assessment_config_is_not_managed(self):
        """The parameterized base alone is not a record set"""
        assert not is_managed_data_key("assessmentConfig")
        assert not is_managed_data_key("assessmentConfig_")

    @pytest.mark.parametrize("storage_key", [
        "schoolPlatform_settings",
        "schoolPlatform_userSession",
        "classRecords",
        "otherApp_attendance",
    ])
    def test_unrecognized_keys_are_ignored(self, storage_key):
        """Keys outside the enumeration never resolve"""
        assert parse_storage_key(storage_key) is None

    def test_storage_key_for_unknown_key_raises(self):
        """Asking for the storage key of an unmanaged key is a programming error"""
        with pytest.raises(KeyError):
            storage_key_for("settings")

    def test_assessment_config_key_requires_name(self):
        """A class name is required"""
        assert assessment_config_key("Math") == "assessmentConfig_Math"
        with pytest.raises(ValueError):
            assessment_config_key("")

    def test_parse_data_key_rejects_non_strings(self):
        """Non-string keys are not managed"""
        assert parse_data_key(None) is None
        assert parse_data_key(42) is None


class TestEmptyPayloads:
    """Test the 'no data' rule used by the merge"""

    @pytest.mark.parametrize("value", [None, {}, [], "", "{}", "[]", "null", "  {} "])
    def test_empty_values(self, value):
        """Empty containers and their text forms count as no data"""
        assert is_empty_payload(value)

    @pytest.mark.parametrize("value", [{"a": 1}, [0], "x", 0, False])
    def test_non_empty_values(self, value):
        """Anything else is data"""
        assert not is_empty_payload(value)


class TestPayloadEncoding:
    """Test JSON encoding"""

    def test_unicode_is_kept(self):
        """Names are stored as written"""
        assert encode_payload({"name": "Zoë"}) == '{"name": "Zoë"}'

    def test_unserializable_payload_raises(self):
        """Objects JSON cannot represent raise SerializationError"""
        with pytest.raises(SerializationError) as exc_info:
            encode_payload({"when": object()}, key="attendance")

        assert exc_info.value.code == "SYNC_002"
        assert exc_info.value.details["key"] == "attendance"

    def test_nan_is_rejected(self):
        """NaN is not valid JSON"""
        with pytest.raises(SerializationError):
            encode_payload({"score": float("nan")})

    def test_decode_blank_is_none(self):
        """Missing and blank text decode to None"""
        assert decode_payload(None) is None
        assert decode_payload("   ") is None

    def test_decode_malformed_raises(self):
        """Malformed JSON raises SerializationError"""
        with pytest.raises(SerializationError):
            decode_payload("{not json", key="classRecords")
