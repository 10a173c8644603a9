# =============================================================================
# tests/unit/test_remote_store.py
# Unit Tests for the Remote Record-Set Stores
# =============================================================================

import pytest
from unittest.mock import AsyncMock, MagicMock

from classroom_core.sync.remote_store import (
    ChangeEvent,
    InMemoryRemoteStore,
    SupabaseRemoteStore,
    SyncEnvelope,
    parse_postgres_change,
)


class TestSyncEnvelope:
    """Test the wire representation"""

    def test_row_round_trip(self):
        """to_row/from_row use the user_data column names"""
        envelope = SyncEnvelope.build("u1", "attendance", {"2024-01-01": {"s1": "present"}})
        row = envelope.to_row()

        assert set(row) == {"user_id", "data_key", "data_value", "updated_at"}
        assert SyncEnvelope.from_row(row) == envelope
        assert envelope.decode() == {"2024-01-01": {"s1": "present"}}

    def test_build_stamps_updated_at(self):
        """updated_at is an ISO-8601 UTC timestamp"""
        envelope = SyncEnvelope.build("u1", "attendance", {})

        assert envelope.updated_at.endswith("+00:00")


class TestInMemoryRemoteStore:
    """Test the in-memory backend through the public operations"""

    @pytest.mark.asyncio
    async def test_upsert_keeps_one_row_per_key(self, remote_store):
        """Upserting twice replaces the row"""
        await remote_store.upsert_record_set("u1", "attendance", {"a": "present"})
        result = await remote_store.upsert_record_set("u1", "attendance", {"a": "absent"})

        assert result.success
        assert len(remote_store.rows) == 1
        assert remote_store.value("u1", "attendance") == {"a": "absent"}

    @pytest.mark.asyncio
    async def test_fetch_record_set_not_found(self, remote_store):
        """A missing row is a success with no data"""
        result = await remote_store.fetch_record_set("u1", "attendance")

        assert result.success
        assert result.data is None

    @pytest.mark.asyncio
    async def test_fetch_all_is_scoped_to_owner(self, remote_store):
        """Rows of other owners are never returned"""
        remote_store.seed("u1", "attendance", {"a": 1})
        remote_store.seed("u1", "teacherProfile", {"name": "Rivera"})
        remote_store.seed("u2", "attendance", {"b": 2})

        result = await remote_store.fetch_all_record_sets("u1")

        assert result.success
        assert sorted(e.data_key for e in result.data) == ["attendance", "teacherProfile"]

    @pytest.mark.asyncio
    async def test_delete_all_returns_count(self, remote_store):
        """delete_all_record_sets removes only the owner's rows"""
        remote_store.seed("u1", "attendance", {"a": 1})
        remote_store.seed("u1", "classRecords", {"Math": {}})
        remote_store.seed("u2", "attendance", {"b": 2})

        result = await remote_store.delete_all_record_sets("u1")

        assert result.success
        assert result.data == 2
        assert list(remote_store.rows) == [("u2", "attendance")]

    @pytest.mark.asyncio
    async def test_missing_owner_is_typed_failure(self, remote_store):
        """Operations without an owner fail with AUTH_001"""
        result = await remote_store.upsert_record_set(None, "attendance", {"a": 1})

        assert not result.success
        assert result.error_code == "AUTH_001"
        assert remote_store.upsert_calls == []

    @pytest.mark.asyncio
    async def test_unavailable_backend_is_typed_failure(self, remote_store):
        """Network failures come back as SYNC_001"""
        remote_store.available = False

        result = await remote_store.fetch_all_record_sets("u1")

        assert not result.success
        assert result.error_code == "SYNC_001"

    @pytest.mark.asyncio
    async def test_unserializable_payload_is_typed_failure(self, remote_store):
        """Payloads JSON cannot represent fail with SYNC_002"""
        result = await remote_store.upsert_record_set("u1", "attendance", {"a": object()})

        assert not result.success
        assert result.error_code == "SYNC_002"
        assert remote_store.rows == {}

    @pytest.mark.asyncio
    async def test_subscribers_receive_owner_changes(self, remote_store, recorder):
        """Subscribers hear about their owner's rows only"""
        result = await remote_store.subscribe_to_changes("u1", recorder)
        subscription = result.data

        remote_store.simulate_external_write("u1", "attendance", {"a": 1})
        remote_store.simulate_external_write("u2", "attendance", {"b": 2})

        recorder.assert_called_once()
        change = recorder.call_args[0][0]
        assert change.event is ChangeEvent.INSERT
        assert change.data_key == "attendance"

        await subscription.close()
        await subscription.close()
        assert remote_store.subscriber_count == 0


class TestSupabaseRemoteStore:
    """Test the Supabase backend against a mocked async client"""

    @pytest.mark.asyncio
    async def test_initialize_without_credentials_fails(self):
        """Missing URL/key is a configuration failure"""
        store = SupabaseRemoteStore()

        result = await store.initialize()

        assert not result.success
        assert result.error_code == "CONFIG_001"
        assert not store.is_initialized

    @pytest.mark.asyncio
    async def test_upsert_uses_conflict_target(self, mock_supabase):
        """Upserts target the (user_id, data_key) constraint"""
        store = SupabaseRemoteStore(client=mock_supabase)

        result = await store.upsert_record_set("u1", "attendance", {"a": "present"})

        assert result.success
        query = mock_supabase.table.return_value
        row = query.upsert.call_args[0][0]
        assert row["user_id"] == "u1"
        assert row["data_key"] == "attendance"
        assert row["data_value"] == '{"a": "present"}'
        assert query.upsert.call_args[1] == {"on_conflict": "user_id,data_key"}

    @pytest.mark.asyncio
    async def test_fetch_record_set_reads_first_row(self, mock_supabase):
        """fetch_record_set decodes the first returned row"""
        query = mock_supabase.table.return_value
        query.execute.return_value = MagicMock(data=[{
            "user_id": "u1",
            "data_key": "studentProfiles",
            "data_value": '{"name": "Alice"}',
            "updated_at": "2024-01-01T00:00:00+00:00",
        }])
        store = SupabaseRemoteStore(client=mock_supabase)

        result = await store.fetch_record_set("u1", "studentProfiles")

        assert result.success
        assert result.data.decode() == {"name": "Alice"}

    @pytest.mark.asyncio
    async def test_network_error_is_typed_failure(self, mock_supabase):
        """Client exceptions are wrapped as RemoteUnavailableError results"""
        query = mock_supabase.table.return_value
        query.execute.side_effect = ConnectionError("connection reset")
        store = SupabaseRemoteStore(client=mock_supabase)

        result = await store.upsert_record_set("u1", "attendance", {"a": 1})

        assert not result.success
        assert result.error_code == "SYNC_001"
        assert "connection reset" in result.error

    @pytest.mark.asyncio
    async def test_subscribe_filters_by_owner(self, mock_supabase, recorder):
        """The realtime channel is filtered to the owner's rows"""
        channel = MagicMock()
        channel.subscribe = AsyncMock()
        mock_supabase.channel.return_value = channel
        mock_supabase.remove_channel = AsyncMock()
        store = SupabaseRemoteStore(client=mock_supabase)

        result = await store.subscribe_to_changes("u1", recorder)

        assert result.success
        kwargs = channel.on_postgres_changes.call_args[1]
        assert kwargs["filter"] == "user_id=eq.u1"
        assert kwargs["table"] == "user_data"

        # Realtime payloads are translated before reaching the callback
        kwargs["callback"]({"data": {
            "type": "UPDATE",
            "record": {"user_id": "u1", "data_key": "attendance", "data_value": "{}"},
        }})
        assert recorder.call_args[0][0].event is ChangeEvent.UPDATE

        await result.data.close()
        mock_supabase.remove_channel.assert_awaited_once_with(channel)


class TestParsePostgresChange:
    """Test realtime payload parsing"""

    def test_nested_insert(self):
        """The nested 'data' shape is understood"""
        change = parse_postgres_change({"data": {
            "type": "INSERT",
            "record": {"user_id": "u1", "data_key": "attendance", "data_value": '{"a": 1}'},
        }})

        assert change.event is ChangeEvent.INSERT
        assert change.owner_id == "u1"
        assert change.envelope.decode() == {"a": 1}

    def test_flat_delete_uses_old_row(self):
        """DELETE events identify the row from the old record"""
        change = parse_postgres_change({
            "eventType": "DELETE",
            "new": {},
            "old": {"user_id": "u1", "data_key": "classRecords"},
        })

        assert change.event is ChangeEvent.DELETE
        assert change.data_key == "classRecords"
        assert change.envelope is None

    @pytest.mark.parametrize("payload", [
        {},
        {"data": {"type": "TRUNCATE", "record": {}}},
        {"eventType": "UPDATE", "new": {"data_key": "attendance"}},
        "not a dict",
    ])
    def test_unusable_payloads_are_ignored(self, payload):
        """Unknown events and rows without owner/key yield None"""
        assert parse_postgres_change(payload) is None
