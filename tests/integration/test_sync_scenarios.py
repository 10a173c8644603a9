# =============================================================================
# tests/integration/test_sync_scenarios.py
# Integration Tests for Local/Remote Sync (Write → Debounce → Push → Merge)
# =============================================================================

import asyncio

import pytest

from classroom_core.auth import SessionAuthGate
from classroom_core.config import SyncSettings
from classroom_core.services import ClassroomDataService
from classroom_core.sync import (
    InMemoryRemoteStore,
    LocalStore,
    SyncState,
    create_sync_service,
)


@pytest.fixture
def test_settings():
    """Settings for a fast, in-memory service"""
    return SyncSettings(
        debounce_seconds=0.05,
        full_sync_interval=0,
        db_path=":memory:",
    )


@pytest.fixture
def shared_remote():
    """One remote backend shared by several devices"""
    return InMemoryRemoteStore()


async def open_device(settings, remote, user_id="u1"):
    """A signed-in device: its own local store, the shared remote"""
    gate = SessionAuthGate({})
    gate.sign_in(user_id)
    return await create_sync_service(
        settings=settings,
        auth_gate=gate,
        local_store=LocalStore(":memory:"),
        remote_store=remote,
    )


class TestSyncScenarios:
    """
    End-to-end scenarios through the public wiring.

    Tests the flow:
    1. Local write through the store
    2. Interception and debounced push
    3. Startup merge on another session
    4. Real-time apply across devices
    """

    @pytest.mark.asyncio
    async def test_full_sync_publishes_new_profile(self, test_settings, shared_remote):
        """u1 with no remote data writes a profile; full sync makes it fetchable"""
        device = await open_device(test_settings, shared_remote)

        device.local_store.write("schoolPlatform_studentProfiles", {"name": "Alice"})
        await device.orchestrator.sync_all()

        result = await shared_remote.fetch_record_set("u1", "studentProfiles")
        assert result.success
        assert result.data.decode() == {"name": "Alice"}
        await device.shutdown()

    @pytest.mark.asyncio
    async def test_remote_attendance_adopted_on_start(self, test_settings, shared_remote, recorder):
        """Remote attendance fills an empty local store with one data-loaded event"""
        shared_remote.seed("u1", "attendance", {"2024-01-01": "present"})
        gate = SessionAuthGate({})
        gate.sign_in("u1")

        device = await create_sync_service(
            settings=test_settings,
            auth_gate=gate,
            local_store=LocalStore(":memory:"),
            remote_store=shared_remote,
            initialize=False,
        )
        device.orchestrator.register_data_loaded_callback(recorder)
        await device.orchestrator.initialize()

        assert device.local_store.read("schoolPlatform_attendance") == {"2024-01-01": "present"}
        recorder.assert_called_once_with()
        await device.shutdown()

    @pytest.mark.asyncio
    async def test_conflict_resolves_to_remote(self, test_settings, shared_remote):
        """Differing local and remote attendance resolve to the remote copy"""
        shared_remote.seed("u1", "attendance", {"a": "absent"})
        local = LocalStore(":memory:")
        local.write("schoolPlatform_attendance", {"a": "present"})
        gate = SessionAuthGate({})
        gate.sign_in("u1")

        device = await create_sync_service(
            settings=test_settings, auth_gate=gate, local_store=local, remote_store=shared_remote
        )

        assert local.read("schoolPlatform_attendance") == {"a": "absent"}
        await device.shutdown()

    @pytest.mark.asyncio
    async def test_rapid_marks_coalesce_into_one_push(self, test_settings, shared_remote):
        """Ticking several attendance boxes sends one push"""
        device = await open_device(test_settings, shared_remote)
        data = ClassroomDataService(device.local_store)

        for student in ("s1", "s2", "s3"):
            data.mark_attendance("2024-01-01", student, "present")
        await asyncio.sleep(0.15)
        await device.orchestrator.flush()

        attendance_pushes = [e for e in shared_remote.upsert_calls if e.data_key == "attendance"]
        assert len(attendance_pushes) == 1
        assert attendance_pushes[0].decode() == {
            "2024-01-01": {"s1": "present", "s2": "present", "s3": "present"}
        }
        await device.shutdown()

    @pytest.mark.asyncio
    async def test_edit_reaches_second_device(self, test_settings, shared_remote, recorder):
        """A push from one device is applied live on another"""
        laptop = await open_device(test_settings, shared_remote)
        tablet = await open_device(test_settings, shared_remote)
        tablet.orchestrator.register_data_loaded_callback(recorder)

        ClassroomDataService(laptop.local_store).set_teacher_profile({"name": "Ms. Rivera"})
        await laptop.orchestrator.flush()

        assert tablet.local_store.read("schoolPlatform_teacherProfile") == {"name": "Ms. Rivera"}
        recorder.assert_called_once_with()
        # The tablet applied a remote value; it must not push it back
        assert [e.data_key for e in shared_remote.upsert_calls] == ["teacherProfile"]

        await laptop.shutdown()
        await tablet.shutdown()

    @pytest.mark.asyncio
    async def test_offline_edits_survive_and_sync_later(self, test_settings, shared_remote):
        """Edits made while the remote is down stay local and go out on the next full sync"""
        device = await open_device(test_settings, shared_remote)
        shared_remote.available = False

        device.local_store.write("schoolPlatform_classRecords", {"Math": {"students": ["s1"]}})
        await asyncio.sleep(0.15)
        await device.orchestrator.flush()
        assert shared_remote.value("u1", "classRecords") is None
        assert device.local_store.read("schoolPlatform_classRecords") == {"Math": {"students": ["s1"]}}

        shared_remote.available = True
        stats = await device.orchestrator.sync_all()

        assert stats["pushed"] == 1
        assert shared_remote.value("u1", "classRecords") == {"Math": {"students": ["s1"]}}
        await device.shutdown()

    @pytest.mark.asyncio
    async def test_sign_out_then_next_user(self, test_settings, shared_remote):
        """A shared device does not leak one teacher's data to the next"""
        shared_remote.seed("u2", "teacherProfile", {"name": "Mr. Chen"})
        gate = SessionAuthGate({})
        gate.sign_in("u1")
        device = await create_sync_service(
            settings=test_settings,
            auth_gate=gate,
            local_store=LocalStore(":memory:"),
            remote_store=shared_remote,
        )
        device.local_store.write("schoolPlatform_teacherProfile", {"name": "Ms. Rivera"})
        await device.orchestrator.flush()

        gate.sign_out()
        assert device.local_store.read("schoolPlatform_teacherProfile") == {}
        assert device.orchestrator.state is SyncState.DISABLED

        gate.sign_in("u2")
        await asyncio.sleep(0.05)

        assert device.orchestrator.state is SyncState.ENABLED
        assert device.local_store.read("schoolPlatform_teacherProfile") == {"name": "Mr. Chen"}
        assert shared_remote.value("u1", "teacherProfile") == {"name": "Ms. Rivera"}
        await device.shutdown()

    @pytest.mark.asyncio
    async def test_backup_and_restore(self, test_settings, shared_remote):
        """export_remote output restores through import_remote"""
        device = await open_device(test_settings, shared_remote)
        data = ClassroomDataService(device.local_store)
        data.set_class_records({"Math": {"students": ["s1"]}})
        data.set_assessment_config("Math", {"Exam": {"weight": 100}})
        await device.orchestrator.flush()

        backup = await device.orchestrator.export_remote()
        cleared = await device.orchestrator.clear_all_data()
        assert cleared.success
        assert shared_remote.rows == {}

        restored = await device.orchestrator.import_remote(backup.data)

        assert restored.success
        assert shared_remote.value("u1", "assessmentConfig_Math") == {"Exam": {"weight": 100}}
        await device.shutdown()


class TestLocalOnlyMode:
    """The app keeps working with no remote at all"""

    @pytest.mark.asyncio
    async def test_missing_credentials_runs_local_only(self, test_settings):
        """Without Supabase settings the service is DISABLED but fully usable"""
        gate = SessionAuthGate({})
        gate.sign_in("u1")

        device = await create_sync_service(
            settings=test_settings,
            auth_gate=gate,
            local_store=LocalStore(":memory:"),
        )
        data = ClassroomDataService(device.local_store)
        result = data.mark_attendance("2024-01-01", "s1", "absent")

        assert device.orchestrator.state is SyncState.DISABLED
        assert result.success
        assert data.get_attendance() == {"2024-01-01": {"s1": "absent"}}
        await device.shutdown()
