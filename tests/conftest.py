# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from classroom_core.auth import SessionAuthGate
from classroom_core.services.base_service import ServiceResult
from classroom_core.sync.interceptor import StorageInterceptor
from classroom_core.sync.local_store import LocalStore
from classroom_core.sync.remote_store import InMemoryRemoteStore
from classroom_core.sync.sync_engine import SyncOrchestrator


TEST_DEBOUNCE = 0.05
OWNER = "u1"


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_attendance():
    """Attendance for two days"""
    return {
        "2024-01-01": {"s1": "present", "s2": "absent"},
        "2024-01-02": {"s1": "tardy", "s2": "present"},
    }


@pytest.fixture
def sample_student_profiles():
    """Two valid student profiles keyed by id"""
    return {
        "s1": {"id": "s1", "firstName": "Alice", "lastName": "Ng"},
        "s2": {"id": "s2", "firstName": "Ben", "lastName": "Okafor"},
    }


@pytest.fixture
def sample_class_records():
    """Class records keyed by class name"""
    return {
        "Math": {"students": ["s1", "s2"], "grades": {}},
        "Science": {"students": ["s2"], "grades": {}},
    }


# =============================================================================
# SYNC COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def local_store():
    """Throwaway in-memory SQLite store"""
    store = LocalStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def remote_store():
    """In-memory remote backend"""
    return InMemoryRemoteStore()


@pytest.fixture
def session_state():
    """Plain dict standing in for st.session_state"""
    return {}


@pytest.fixture
def auth_gate(session_state):
    """Auth gate with u1 already signed in"""
    gate = SessionAuthGate(session_state)
    gate.sign_in(OWNER, "u1@school.org")
    return gate


@pytest.fixture
def signed_out_gate(session_state):
    """Auth gate with nobody signed in"""
    return SessionAuthGate(session_state)


@pytest.fixture
def orchestrator(local_store, remote_store, auth_gate):
    """Orchestrator with a short debounce and no periodic sync"""
    return SyncOrchestrator(
        local_store,
        remote_store,
        auth_gate,
        debounce_seconds=TEST_DEBOUNCE,
        full_sync_interval=0,
    )


@pytest.fixture
def interceptor(local_store, orchestrator):
    """Interceptor attached to the local store"""
    shim = StorageInterceptor(local_store, orchestrator)
    shim.attach()
    yield shim
    shim.detach()


@pytest.fixture
def recorder():
    """Callable that records every call it receives"""
    return MagicMock()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    import sys

    # Create mock streamlit module
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.secrets = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    monkeypatch.setitem(sys.modules, "streamlit", mock_st)

    # Modules that imported streamlit at load time
    for module in (
        "classroom_core.errors.handlers",
        "classroom_core.ui.sync_status",
        "classroom_core.auth.auth_gate",
        "classroom_core.config",
    ):
        monkeypatch.setattr(f"{module}.st", mock_st)

    yield mock_st


@pytest.fixture
def mock_supabase():
    """Mock async Supabase client"""
    mock_client = MagicMock()
    query = mock_client.table.return_value
    for method in ("select", "eq", "limit", "upsert", "delete"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=MagicMock(data=[]))
    return mock_client


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

@pytest.fixture
def settle():
    """Let debounce timers fire, then wait for every push to settle"""
    async def _settle(orchestrator, extra: float = 0.0):
        await asyncio.sleep(orchestrator.debounce_seconds * 2 + extra)
        await orchestrator.flush()
    return _settle


@pytest.fixture
def failed_result():
    """A failed ServiceResult as a remote store would return it"""
    return ServiceResult.fail("remote down", "SYNC_001")
