# =============================================================================
# classroom_core/sync/__init__.py
# Local/Remote Synchronization Layer
# =============================================================================

from .keys import (
    STORAGE_PREFIX,
    SYNC_OWNER_KEY,
    STATIC_DATA_KEYS,
    DataKey,
    ManagedKey,
    assessment_config_key,
    is_empty_payload,
    is_managed_data_key,
    parse_storage_key,
    storage_key_for,
)
from .local_store import LocalStore
from .remote_store import (
    ChangeEvent,
    InMemoryRemoteStore,
    RemoteChange,
    RemoteStore,
    Subscription,
    SupabaseRemoteStore,
    SyncEnvelope,
)
from .sync_engine import (
    KeyPushEntry,
    MergeOutcome,
    PushState,
    SyncOrchestrator,
    SyncSession,
    SyncState,
)
from .interceptor import StorageInterceptor
from .factory import SyncService, create_sync_service

__all__ = [
    # Keys
    "STORAGE_PREFIX",
    "SYNC_OWNER_KEY",
    "STATIC_DATA_KEYS",
    "DataKey",
    "ManagedKey",
    "assessment_config_key",
    "is_empty_payload",
    "is_managed_data_key",
    "parse_storage_key",
    "storage_key_for",
    # Stores
    "LocalStore",
    "RemoteStore",
    "SupabaseRemoteStore",
    "InMemoryRemoteStore",
    "SyncEnvelope",
    "RemoteChange",
    "ChangeEvent",
    "Subscription",
    # Orchestration
    "SyncOrchestrator",
    "SyncSession",
    "SyncState",
    "PushState",
    "KeyPushEntry",
    "MergeOutcome",
    "StorageInterceptor",
    "SyncService",
    "create_sync_service",
]
