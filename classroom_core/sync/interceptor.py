# =============================================================================
# classroom_core/sync/interceptor.py
# Local Write Interception
# =============================================================================
"""
StorageInterceptor - turns local writes of managed keys into scheduled pushes.

Application code keeps calling LocalStore.write / set_item exactly as
before; once attached, every completed write of a "schoolPlatform_*" key
is handed to the orchestrator. Writes of any other key pass through
untouched.
"""

from __future__ import annotations
from typing import Optional

from classroom_core.errors import SerializationError
from classroom_core.logging import get_logger
from classroom_core.sync.keys import decode_payload, parse_storage_key
from classroom_core.sync.local_store import LocalStore
from classroom_core.sync.sync_engine import SyncOrchestrator

logger = get_logger(__name__)


class StorageInterceptor:
    """Post-write hook linking a LocalStore to a SyncOrchestrator."""

    def __init__(self, local_store: LocalStore, orchestrator: SyncOrchestrator):
        self.local = local_store
        self.orchestrator = orchestrator
        self._attached = False

    @property
    def is_attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        if not self._attached:
            self.local.add_write_hook(self._on_write)
            self._attached = True
            logger.debug("Storage interceptor attached")

    def detach(self) -> None:
        if self._attached:
            self.local.remove_write_hook(self._on_write)
            self._attached = False
            logger.debug("Storage interceptor detached")

    def _on_write(self, storage_key: str, raw: str) -> Optional[bool]:
        managed = parse_storage_key(storage_key)
        if managed is None:
            return None

        try:
            payload = decode_payload(raw, key=managed.data_key)
        except SerializationError as e:
            # Legacy set_item callers may store non-JSON text; keep it local
            logger.warning(f"Not syncing {storage_key}: {e}")
            return False

        if managed.sub_key:
            logger.debug(f"Local write of {managed.base} for '{managed.sub_key}'")
        return self.orchestrator.schedule_push(managed.data_key, payload)
