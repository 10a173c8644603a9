# =============================================================================
# classroom_core/sync/factory.py
# Sync Service Wiring
# =============================================================================
"""
Builds the local store, remote store, orchestrator and interceptor and
connects them.

Usage:
    service = await create_sync_service()
    service.local_store.write("schoolPlatform_attendance", {...})
    ...
    await service.shutdown()
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import AsyncClient, acreate_client

from classroom_core.auth import AuthGate, SessionAuthGate, SupabaseAuthGate
from classroom_core.config import SyncSettings, load_settings
from classroom_core.logging import get_logger, setup_logging
from classroom_core.sync.interceptor import StorageInterceptor
from classroom_core.sync.local_store import LocalStore
from classroom_core.sync.remote_store import RemoteStore, SupabaseRemoteStore
from classroom_core.sync.sync_engine import SyncOrchestrator

logger = get_logger(__name__)


@dataclass
class SyncService:
    """The wired-up sync components."""
    settings: SyncSettings
    local_store: LocalStore
    remote_store: RemoteStore
    auth_gate: AuthGate
    orchestrator: SyncOrchestrator
    interceptor: StorageInterceptor
    owns_auth_gate: bool = False

    async def shutdown(self) -> None:
        """Flush pending pushes, detach the interceptor and close the local store."""
        await self.orchestrator.shutdown()
        self.interceptor.detach()
        if self.owns_auth_gate and isinstance(self.auth_gate, SupabaseAuthGate):
            self.auth_gate.stop()
        self.local_store.close()


async def _create_supabase_client(settings: SyncSettings) -> Optional[AsyncClient]:
    """One client for auth and table access, so queries carry the user's session."""
    try:
        return await acreate_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.warning(f"Could not create Supabase client, running local-only: {e}")
        return None


async def create_sync_service(
    settings: Optional[SyncSettings] = None,
    auth_gate: Optional[AuthGate] = None,
    local_store: Optional[LocalStore] = None,
    remote_store: Optional[RemoteStore] = None,
    initialize: bool = True,
    configure_logging: bool = True,
) -> SyncService:
    """
    Create and (optionally) initialize a SyncService.

    When Supabase is configured, the default remote store and the default
    auth gate share one Supabase client, and the gate is started (persisted
    session loaded) before the orchestrator initializes.

    Args:
        settings: Defaults to load_settings()
        auth_gate: Defaults to a SupabaseAuthGate on the shared client, or
            a SessionAuthGate over st.session_state when Supabase is not
            configured
        local_store: Defaults to a SQLite store at settings.db_path
        remote_store: Defaults to a SupabaseRemoteStore from settings
        initialize: Run the orchestrator's initialize() before returning
        configure_logging: Apply settings.log_level / log_to_file first

    Returns:
        SyncService; its orchestrator is ENABLED or DISABLED when
        initialize is True
    """
    settings = settings or load_settings()
    if configure_logging:
        setup_logging(
            level=logging.getLevelName(settings.log_level),
            log_to_file=settings.log_to_file,
        )

    client = None
    if settings.remote_configured and (remote_store is None or auth_gate is None):
        client = await _create_supabase_client(settings)

    owns_auth_gate = auth_gate is None
    if auth_gate is None:
        if client is not None:
            auth_gate = SupabaseAuthGate(client)
            await auth_gate.start()
        else:
            auth_gate = SessionAuthGate()

    local_store = local_store or LocalStore(settings.db_path)
    remote_store = remote_store or SupabaseRemoteStore(
        url=settings.supabase_url,
        key=settings.supabase_key,
        table_name=settings.table_name,
        client=client,
    )

    orchestrator = SyncOrchestrator(
        local_store,
        remote_store,
        auth_gate,
        debounce_seconds=settings.debounce_seconds,
        full_sync_interval=settings.full_sync_interval,
    )
    interceptor = StorageInterceptor(local_store, orchestrator)
    interceptor.attach()

    service = SyncService(
        settings=settings,
        local_store=local_store,
        remote_store=remote_store,
        auth_gate=auth_gate,
        orchestrator=orchestrator,
        interceptor=interceptor,
        owns_auth_gate=owns_auth_gate,
    )

    if initialize:
        enabled = await orchestrator.initialize()
        logger.info(f"Sync service ready ({'synced' if enabled else 'local-only'})")

    return service
