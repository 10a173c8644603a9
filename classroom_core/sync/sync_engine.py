# =============================================================================
# classroom_core/sync/sync_engine.py
# Local/Remote Synchronization Engine
# =============================================================================
"""
SyncOrchestrator - keeps the local store and the remote record sets in step.

Features:
- Startup merge (remote wins when both sides hold data)
- Per-key trailing-edge debounced pushes, serialized per key
- Real-time apply of remote changes with an echo guard
- Periodic full sync as a safety net
- Auth-driven enable/disable, clearing local data on sign-out

Lifecycle:
    UNINITIALIZED -> INITIALIZING -> ENABLED | DISABLED

Per-key push lifecycle:
    IDLE -> SCHEDULED -> IN_FLIGHT -> IDLE
                 ^            |
                 +------------+  (write arrived during flight)

Every remote failure is logged and leaves local data untouched.
"""

from __future__ import annotations
import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from classroom_core.auth import AuthEvent, AuthEventKind, AuthGate
from classroom_core.errors import NotAuthenticatedError, SerializationError
from classroom_core.logging import LogContext, get_logger
from classroom_core.services.base_service import ServiceResult
from classroom_core.sync.keys import (
    STATIC_DATA_KEYS,
    SYNC_OWNER_KEY,
    DataKey,
    assessment_config_key,
    is_empty_payload,
    is_managed_data_key,
    parse_data_key,
    parse_storage_key,
    storage_key_for,
)
from classroom_core.sync.local_store import LocalStore
from classroom_core.sync.remote_store import (
    ChangeEvent,
    RemoteChange,
    RemoteStore,
    Subscription,
)

logger = get_logger(__name__)


class SyncState(Enum):
    """Orchestrator lifecycle states."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ENABLED = "enabled"
    DISABLED = "disabled"


class PushState(Enum):
    """Per-key push states."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in_flight"


class MergeOutcome(Enum):
    """What the startup merge did for one key."""
    NOOP = "noop"               # Neither side has data
    ADOPTED = "adopted"         # Remote copied into local
    PUSHED = "pushed"           # Local copied to remote
    UNCHANGED = "unchanged"     # Already equal, or a local push is pending
    FAILED = "failed"


@dataclass
class KeyPushEntry:
    """Debounce/in-flight bookkeeping for one data key."""
    state: PushState = PushState.IDLE
    payload: Any = None
    has_pending: bool = False
    timer: Optional[asyncio.TimerHandle] = None
    task: Optional[asyncio.Task] = None


@dataclass
class SyncSession:
    """Process-wide sync state."""
    state: SyncState = SyncState.UNINITIALIZED
    owner_id: Optional[str] = None
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    total_pushed: int = 0
    failed_count: int = 0

    @property
    def enabled(self) -> bool:
        return self.state is SyncState.ENABLED


class SyncOrchestrator:
    """
    Coordinates the local store, the remote store and the auth gate.

    Usage:
        orchestrator = SyncOrchestrator(local_store, remote_store, auth_gate)
        await orchestrator.initialize()    # merge + subscribe + periodic sync
        ...
        await orchestrator.shutdown()      # flush pending pushes
    """

    DEBOUNCE_SECONDS = 1.0      # Quiet period before a key is pushed
    FULL_SYNC_INTERVAL = 300    # Seconds between safety-net full syncs

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: RemoteStore,
        auth_gate: AuthGate,
        debounce_seconds: Optional[float] = None,
        full_sync_interval: Optional[float] = None,
    ):
        self.local = local_store
        self.remote = remote_store
        self.auth_gate = auth_gate
        self.debounce_seconds = self.DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.full_sync_interval = self.FULL_SYNC_INTERVAL if full_sync_interval is None else full_sync_interval

        self.session = SyncSession()
        self._entries: Dict[str, KeyPushEntry] = {}
        self._applying_remote: Set[str] = set()
        self._subscription: Optional[Subscription] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._periodic_task: Optional[asyncio.Task] = None
        self._stop_periodic: Optional[asyncio.Event] = None
        self._background: Set[asyncio.Task] = set()
        self._handoffs: Set[asyncio.Task] = set()
        self._generation = 0
        self._status_callbacks: List[Callable[[SyncSession], None]] = []
        self._data_loaded_callbacks: List[Callable[[], None]] = []

        self.auth_gate.add_listener(self._on_auth_event)
        self.auth_gate.add_sign_out_hook(self.flush)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self.session.state

    @property
    def is_enabled(self) -> bool:
        return self.session.enabled

    def push_state(self, data_key: str) -> PushState:
        entry = self._entries.get(data_key)
        return entry.state if entry else PushState.IDLE

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(self) -> bool:
        """
        (Re)start sync for the current user.

        Edits still waiting for a previous owner are pushed to that owner;
        local record sets cached for a different user are cleared before
        the merge.

        Returns:
            True if sync ended up ENABLED
        """
        if self.session.state is SyncState.INITIALIZING:
            logger.debug("Initialization already in progress")
            return False

        self._loop = asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation
        self._set_state(SyncState.INITIALIZING)
        await self._stop_remote_activity()

        owner_id = self.auth_gate.get_current_user_id()
        if not owner_id:
            logger.info("No authenticated user, using local storage only")
            self._fall_back_to_local()
            return False

        result = await self.remote.initialize()
        if generation != self._generation:
            return False
        if not result:
            logger.warning(f"Remote store unavailable ({result.error}), using local storage only")
            self._fall_back_to_local()
            return False

        # Sign-ins while INITIALIZING are not re-dispatched; pick them up here
        current_id = self.auth_gate.get_current_user_id()
        if current_id != owner_id:
            logger.info(f"Signed-in user changed while connecting ({owner_id} -> {current_id})")
            owner_id = current_id
            if not owner_id:
                self._fall_back_to_local()
                return False

        self._claim_local_data(owner_id)
        self.session.owner_id = owner_id
        self._set_state(SyncState.ENABLED)
        logger.info(f"Sync enabled for {owner_id}")

        await self.load_and_merge()
        if generation != self._generation or not self.is_enabled:
            return False

        subscription = await self._subscribe(owner_id)
        if generation != self._generation:
            if subscription is not None:
                if self._subscription is subscription:
                    self._subscription = None
                await subscription.close()
            return False
        self._start_periodic_sync()
        return self.is_enabled

    def _fall_back_to_local(self) -> None:
        self.session.owner_id = None
        self._set_state(SyncState.DISABLED)

    def _claim_local_data(self, owner_id: str) -> None:
        """Drop record sets cached for another user before owner_id's merge."""
        previous_id = self.local.get_item(SYNC_OWNER_KEY)
        if previous_id == owner_id:
            return
        if previous_id is not None:
            logger.info(f"Local data belongs to {previous_id}, clearing it for {owner_id}")
            self.local.clear_managed()
        self.local.set_item(SYNC_OWNER_KEY, owner_id)

    def disable(self, clear_local: bool = False) -> None:
        """
        Stop syncing. In-flight pushes run to completion, and edits still
        inside their debounce window are pushed for the departing owner.

        Args:
            clear_local: Also remove every managed key from the local store
        """
        self._generation += 1
        owner_id = self.session.owner_id
        self._set_state(SyncState.DISABLED)
        self._hand_off_pending(owner_id)
        self._stop_periodic_sync()
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            self._spawn(subscription.close())
        self.session.owner_id = None

        if clear_local:
            self.local.clear_managed()
            self.local.remove(SYNC_OWNER_KEY)
        logger.info("Sync disabled")

    async def shutdown(self) -> None:
        """Push everything pending and release background work."""
        await self.flush()
        await self._stop_remote_activity()
        self.auth_gate.remove_listener(self._on_auth_event)
        self.auth_gate.remove_sign_out_hook(self.flush)
        pending = self._background | self._handoffs
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("SyncOrchestrator shut down")

    def _on_auth_event(self, event: AuthEvent) -> None:
        if event.kind is AuthEventKind.SIGNED_OUT:
            logger.info("User signed out, clearing local data")
            self.disable(clear_local=True)
            return

        if not event.user_id:
            return
        if self.is_enabled and event.user_id == self.session.owner_id:
            return
        self._spawn(self.initialize())

    # =========================================================================
    # STARTUP MERGE
    # =========================================================================

    async def load_and_merge(self) -> Dict[str, int]:
        """
        Reconcile every managed key with the remote store, then emit data-loaded.

        Returns:
            Count of keys per MergeOutcome value
        """
        report = {outcome.value: 0 for outcome in MergeOutcome}
        if not self.is_enabled:
            return report
        if self.session.is_syncing:
            logger.debug("Sync already in progress, merge skipped")
            return report

        owner_id = self.session.owner_id
        self.session.is_syncing = True
        self._notify_status()
        try:
            with LogContext(logger, "Startup merge"):
                outcomes = list(await asyncio.gather(
                    *(self._merge_key(key, owner_id) for key in STATIC_DATA_KEYS)
                ))
                # Class names are only known once class records are merged
                config_keys = self._assessment_keys_to_merge()
                if config_keys:
                    outcomes += await asyncio.gather(
                        *(self._merge_key(key, owner_id) for key in config_keys)
                    )

            for outcome in outcomes:
                report[outcome.value] += 1

            if self.is_enabled:
                self._emit_data_loaded()
        finally:
            self.session.is_syncing = False
            self._notify_status()

        logger.info(f"Merge report: {report}")
        return report

    def _assessment_keys_to_merge(self) -> List[str]:
        keys: Set[str] = set()

        class_records = self.local.read(storage_key_for(DataKey.CLASS_RECORDS.value))
        if isinstance(class_records, dict):
            keys.update(assessment_config_key(name) for name in class_records if name)

        for storage_key in self.local.managed_keys():
            managed = parse_storage_key(storage_key)
            if managed.base == DataKey.ASSESSMENT_CONFIG.value:
                keys.add(managed.data_key)

        return sorted(keys)

    async def _merge_key(self, data_key: str, owner_id: str) -> MergeOutcome:
        storage_key = storage_key_for(data_key)

        result = await self.remote.fetch_record_set(owner_id, data_key)
        if not result:
            return MergeOutcome.FAILED
        try:
            remote_value = result.data.decode() if result.data else None
        except SerializationError as e:
            logger.warning(f"Skipping merge of {data_key}: {e}")
            return MergeOutcome.FAILED

        if not self.is_enabled or self.session.owner_id != owner_id:
            # Signed out while the fetch was pending
            return MergeOutcome.FAILED

        local_value = self.local.read(storage_key)
        local_empty = is_empty_payload(local_value)
        remote_empty = is_empty_payload(remote_value)

        if local_empty and remote_empty:
            return MergeOutcome.NOOP

        if remote_empty:
            pushed = await self.push_now(data_key, local_value)
            return MergeOutcome.FAILED if pushed is False else MergeOutcome.PUSHED

        if self.push_state(data_key) is not PushState.IDLE:
            # An edit made during the merge is newer than both copies
            return MergeOutcome.UNCHANGED

        if local_empty or local_value != remote_value:
            self._apply_remote(storage_key, data_key, remote_value)
            return MergeOutcome.ADOPTED

        return MergeOutcome.UNCHANGED

    @contextmanager
    def _remote_write(self, data_key: str) -> Iterator[None]:
        self._applying_remote.add(data_key)
        try:
            yield
        finally:
            self._applying_remote.discard(data_key)

    def _apply_remote(self, storage_key: str, data_key: str, value: Any) -> None:
        with self._remote_write(data_key):
            self.local.write(storage_key, value)

    # =========================================================================
    # DEBOUNCED PUSH
    # =========================================================================

    def schedule_push(self, data_key: str, payload: Any) -> bool:
        """
        Push payload for data_key after the debounce window.

        A later call for the same key restarts the window. A call while the
        key is in flight queues one follow-up push.

        Returns:
            True if a push was scheduled or queued
        """
        if data_key in self._applying_remote:
            return False
        if not self.is_enabled:
            logger.debug(f"Sync not enabled, {data_key} kept local only")
            return False
        if not is_managed_data_key(data_key):
            return False

        loop = self._running_loop()
        if loop is None:
            logger.debug(f"No running event loop, {data_key} left for the next full sync")
            return False

        entry = self._entries.setdefault(data_key, KeyPushEntry())
        entry.payload = payload
        entry.has_pending = True

        if entry.state is PushState.IN_FLIGHT:
            return True

        if entry.timer is not None:
            entry.timer.cancel()
        entry.timer = loop.call_later(self.debounce_seconds, self._start_push, data_key)
        entry.state = PushState.SCHEDULED
        return True

    async def push_now(self, data_key: str, payload: Any) -> Optional[bool]:
        """
        Push immediately, bypassing the debounce window.

        Returns:
            True/False for the push result, None if the key was in flight
            and the push was queued as a follow-up
        """
        if not self.is_enabled:
            return False

        entry = self._entries.setdefault(data_key, KeyPushEntry())
        entry.payload = payload
        entry.has_pending = True
        if entry.state is PushState.IN_FLIGHT:
            return None

        task = self._start_push(data_key)
        if task is None:
            return False
        return await task

    def _start_push(self, data_key: str) -> Optional[asyncio.Task]:
        entry = self._entries.get(data_key)
        if entry is None:
            return None

        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

        if entry.state is PushState.IN_FLIGHT:
            return entry.task

        loop = self._running_loop()
        if not entry.has_pending or not self.is_enabled or loop is None:
            entry.state = PushState.IDLE
            entry.has_pending = False
            return None

        entry.state = PushState.IN_FLIGHT
        entry.has_pending = False
        entry.task = loop.create_task(
            self._drain(data_key, entry, self.session.owner_id, entry.payload)
        )
        return entry.task

    async def _drain(self, data_key: str, entry: KeyPushEntry, owner_id: str, payload: Any) -> bool:
        try:
            return await self._push(owner_id, data_key, payload)
        finally:
            entry.task = None
            loop = self._running_loop()
            if entry.has_pending and self.is_enabled and loop is not None:
                entry.state = PushState.SCHEDULED
                entry.timer = loop.call_later(self.debounce_seconds, self._start_push, data_key)
            else:
                entry.has_pending = False
                entry.state = PushState.IDLE

    async def _push(self, owner_id: str, data_key: str, payload: Any) -> bool:
        self.session.last_sync = datetime.now()
        result = await self.remote.upsert_record_set(owner_id, data_key, payload)

        if result:
            self.session.last_sync_success = datetime.now()
            self.session.total_pushed += 1
            logger.info(f"Synced {data_key} to remote")
        else:
            self.session.failed_count += 1
            logger.warning(
                f"Push of {data_key} failed [{result.error_code}]: {result.error}. "
                "Local copy kept; the next full sync will retry"
            )

        self._notify_status()
        return result.success

    def _cancel_scheduled(self) -> None:
        for entry in self._entries.values():
            if entry.timer is not None:
                entry.timer.cancel()
                entry.timer = None
            if entry.state is PushState.SCHEDULED:
                entry.state = PushState.IDLE
            entry.has_pending = False

    def _hand_off_pending(self, owner_id: Optional[str]) -> None:
        """Push every edit not yet sent to owner_id, outside the per-key queue."""
        for data_key, entry in self._entries.items():
            if entry.timer is not None:
                entry.timer.cancel()
                entry.timer = None
            if entry.has_pending:
                if owner_id:
                    self._spawn(
                        self._final_push(owner_id, data_key, entry.payload, entry.task),
                        self._handoffs,
                    )
                else:
                    logger.warning(f"No owner for pending {data_key}, kept local only")
            entry.has_pending = False
            if entry.state is PushState.SCHEDULED:
                entry.state = PushState.IDLE

    async def _final_push(
        self,
        owner_id: str,
        data_key: str,
        payload: Any,
        previous: Optional[asyncio.Task],
    ) -> bool:
        if previous is not None:
            # Keep the older in-flight value from landing after this one
            await asyncio.gather(previous, return_exceptions=True)

        result = await self.remote.upsert_record_set(owner_id, data_key, payload)
        if result:
            self.session.total_pushed += 1
            logger.info(f"Pushed pending {data_key} for {owner_id} as its session ended")
        else:
            self.session.failed_count += 1
            logger.warning(
                f"Pending {data_key} for {owner_id} could not be pushed "
                f"[{result.error_code}]: {result.error}"
            )
        self._notify_status()
        return result.success

    def _in_flight_tasks(self) -> List[asyncio.Task]:
        return [e.task for e in self._entries.values() if e.task is not None]

    async def flush(self) -> None:
        """Fire every scheduled push now and wait until no key is pending."""
        while True:
            tasks = []
            for data_key, entry in list(self._entries.items()):
                if entry.state is PushState.SCHEDULED:
                    task = self._start_push(data_key)
                else:
                    task = entry.task
                if task is not None:
                    tasks.append(task)
            tasks.extend(self._handoffs)

            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # FULL SYNC
    # =========================================================================

    async def sync_all(self) -> Dict[str, int]:
        """
        Push every non-empty managed key held locally.

        Returns:
            Dict with pushed / failed / deferred counts
        """
        stats = {"pushed": 0, "failed": 0, "deferred": 0}
        if not self.is_enabled:
            logger.debug("Sync not enabled, full sync skipped")
            return stats
        if self.session.is_syncing:
            logger.debug("Sync already in progress, full sync skipped")
            return stats

        self.session.is_syncing = True
        self._notify_status()
        try:
            with LogContext(logger, "Full sync"):
                pushes = []
                for storage_key in self.local.managed_keys():
                    value = self.local.read(storage_key)
                    if is_empty_payload(value):
                        continue
                    pushes.append(self.push_now(parse_storage_key(storage_key).data_key, value))
                results = await asyncio.gather(*pushes)

            for outcome in results:
                if outcome is None:
                    stats["deferred"] += 1
                elif outcome:
                    stats["pushed"] += 1
                else:
                    stats["failed"] += 1
        finally:
            self.session.is_syncing = False
            self._notify_status()

        logger.info(f"Full sync complete: {stats}")
        return stats

    def _start_periodic_sync(self) -> None:
        self._stop_periodic_sync()
        if self.full_sync_interval <= 0:
            return
        self._stop_periodic = asyncio.Event()
        self._periodic_task = self._loop.create_task(
            self._periodic_loop(self._stop_periodic), name="classroom-full-sync"
        )

    def _stop_periodic_sync(self) -> None:
        if self._stop_periodic is not None:
            self._stop_periodic.set()
            self._stop_periodic = None
        if self._periodic_task is not None:
            if not self._periodic_task.done():
                self._periodic_task.cancel()
            self._periodic_task = None

    async def _periodic_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.full_sync_interval)
                break
            except asyncio.TimeoutError:
                if self.is_enabled:
                    try:
                        await self.sync_all()
                    except Exception as e:
                        logger.error(f"Periodic full sync error: {e}", exc_info=True)

    # =========================================================================
    # REAL-TIME APPLY
    # =========================================================================

    async def _subscribe(self, owner_id: str):
        result = await self.remote.subscribe_to_changes(owner_id, self._on_remote_change)
        if not result:
            logger.info("Real-time updates unavailable, relying on periodic sync")
            return None
        self._subscription = result.data
        return result.data

    def _on_remote_change(self, change: RemoteChange) -> None:
        if not self.is_enabled or change.owner_id != self.session.owner_id:
            return

        managed = parse_data_key(change.data_key)
        if managed is None:
            return

        if self.push_state(change.data_key) is not PushState.IDLE:
            logger.debug(f"Ignoring remote change to {change.data_key}: local push pending")
            return

        if change.event is ChangeEvent.DELETE:
            if not self.local.contains(managed.storage_key):
                return
            self.local.remove(managed.storage_key)
        else:
            try:
                value = change.envelope.decode()
            except SerializationError as e:
                logger.warning(f"Ignoring remote change to {change.data_key}: {e}")
                return
            if value == self.local.read(managed.storage_key):
                return
            self._apply_remote(managed.storage_key, change.data_key, value)

        logger.info(f"Applied remote {change.event.value} for {change.data_key}")
        self._emit_data_loaded()

    async def _stop_remote_activity(self) -> None:
        self._hand_off_pending(self.session.owner_id)
        self._stop_periodic_sync()
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()

    # =========================================================================
    # BULK OPERATIONS
    # =========================================================================

    async def clear_all_data(self) -> ServiceResult:
        """Remove every managed key locally and every remote row for the owner."""
        self._cancel_scheduled()
        in_flight = self._in_flight_tasks()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        removed = self.local.clear_managed()
        summary = {"local": removed, "remote": 0}

        owner_id = self.auth_gate.get_current_user_id()
        if owner_id:
            result = await self.remote.delete_all_record_sets(owner_id)
            if not result:
                self._emit_data_loaded()
                return ServiceResult.fail(result.error, result.error_code, metadata=summary)
            summary["remote"] = result.data

        self._emit_data_loaded()
        return ServiceResult.ok(summary)

    async def export_remote(self) -> ServiceResult:
        """Every managed record set stored remotely, as {data_key: payload}."""
        owner_id = self.auth_gate.get_current_user_id()
        result = await self.remote.fetch_all_record_sets(owner_id)
        if not result:
            return result

        aggregate: Dict[str, Any] = {}
        for envelope in result.data:
            if not is_managed_data_key(envelope.data_key):
                continue
            try:
                aggregate[envelope.data_key] = envelope.decode()
            except SerializationError as e:
                logger.warning(f"Export skipped {envelope.data_key}: {e}")

        return ServiceResult.ok(
            aggregate,
            metadata={"owner_id": owner_id, "exported_at": datetime.now().isoformat()},
        )

    async def import_remote(self, aggregate: Dict[str, Any]) -> ServiceResult:
        """Upsert each managed key of an exported aggregate; unknown keys are skipped."""
        owner_id = self.auth_gate.get_current_user_id()
        if not owner_id:
            return ServiceResult.from_exception(NotAuthenticatedError(operation="import_remote"))

        keys = [key for key in aggregate if is_managed_data_key(key)]
        skipped = [key for key in aggregate if not is_managed_data_key(key)]

        results = await asyncio.gather(
            *(self.remote.upsert_record_set(owner_id, key, aggregate[key]) for key in keys)
        )
        failed = [key for key, result in zip(keys, results) if not result]
        summary = {
            "imported": [key for key in keys if key not in failed],
            "failed": failed,
            "skipped": skipped,
        }

        if failed:
            return ServiceResult.fail(
                f"{len(failed)} record sets failed to import",
                error_code="SYNC_001",
                metadata=summary,
            )
        return ServiceResult.ok(summary)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncSession], None]) -> None:
        """Register a callback for sync status changes."""
        if callback not in self._status_callbacks:
            self._status_callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncSession], None]) -> None:
        if callback in self._status_callbacks:
            self._status_callbacks.remove(callback)

    def register_data_loaded_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when local data was refreshed from remote."""
        if callback not in self._data_loaded_callbacks:
            self._data_loaded_callbacks.append(callback)

    def unregister_data_loaded_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._data_loaded_callbacks:
            self._data_loaded_callbacks.remove(callback)

    def _notify_status(self) -> None:
        for callback in list(self._status_callbacks):
            try:
                callback(self.session)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def _emit_data_loaded(self) -> None:
        for callback in list(self._data_loaded_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in data-loaded callback: {e}")

    def _set_state(self, state: SyncState) -> None:
        if self.session.state is not state:
            logger.debug(f"Sync state: {self.session.state.value} -> {state.value}")
            self.session.state = state
            self._notify_status()

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _running_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is not None and self._loop.is_running():
                return self._loop
            return None

    def _spawn(self, coro, registry: Optional[Set[asyncio.Task]] = None) -> None:
        registry = self._background if registry is None else registry
        loop = self._running_loop()
        if loop is None:
            coro.close()
            logger.warning("No running event loop, background work dropped")
            return
        task = loop.create_task(coro)
        registry.add(task)
        task.add_done_callback(registry.discard)

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        session = self.session
        return {
            "state": session.state.value,
            "is_enabled": session.enabled,
            "owner_id": session.owner_id,
            "is_syncing": session.is_syncing,
            "last_sync": session.last_sync.isoformat() if session.last_sync else None,
            "last_success": session.last_sync_success.isoformat() if session.last_sync_success else None,
            "total_pushed": session.total_pushed,
            "failed_count": session.failed_count,
            "scheduled_keys": sorted(
                k for k, e in self._entries.items() if e.state is PushState.SCHEDULED
            ),
            "in_flight_keys": sorted(
                k for k, e in self._entries.items() if e.state is PushState.IN_FLIGHT
            ),
            "realtime": self._subscription is not None,
        }
