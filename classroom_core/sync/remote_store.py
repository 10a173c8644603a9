# =============================================================================
# classroom_core/sync/remote_store.py
# Remote Record-Set Store (Supabase)
# =============================================================================
"""
RemoteStore - asynchronous row-level access to the per-owner record sets.

One row per (owner, data key) in the `user_data` table:

    user_id | data_key | data_value (JSON text) | updated_at

Every public operation returns a ServiceResult. Network failures, missing
owners and unserializable payloads come back as failed results carrying
the matching error code; nothing is raised to the caller.
"""

from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from supabase import AsyncClient, acreate_client

from classroom_core.errors import (
    ClassroomError,
    ConfigurationError,
    NotAuthenticatedError,
    RemoteUnavailableError,
)
from classroom_core.logging import get_logger
from classroom_core.services.base_service import ServiceResult
from classroom_core.sync.keys import decode_payload, encode_payload

logger = get_logger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncEnvelope:
    """Wire representation of one record set."""
    owner_id: str
    data_key: str
    payload: str
    updated_at: str = field(default_factory=_utc_now)

    @classmethod
    def build(cls, owner_id: str, data_key: str, value: Any) -> SyncEnvelope:
        """Serialize value and stamp updated_at (raises SerializationError)."""
        return cls(owner_id, data_key, encode_payload(value, key=data_key))

    def decode(self) -> Any:
        return decode_payload(self.payload, key=self.data_key)

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.owner_id,
            "data_key": self.data_key,
            "data_value": self.payload,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> SyncEnvelope:
        return cls(
            owner_id=row.get("user_id"),
            data_key=row.get("data_key"),
            payload=row.get("data_value"),
            updated_at=row.get("updated_at") or "",
        )


class ChangeEvent(Enum):
    """Remote mutation kinds."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class RemoteChange:
    """A pushed notification about one remote row."""
    event: ChangeEvent
    owner_id: str
    data_key: str
    envelope: Optional[SyncEnvelope] = None


ChangeCallback = Callable[[RemoteChange], None]


class Subscription:
    """Handle returned by subscribe_to_changes; close() unsubscribes once."""

    def __init__(self, closer: Callable[[], Awaitable[None]]):
        self._closer = closer
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._closer()


class RemoteStore(ABC):
    """
    Base class for remote backends.

    Subclasses implement the underscored coroutines and may raise freely;
    the public methods translate every failure into a ServiceResult.
    """

    def __init__(self, table_name: str = "user_data"):
        self.table_name = table_name
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # BACKEND HOOKS
    # =========================================================================

    @abstractmethod
    async def _connect(self) -> None:
        """Open the connection and verify the backend answers."""

    @abstractmethod
    async def _upsert(self, envelope: SyncEnvelope) -> None:
        pass

    @abstractmethod
    async def _fetch_all(self, owner_id: str) -> List[SyncEnvelope]:
        pass

    @abstractmethod
    async def _fetch_one(self, owner_id: str, data_key: str) -> Optional[SyncEnvelope]:
        pass

    @abstractmethod
    async def _delete_all(self, owner_id: str) -> int:
        pass

    @abstractmethod
    async def _subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        pass

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def initialize(self) -> ServiceResult:
        """Connect to the backend. Safe to call repeatedly."""
        try:
            await self._connect()
            self._initialized = True
            logger.info(f"{self.__class__.__name__} connected (table={self.table_name})")
            return ServiceResult.ok()
        except Exception as e:
            self._initialized = False
            return self._failure("initialize", e)

    async def upsert_record_set(self, owner_id: str, data_key: str, payload: Any) -> ServiceResult:
        """
        Insert or replace the row for (owner_id, data_key).

        Returns:
            ServiceResult with the stored SyncEnvelope as data
        """
        try:
            self._require_owner(owner_id, "upsert_record_set")
            envelope = SyncEnvelope.build(owner_id, data_key, payload)
            await self._upsert(envelope)
            logger.debug(f"Pushed {data_key} for {owner_id}")
            return ServiceResult.ok(envelope)
        except Exception as e:
            return self._failure("upsert_record_set", e, data_key)

    async def fetch_all_record_sets(self, owner_id: str) -> ServiceResult:
        """ServiceResult with every SyncEnvelope owned by owner_id."""
        try:
            self._require_owner(owner_id, "fetch_all_record_sets")
            return ServiceResult.ok(await self._fetch_all(owner_id))
        except Exception as e:
            return self._failure("fetch_all_record_sets", e)

    async def fetch_record_set(self, owner_id: str, data_key: str) -> ServiceResult:
        """ServiceResult with the SyncEnvelope, or data=None when not found."""
        try:
            self._require_owner(owner_id, "fetch_record_set")
            return ServiceResult.ok(await self._fetch_one(owner_id, data_key))
        except Exception as e:
            return self._failure("fetch_record_set", e, data_key)

    async def delete_all_record_sets(self, owner_id: str) -> ServiceResult:
        """Delete every row owned by owner_id. data is the deleted row count."""
        try:
            self._require_owner(owner_id, "delete_all_record_sets")
            deleted = await self._delete_all(owner_id)
            logger.info(f"Deleted {deleted} remote record sets for {owner_id}")
            return ServiceResult.ok(deleted)
        except Exception as e:
            return self._failure("delete_all_record_sets", e)

    async def subscribe_to_changes(self, owner_id: str, callback: ChangeCallback) -> ServiceResult:
        """Register a change listener. data is a Subscription handle."""
        try:
            self._require_owner(owner_id, "subscribe_to_changes")
            subscription = await self._subscribe(owner_id, callback)
            logger.info(f"Real-time changes subscribed for {owner_id}")
            return ServiceResult.ok(subscription)
        except Exception as e:
            return self._failure("subscribe_to_changes", e)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _require_owner(owner_id: Optional[str], operation: str) -> None:
        if not owner_id:
            raise NotAuthenticatedError(operation=operation)

    def _failure(self, operation: str, error: Exception, data_key: Optional[str] = None) -> ServiceResult:
        if not isinstance(error, ClassroomError):
            error = RemoteUnavailableError(str(error), operation=operation, data_key=data_key)
        logger.warning(f"Remote {operation} failed: {error}")
        return ServiceResult.from_exception(error)


# =============================================================================
# SUPABASE BACKEND
# =============================================================================

class SupabaseRemoteStore(RemoteStore):
    """
    Record sets stored in a Supabase table.

    Expects a unique constraint on (user_id, data_key) and Realtime enabled
    on the table for subscribe_to_changes.
    """

    COLUMNS = "user_id, data_key, data_value, updated_at"

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        table_name: str = "user_data",
        client: Optional[AsyncClient] = None,
    ):
        super().__init__(table_name)
        self.url = url
        self.key = key
        self.client = client

    async def _connect(self) -> None:
        if self.client is None:
            if not (self.url and self.key):
                raise ConfigurationError(
                    "Supabase URL and key are not configured",
                    config_key="supabase",
                )
            self.client = await acreate_client(self.url, self.key)

        await self.client.table(self.table_name).select("data_key").limit(1).execute()

    def _table(self):
        if self.client is None:
            raise RemoteUnavailableError("Supabase client not initialized")
        return self.client.table(self.table_name)

    async def _upsert(self, envelope: SyncEnvelope) -> None:
        await self._table().upsert(
            envelope.to_row(), on_conflict="user_id,data_key"
        ).execute()

    async def _fetch_all(self, owner_id: str) -> List[SyncEnvelope]:
        response = await self._table().select(self.COLUMNS).eq("user_id", owner_id).execute()
        return [SyncEnvelope.from_row(row) for row in response.data or []]

    async def _fetch_one(self, owner_id: str, data_key: str) -> Optional[SyncEnvelope]:
        # limit(1) instead of single(): a missing row is not an error here
        response = await (
            self._table()
            .select(self.COLUMNS)
            .eq("user_id", owner_id)
            .eq("data_key", data_key)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return SyncEnvelope.from_row(rows[0]) if rows else None

    async def _delete_all(self, owner_id: str) -> int:
        response = await self._table().delete().eq("user_id", owner_id).execute()
        return len(response.data or [])

    async def _subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        if self.client is None:
            raise RemoteUnavailableError("Supabase client not initialized")

        def handler(payload: Dict[str, Any]) -> None:
            change = parse_postgres_change(payload)
            if change is not None:
                callback(change)

        channel = self.client.channel(f"{self.table_name}_changes_{owner_id}")
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=self.table_name,
            filter=f"user_id=eq.{owner_id}",
            callback=handler,
        )
        await channel.subscribe()

        async def close() -> None:
            await self.client.remove_channel(channel)

        return Subscription(close)


def parse_postgres_change(payload: Dict[str, Any]) -> Optional[RemoteChange]:
    """
    Convert a Realtime postgres_changes payload into a RemoteChange.

    Accepts both the nested {"data": {"type", "record", "old_record"}} shape
    and the flat {"eventType", "new", "old"} shape.
    """
    data = payload.get("data", payload) if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return None

    kind = data.get("type") or data.get("eventType")
    try:
        event = ChangeEvent(str(kind).upper())
    except ValueError:
        logger.debug(f"Ignoring realtime payload with event {kind!r}")
        return None

    new_row = data.get("record") or data.get("new") or {}
    old_row = data.get("old_record") or data.get("old") or {}
    row = old_row if event is ChangeEvent.DELETE else new_row

    owner_id = row.get("user_id")
    data_key = row.get("data_key")
    if not owner_id or not data_key:
        return None

    envelope = None if event is ChangeEvent.DELETE else SyncEnvelope.from_row(row)
    return RemoteChange(event, owner_id, data_key, envelope)


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================

class InMemoryRemoteStore(RemoteStore):
    """
    Process-local backend for development and tests.

    Set `available = False` to simulate a network outage; `latency` delays
    every call. `upsert_calls` records every upsert attempt.
    """

    def __init__(self, table_name: str = "user_data", latency: float = 0.0):
        super().__init__(table_name)
        self.latency = latency
        self.available = True
        self.rows: Dict[Tuple[str, str], SyncEnvelope] = {}
        self.upsert_calls: List[SyncEnvelope] = []
        self._subscribers: Dict[str, List[ChangeCallback]] = {}

    async def _io(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if not self.available:
            raise RemoteUnavailableError("Remote store unreachable", operation=operation)

    async def _connect(self) -> None:
        await self._io("connect")

    async def _upsert(self, envelope: SyncEnvelope) -> None:
        self.upsert_calls.append(envelope)
        await self._io("upsert")
        key = (envelope.owner_id, envelope.data_key)
        event = ChangeEvent.UPDATE if key in self.rows else ChangeEvent.INSERT
        self.rows[key] = envelope
        self._notify(RemoteChange(event, envelope.owner_id, envelope.data_key, envelope))

    async def _fetch_all(self, owner_id: str) -> List[SyncEnvelope]:
        await self._io("fetch_all")
        return [env for (owner, _), env in self.rows.items() if owner == owner_id]

    async def _fetch_one(self, owner_id: str, data_key: str) -> Optional[SyncEnvelope]:
        await self._io("fetch_one")
        return self.rows.get((owner_id, data_key))

    async def _delete_all(self, owner_id: str) -> int:
        await self._io("delete_all")
        doomed = [key for key in self.rows if key[0] == owner_id]
        for key in doomed:
            del self.rows[key]
            self._notify(RemoteChange(ChangeEvent.DELETE, owner_id, key[1]))
        return len(doomed)

    async def _subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        await self._io("subscribe")
        self._subscribers.setdefault(owner_id, []).append(callback)

        async def close() -> None:
            callbacks = self._subscribers.get(owner_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return Subscription(close)

    def _notify(self, change: RemoteChange) -> None:
        for callback in list(self._subscribers.get(change.owner_id, [])):
            try:
                callback(change)
            except Exception as e:
                logger.error(f"Error in change subscriber: {e}")

    # =========================================================================
    # TEST HELPERS
    # =========================================================================

    def seed(self, owner_id: str, data_key: str, value: Any) -> SyncEnvelope:
        """Store a row directly, without notifying subscribers."""
        envelope = SyncEnvelope.build(owner_id, data_key, value)
        self.rows[(owner_id, data_key)] = envelope
        return envelope

    def simulate_external_write(self, owner_id: str, data_key: str, value: Any) -> SyncEnvelope:
        """Store a row as another device would, notifying subscribers."""
        key = (owner_id, data_key)
        event = ChangeEvent.UPDATE if key in self.rows else ChangeEvent.INSERT
        envelope = SyncEnvelope.build(owner_id, data_key, value)
        self.rows[key] = envelope
        self._notify(RemoteChange(event, owner_id, data_key, envelope))
        return envelope

    def value(self, owner_id: str, data_key: str) -> Any:
        envelope = self.rows.get((owner_id, data_key))
        return envelope.decode() if envelope else None

    @property
    def subscriber_count(self) -> int:
        return sum(len(v) for v in self._subscribers.values())
