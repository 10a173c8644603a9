# =============================================================================
# classroom_core/sync/local_store.py
# Local Key/Value Store (SQLite)
# =============================================================================
"""
LocalStore - durable key/value storage, the ground truth when offline.

Features:
- Synchronous JSON read/write API plus the legacy raw-text API
  (get_item/set_item)
- Post-write hooks, run once per write before the call returns
- Malformed stored JSON reads as the default
"""

from __future__ import annotations
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Union

from classroom_core.errors import SerializationError
from classroom_core.logging import get_logger
from classroom_core.sync.keys import (
    STORAGE_PREFIX,
    decode_payload,
    encode_payload,
    parse_storage_key,
)

logger = get_logger(__name__)

WriteHook = Callable[[str, str], None]

IN_MEMORY = ":memory:"

# Marks "no default given" so that None stays a storable value
MISSING = object()


class LocalStore:
    """
    SQLite-backed key/value store with write hooks.

    Usage:
        store = LocalStore(IN_MEMORY)
        store.write("schoolPlatform_attendance", {"2024-01-01": "present"})
        store.read("schoolPlatform_attendance")
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS local_storage (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT
        )
    """

    def __init__(self, db_path: Union[str, Path] = IN_MEMORY):
        """
        Args:
            db_path: SQLite file path, or ":memory:" for a throwaway store
                shared by every thread that uses this instance
        """
        self.db_path = db_path
        if str(db_path) == IN_MEMORY:
            self._database = f"file:classroom-{uuid.uuid4().hex}?mode=memory&cache=shared"
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._database = Path(db_path).resolve().as_uri()

        self._local = threading.local()
        self._lock = threading.RLock()
        self._connections: List[sqlite3.Connection] = []
        self._closed = False
        self._hooks: List[WriteHook] = []

        # Also keeps a shared in-memory database alive until close()
        with self.transaction() as conn:
            conn.execute(self.SCHEMA)
        logger.info(f"Local store opened at: {db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if self._closed:
            raise sqlite3.ProgrammingError("Cannot operate on a closed local store")
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(self._database, uri=True, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _query(self, sql: str, params: list) -> List[sqlite3.Row]:
        with self._lock:
            return self._get_connection().execute(sql, params).fetchall()

    # =========================================================================
    # HOOKS
    # =========================================================================

    def add_write_hook(self, hook: WriteHook) -> None:
        """Register a callable invoked as hook(key, raw_text) after every write."""
        if hook not in self._hooks:
            self._hooks.append(hook)

    def remove_write_hook(self, hook: WriteHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def _run_hooks(self, key: str, raw: str) -> None:
        for hook in list(self._hooks):
            try:
                hook(key, raw)
            except Exception as e:
                # The local write already succeeded
                logger.error(f"Error in write hook for {key}: {e}", exc_info=True)

    # =========================================================================
    # RAW TEXT API
    # =========================================================================

    def get_item(self, key: str) -> Optional[str]:
        """Stored text for key, or None when absent."""
        rows = self._query("SELECT value FROM local_storage WHERE key = ?", [key])
        return rows[0]["value"] if rows else None

    def set_item(self, key: str, raw: str) -> None:
        """Store text as-is and run write hooks."""
        if not isinstance(raw, str):
            raw = str(raw)
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO local_storage (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, raw, datetime.now(timezone.utc).isoformat()],
            )
        self._run_hooks(key, raw)

    # =========================================================================
    # JSON API
    # =========================================================================

    def read(self, key: str, default: Any = MISSING) -> Any:
        """
        Read and decode a value.

        Args:
            key: Storage key
            default: Returned when the key is absent or unreadable
                (an empty dict when not given)

        Returns:
            Decoded value (None for a stored JSON null) or default
        """
        if default is MISSING:
            default = {}

        raw = self.get_item(key)
        if raw is None:
            return default

        try:
            value = decode_payload(raw, key=key)
        except SerializationError as e:
            logger.warning(f"Ignoring unreadable local value: {e}")
            return default

        return value

    def write(self, key: str, value: Any) -> None:
        """
        Encode and store a value.

        Raises:
            SerializationError: value is not JSON-serializable (nothing is written)
        """
        self.set_item(key, encode_payload(value, key=key))

    def remove(self, key: str) -> None:
        """Delete a key. Write hooks are not run."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM local_storage WHERE key = ?", [key])

    def contains(self, key: str) -> bool:
        return self.get_item(key) is not None

    def keys(self, prefix: str = "") -> List[str]:
        rows = self._query(
            "SELECT key FROM local_storage WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            [_escape_like(prefix) + "%"],
        )
        return [row["key"] for row in rows]

    def managed_keys(self) -> List[str]:
        """Storage keys present locally that belong to the managed enumeration."""
        return [k for k in self.keys(STORAGE_PREFIX) if parse_storage_key(k) is not None]

    def clear_managed(self) -> int:
        """Remove every managed key. Returns the number of keys removed."""
        keys = self.managed_keys()
        if keys:
            with self.transaction() as conn:
                conn.executemany(
                    "DELETE FROM local_storage WHERE key = ?", [[k] for k in keys]
                )
        logger.info(f"Cleared {len(keys)} managed local keys")
        return len(keys)

    def close(self) -> None:
        """Close every thread's connection. A shared in-memory store is discarded."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for conn in self._connections:
                conn.close()
            self._connections.clear()


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
