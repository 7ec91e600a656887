"""
Named JSON records with change notification.

The tag store keeps its state as a handful of named records
("entryTags", "feedTags", "activeFilters", "predefinedTags"). This
module provides the storage for them: a SQLite-backed RecordStore for
real use and a MemoryRecordStore for tests and embedding.

Listeners registered with subscribe() are called after every change as
listener(name, old_value, new_value). A failing listener is logged and
never breaks the write. Inside hold_notifications() the calls are queued
and delivered, in order, when the outermost hold on that thread exits.
"""

import copy
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any, Any], None]


@runtime_checkable
class PersistenceStore(Protocol):
    """Get/set of named JSON documents with change notification."""

    def get(self, name: str, default: Any = None) -> Any:
        """Return the record's value, or default if absent."""
        ...

    def set(self, name: str, value: Any) -> None:
        """Replace the record's value and notify listeners."""
        ...

    def delete(self, name: str) -> bool:
        """Remove a record. Returns True if it existed."""
        ...

    def names(self) -> list[str]:
        """List record names."""
        ...

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        ...

    def hold_notifications(self) -> AbstractContextManager[None]:
        """Queue this thread's change notifications until the block exits."""
        ...

    def close(self) -> None:
        ...


class _Listeners:
    """Listener bookkeeping shared by both store implementations."""

    def __init__(self):
        self._listeners: list[Listener] = []
        self._listeners_lock = threading.Lock()
        self._held = threading.local()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def hold_notifications(self) -> Iterator[None]:
        """
        Queue change notifications made on this thread until the block exits.

        Lets a caller update records under its own lock and notify
        listeners only after releasing it. Nested holds flush once, when
        the outermost one exits. Other threads are unaffected.
        """
        if getattr(self._held, "pending", None) is not None:
            yield
            return
        self._held.pending = []
        try:
            yield
        finally:
            pending, self._held.pending = self._held.pending, None
            for name, old, new in pending:
                self._deliver(name, old, new)

    def _notify(self, name: str, old: Any, new: Any) -> None:
        pending = getattr(self._held, "pending", None)
        if pending is not None:
            pending.append((name, old, new))
            return
        self._deliver(name, old, new)

    def _deliver(self, name: str, old: Any, new: Any) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(name, old, new)
            except Exception as e:
                logger.warning("Record listener failed for %s: %s", name, e)


class RecordStore(_Listeners):
    """
    SQLite-backed store of named JSON records.

    Safe to share between threads: all statements run under one lock.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        super().__init__()
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)

        # WAL lets the CLI read while a classification run writes
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                name TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def _read(self, name: str) -> Any:
        cursor = self._conn.execute(
            "SELECT value_json FROM records WHERE name = ?", (name,)
        )
        row = cursor.fetchone()
        return None if row is None else json.loads(row[0])

    def get(self, name: str, default: Any = None) -> Any:
        """Return the record's value, or default if absent."""
        with self._lock:
            value = self._read(name)
        return default if value is None else value

    def set(self, name: str, value: Any) -> None:
        """Replace the record's value and notify listeners."""
        now = datetime.now(timezone.utc).isoformat()
        value_json = json.dumps(value, ensure_ascii=False)
        with self._lock:
            old = self._read(name)
            self._conn.execute("""
                INSERT OR REPLACE INTO records (name, value_json, updated_at)
                VALUES (?, ?, ?)
            """, (name, value_json, now))
            self._conn.commit()
        self._notify(name, old, json.loads(value_json))

    def delete(self, name: str) -> bool:
        """Remove a record. Returns True if it existed."""
        with self._lock:
            old = self._read(name)
            cursor = self._conn.execute(
                "DELETE FROM records WHERE name = ?", (name,)
            )
            self._conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            self._notify(name, old, None)
        return deleted

    def names(self) -> list[str]:
        """List record names."""
        with self._lock:
            cursor = self._conn.execute("SELECT name FROM records ORDER BY name")
            return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()


class MemoryRecordStore(_Listeners):
    """In-memory store of named JSON records.

    Values are deep-copied in and out so callers cannot mutate stored state.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        super().__init__()
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, name: str, default: Any = None) -> Any:
        with self._lock:
            if name not in self._data:
                return default
            return copy.deepcopy(self._data[name])

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            old = self._data.get(name)
            self._data[name] = copy.deepcopy(value)
        self._notify(name, old, copy.deepcopy(value))

    def delete(self, name: str) -> bool:
        with self._lock:
            if name not in self._data:
                return False
            old = self._data.pop(name)
        self._notify(name, old, None)
        return True

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def close(self) -> None:
        pass
