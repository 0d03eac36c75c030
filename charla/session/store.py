"""
Session persistence behind one key-value interface.

SQLiteSessionStore is the production backend: it serializes work per
session with an asyncio.Lock and rejects stale writes with a version
check. InMemorySessionStore does neither and is restricted to dev/test
through configuration.
"""

import asyncio
import sqlite3
import weakref
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from charla.session.models import Session
from charla.shared.config import CharlaSettings, settings as default_settings
from charla.shared.exceptions import (
    ConcurrentModificationError,
    ConfigurationError,
    StorageError,
)
from charla.shared.logging import get_logger

logger = get_logger(__name__)


class SessionStore(ABC):
    """Key-value session storage with a per-session serialization boundary."""

    #: True when serialized() actually excludes concurrent work on a session.
    serializes_writes: bool = False

    @abstractmethod
    def create(self, session: Session) -> Session:
        """Store a new session. Returns the stored snapshot."""

    @abstractmethod
    def load(self, session_id: str) -> Optional[Session]:
        """Load a session by ID, or None."""

    @abstractmethod
    def save(self, session: Session) -> Session:
        """Replace a stored session. Returns the stored snapshot."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Delete a session if it exists."""

    @abstractmethod
    def list(self) -> List[Session]:
        """All stored sessions (debugging/admin)."""

    @asynccontextmanager
    async def serialized(self, session_id: str) -> AsyncIterator[None]:
        """Hold the per-session boundary while a read-modify-write runs."""
        yield


class InMemorySessionStore(SessionStore):
    """Unsynchronized dict storage for single-threaded dev and tests."""

    serializes_writes = False

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def create(self, session: Session) -> Session:
        stored = session.model_copy(update={"version": 1})
        self._sessions[session.id] = stored
        logger.debug("Created session", extra={"session_id": session.id})
        return stored

    def load(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def save(self, session: Session) -> Session:
        stored = session.model_copy(update={"version": session.version + 1})
        self._sessions[session.id] = stored
        return stored

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def list(self) -> List[Session]:
        return list(self._sessions.values())


class SQLiteSessionStore(SessionStore):
    """SQLite-backed store (WAL mode) with per-session locks and optimistic versions."""

    serializes_writes = True

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or default_settings.storage.sqlite_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Entries disappear once no turn holds or awaits the lock
        self._locks = weakref.WeakValueDictionary()
        self._init_database()

    def _init_database(self):
        """Initialize session table."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    version INTEGER NOT NULL,
                    data TEXT NOT NULL,  -- Session JSON
                    updated_at TEXT NOT NULL
                )
            """)

    @contextmanager
    def _get_connection(self):
        """Get database connection with commit/rollback handling."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Session storage failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @asynccontextmanager
    async def serialized(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        async with lock:
            yield

    def create(self, session: Session) -> Session:
        stored = session.model_copy(update={"version": 1})
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO sessions (id, version, data, updated_at) VALUES (?, ?, ?, ?)",
                (stored.id, stored.version, stored.model_dump_json(), stored.updated_at.isoformat()),
            )
        logger.debug("Created session", extra={"session_id": stored.id})
        return stored

    def load(self, session_id: str) -> Optional[Session]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()

        if row is None:
            return None
        return Session.model_validate_json(row["data"])

    def save(self, session: Session) -> Session:
        """
        Replace the stored session if nobody saved it since it was loaded.

        Raises:
            ConcurrentModificationError if the stored version moved on
            StorageError if the session does not exist
        """
        stored = session.model_copy(update={"version": session.version + 1})
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET version = ?, data = ?, updated_at = ? WHERE id = ? AND version = ?",
                (
                    stored.version,
                    stored.model_dump_json(),
                    stored.updated_at.isoformat(),
                    session.id,
                    session.version,
                ),
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT version FROM sessions WHERE id = ?", (session.id,)
                ).fetchone()
                if row is None:
                    raise StorageError(f"Session not found: {session.id}")
                raise ConcurrentModificationError(
                    f"Session {session.id} was modified concurrently "
                    f"(stored version {row['version']}, expected {session.version})"
                )
        return stored

    def delete(self, session_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        self._locks.pop(session_id, None)

    def list(self) -> List[Session]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT data FROM sessions ORDER BY updated_at").fetchall()
        return [Session.model_validate_json(row["data"]) for row in rows]


def create_session_store(config: Optional[CharlaSettings] = None) -> SessionStore:
    """
    Build the configured session store.

    Raises:
        ConfigurationError if the in-memory backend is requested outside dev/test
    """
    config = config or default_settings
    backend = config.storage.backend

    if backend == "memory":
        if config.env not in ("dev", "test"):
            raise ConfigurationError(
                f"In-memory session storage is not allowed in env={config.env}"
            )
        logger.info("Using in-memory session storage (development mode)")
        return InMemorySessionStore()

    if backend == "sqlite":
        logger.info("Using SQLite session storage", extra={"path": str(config.storage.sqlite_path)})
        return SQLiteSessionStore(config.storage.sqlite_path)

    raise ConfigurationError(f"Unsupported storage backend: {backend}")
