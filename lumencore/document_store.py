"""
Memory store using SQLite.

One database file per scope instance: one per project and one shared global
store. Each file holds the memories table, secondary indexes for the
importance/recency orderings, and an FTS5 index over title, content and tags
that triggers keep in lockstep with the table.

Handles are cached per resolved path in a StoreRegistry. SQLite in WAL mode
must not be opened twice from one process with independent connections, so
every caller goes through the registry.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Optional

from .errors import StorageUnavailable
from .types import Memory

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    scope TEXT NOT NULL CHECK (scope IN ('project', 'global')),
    category TEXT NOT NULL CHECK (category IN ('decision', 'pattern', 'concept', 'note', 'task')),
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    importance INTEGER NOT NULL DEFAULT 3 CHECK (importance >= 1 AND importance <= 5),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memories_project_id ON memories(project_id);
CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category);
CREATE INDEX IF NOT EXISTS idx_memories_scope ON memories(scope);
CREATE INDEX IF NOT EXISTS idx_memories_importance ON memories(importance DESC);
CREATE INDEX IF NOT EXISTS idx_memories_updated_at ON memories(updated_at DESC);
"""

# FTS5 cannot update a row in place: the update trigger deletes then reinserts
FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS memories_fts USING fts5(
    title,
    content,
    tags,
    content='memories',
    content_rowid='rowid'
);

CREATE TRIGGER IF NOT EXISTS memories_ai AFTER INSERT ON memories BEGIN
    INSERT INTO memories_fts(rowid, title, content, tags)
    VALUES (new.rowid, new.title, new.content, new.tags);
END;

CREATE TRIGGER IF NOT EXISTS memories_ad AFTER DELETE ON memories BEGIN
    INSERT INTO memories_fts(memories_fts, rowid, title, content, tags)
    VALUES ('delete', old.rowid, old.title, old.content, old.tags);
END;

CREATE TRIGGER IF NOT EXISTS memories_au AFTER UPDATE ON memories BEGIN
    INSERT INTO memories_fts(memories_fts, rowid, title, content, tags)
    VALUES ('delete', old.rowid, old.title, old.content, old.tags);
    INSERT INTO memories_fts(rowid, title, content, tags)
    VALUES (new.rowid, new.title, new.content, new.tags);
END;
"""

MEMORY_COLUMNS = (
    "id, project_id, scope, category, title, content, tags, "
    "importance, created_at, updated_at"
)


def row_to_memory(row: sqlite3.Row) -> Memory:
    return Memory(
        id=row["id"],
        project_id=row["project_id"],
        scope=row["scope"],
        category=row["category"],
        title=row["title"],
        content=row["content"],
        tags=json.loads(row["tags"]),
        importance=row["importance"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class MemoryDatabase:
    """
    SQLite-backed store for memory records in a single scope instance.

    Services never touch the file directly; they use fetch_one(),
    fetch_all() and execute().
    """

    def __init__(self, db_path: Path, full_text: bool = True):
        """
        Args:
            db_path: Path to SQLite database file
            full_text: Create and use the FTS5 index (if SQLite supports it)

        Raises:
            StorageUnavailable: If the directory or file cannot be opened
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self.fts_available = False
        try:
            self._init_db(full_text)
        except (OSError, sqlite3.Error) as e:
            self.close()
            raise StorageUnavailable(f"Cannot open memory store {self._db_path}: {e}") from e

    def _init_db(self, full_text: bool) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.executescript(SCHEMA)
        if full_text:
            self._init_fts()
        self._conn.commit()
        logger.debug("Opened memory store %s (fts=%s)", self._db_path, self.fts_available)

    def _init_fts(self) -> None:
        """Create the FTS5 index and its triggers, backfilling a new index."""
        existed = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'memories_fts'"
        ).fetchone() is not None
        try:
            self._conn.executescript(FTS_SCHEMA)
        except sqlite3.OperationalError as e:
            # SQLite built without FTS5
            logger.debug("FTS5 not available for %s: %s", self._db_path, e)
            return
        self.fts_available = True

        if not existed:
            count = self._conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]
            if count:
                logger.debug("Rebuilding full-text index for %d memories", count)
                self._conn.execute("INSERT INTO memories_fts(memories_fts) VALUES ('rebuild')")

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # -------------------------------------------------------------------------
    # Query surface
    # -------------------------------------------------------------------------
    # sqlite3 errors leave this layer as StorageUnavailable, except for the
    # exception types a caller lists in ``passthrough``.

    @contextmanager
    def _storage_errors(self, passthrough: tuple[type[Exception], ...] = ()):
        if self._conn is None:
            raise StorageUnavailable(f"Memory store {self._db_path} is closed")
        try:
            yield self._conn
        except passthrough:
            raise
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Memory store {self._db_path} failed: {e}") from e

    def fetch_one(
        self,
        sql: str,
        params: Iterable[Any] = (),
        passthrough: tuple[type[Exception], ...] = (),
    ) -> Optional[sqlite3.Row]:
        with self._storage_errors(passthrough) as conn:
            return conn.execute(sql, tuple(params)).fetchone()

    def fetch_all(
        self,
        sql: str,
        params: Iterable[Any] = (),
        passthrough: tuple[type[Exception], ...] = (),
    ) -> list[sqlite3.Row]:
        with self._storage_errors(passthrough) as conn:
            return conn.execute(sql, tuple(params)).fetchall()

    def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run a write statement and commit. Returns the number of rows affected.

        Raises:
            StorageUnavailable: If the write fails (locked, constraint, I/O)
        """
        with self._storage_errors() as conn:
            try:
                cursor = conn.execute(sql, tuple(params))
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            return cursor.rowcount

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class StoreRegistry:
    """
    Cache of open MemoryDatabase handles, one per resolved file path.

    Owned by the composition root (LumenCore) and passed to the services.
    close_all() must run before a data directory is deleted.
    """

    def __init__(self, full_text: bool = True):
        self._full_text = full_text
        self._stores: dict[str, MemoryDatabase] = {}
        self._lock = threading.Lock()

    def acquire(self, db_path: Path) -> MemoryDatabase:
        key = str(Path(db_path).expanduser().resolve())
        with self._lock:
            store = self._stores.get(key)
            if store is None:
                store = MemoryDatabase(Path(key), full_text=self._full_text)
                self._stores[key] = store
            return store

    def close_all(self) -> None:
        with self._lock:
            for store in self._stores.values():
                store.close()
            self._stores.clear()

    def __len__(self) -> int:
        return len(self._stores)
