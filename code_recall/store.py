"""
Vector memory store.

Persists memories in SQLite and indexes their embeddings with the
sqlite-vec ``vec0`` virtual table. Searches are nearest-neighbour
lookups by L2 distance, converted to cosine similarity on the way out.
"""

import logging
import sqlite3
import struct
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import sqlite_vec

from .types import Memory, MemoryMatch, utc_now_iso


logger = logging.getLogger(__name__)


DEFAULT_DIMENSIONS = 384

# Minimum number of index candidates fetched per search
MIN_CANDIDATES = 20

IN_MEMORY = ":memory:"


class MemoryStoreError(Exception):
    """Base exception for memory store errors."""
    pass


class DimensionMismatchError(MemoryStoreError, ValueError):
    """Raised when an embedding does not match the store dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected {expected}-dim embedding, got {actual}")
        self.expected = expected
        self.actual = actual


def l2_to_similarity(distance: float) -> float:
    """
    Convert an L2 distance between unit vectors to cosine similarity.

    For unit vectors ``|a - b|^2 = 2 - 2 cos(a, b)``.
    """
    return 1.0 - (distance * distance) / 2.0


def candidate_count(limit: int) -> int:
    """Number of index candidates to fetch before threshold filtering."""
    return max(limit * 2, MIN_CANDIDATES)


class MemoryStore:
    """
    SQLite-backed store of memories and their embeddings.

    Every memory row has exactly one vector row with the same id; the
    two are written and deleted in the same transaction.

    Usage:
        with MemoryStore("~/.code-recall/abc123/memories.db") as store:
            memory_id = store.add("events use soft-deletes", vector, "session-1")
            matches = store.search(query_vector, threshold=0.3, limit=5)
    """

    # Schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str = IN_MEMORY,
        dimensions: int = DEFAULT_DIMENSIONS,
    ):
        """
        Open (and create if needed) a memory store.

        Args:
            db_path: Path to the database file, or ":memory:"
            dimensions: Embedding dimension for this store
        """
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")

        self.db_path = str(db_path)
        self.dimensions = dimensions
        self._lock = threading.RLock()

        if self.db_path != IN_MEMORY:
            self.db_path = str(Path(self.db_path).expanduser())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn: Optional[sqlite3.Connection] = self._connect()
        try:
            self._ensure_schema()
        except Exception:
            self.close()
            raise

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.enable_load_extension(True)
        try:
            sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)

        # One writer and concurrent readers across processes
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise MemoryStoreError("Memory store is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self.conn
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def _ensure_schema(self):
        """Create the database schema if needed."""
        with self._transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS store_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            cursor.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()
            current_version = row["version"] if row else 0

            if current_version < self.SCHEMA_VERSION:
                self._apply_migrations(cursor, current_version)

            cursor.execute("SELECT value FROM store_settings WHERE key = 'dimensions'")
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "INSERT INTO store_settings (key, value) VALUES ('dimensions', ?)",
                    (str(self.dimensions),),
                )
            elif int(row["value"]) != self.dimensions:
                raise DimensionMismatchError(int(row["value"]), self.dimensions)

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        """Apply schema migrations."""
        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS memories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    session_id TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_memories_created
                ON memories(created_at DESC)
            """)
            cursor.execute(f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS memories_vec USING vec0(
                    embedding float[{self.dimensions}]
                )
            """)

            cursor.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,)
            )

    def _check_dimensions(self, embedding: Sequence[float]):
        if len(embedding) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(embedding))

    def add(self, text: str, embedding: Sequence[float], session_id: str) -> int:
        """
        Store a memory with its embedding.

        Args:
            text: The fact to store
            embedding: Vector of the store's dimension (callers normalize)
            session_id: Provenance tag

        Returns:
            The new memory's id
        """
        if not text or not text.strip():
            raise ValueError("Memory text must not be empty")
        self._check_dimensions(embedding)
        blob = sqlite_vec.serialize_float32(list(embedding))

        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO memories (text, created_at, session_id) VALUES (?, ?, ?)",
                (text, utc_now_iso(), session_id),
            )
            memory_id = cursor.lastrowid
            cursor.execute(
                "INSERT INTO memories_vec (rowid, embedding) VALUES (?, ?)",
                (memory_id, blob),
            )

        logger.debug(f"Stored memory {memory_id} from session {session_id}")
        return memory_id

    def search(
        self,
        embedding: Sequence[float],
        threshold: float,
        limit: int,
    ) -> List[MemoryMatch]:
        """
        Find memories similar to an embedding.

        Fetches ``max(2 * limit, 20)`` nearest candidates, converts their
        distances to cosine similarity and keeps those at or above the
        threshold, up to ``limit``.

        Returns:
            Matches ordered by descending similarity
        """
        self._check_dimensions(embedding)
        if limit <= 0:
            return []

        blob = sqlite_vec.serialize_float32(list(embedding))
        with self._lock:
            rows = self.conn.execute("""
                SELECT m.id, m.text, m.created_at, m.session_id, v.distance
                FROM (
                    SELECT rowid, distance
                    FROM memories_vec
                    WHERE embedding MATCH ? AND k = ?
                    ORDER BY distance
                ) AS v
                JOIN memories AS m ON m.id = v.rowid
                ORDER BY v.distance
            """, (blob, candidate_count(limit))).fetchall()

        matches: List[MemoryMatch] = []
        for row in rows:
            similarity = l2_to_similarity(row["distance"])
            if similarity < threshold:
                continue
            matches.append(MemoryMatch(memory=self._row_to_memory(row), similarity=similarity))
            if len(matches) >= limit:
                break

        return matches

    def get(self, memory_id: int) -> Optional[Memory]:
        """Get a memory by id, including its stored embedding."""
        with self._lock:
            row = self.conn.execute(
                "SELECT id, text, created_at, session_id FROM memories WHERE id = ?",
                (memory_id,),
            ).fetchone()
            if row is None:
                return None
            vec_row = self.conn.execute(
                "SELECT embedding FROM memories_vec WHERE rowid = ?",
                (memory_id,),
            ).fetchone()

        memory = self._row_to_memory(row)
        if vec_row is not None:
            memory.embedding = list(struct.unpack(f"{self.dimensions}f", vec_row["embedding"]))
        return memory

    def delete(self, memory_id: int):
        """Delete a memory and its vector. Unknown ids are ignored."""
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM memories_vec WHERE rowid = ?", (memory_id,))
            cursor.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.debug(f"Deleted memory {memory_id}")

    def list(self) -> List[Memory]:
        """List all memories, newest first."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT id, text, created_at, session_id
                FROM memories
                ORDER BY created_at DESC, id DESC
            """).fetchall()
        return [self._row_to_memory(row) for row in rows]

    def count(self) -> int:
        """Get the number of stored memories."""
        with self._lock:
            row = self.conn.execute("SELECT COUNT(*) AS count FROM memories").fetchone()
        return row["count"]

    def close(self):
        """Close the database connection. Safe to call more than once."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> Memory:
        return Memory(
            id=row["id"],
            text=row["text"],
            created_at=row["created_at"],
            session_id=row["session_id"],
        )
