"""
Snapshot Store Abstraction

This module defines the SnapshotStore interface and three implementations:
- InMemorySnapshotStore: For development and testing
- FileSnapshotStore: Single-host deployments, one file on disk
- PostgresSnapshotStore: Shared durable storage

A SnapshotStore only moves opaque bytes. It does not decode them.
Decoding and verification belong to the ledger (SnapshotCodec).

DURABILITY CONTRACT:
- save() replaces the previous snapshot wholesale, never merges
- save() either fully succeeds or leaves the previous snapshot intact
- load() returns exactly the bytes last saved, or None if nothing was saved
- every backend failure surfaces as SnapshotStoreError, never silently
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Optional, Union

from ..core.errors import PersistenceError
from ..observability import get_logger

logger = get_logger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================

class SnapshotStoreError(PersistenceError):
    """Raised when the snapshot backend cannot read or write."""
    pass


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class SnapshotStore(ABC):
    """
    Abstract base class for snapshot storage.

    Holds at most one snapshot: the latest.
    """

    @abstractmethod
    def save(self, blob: bytes) -> None:
        """
        Persist a snapshot, replacing any previous one.

        Raises:
            SnapshotStoreError: If the write fails
        """
        pass

    @abstractmethod
    def load(self) -> Optional[bytes]:
        """
        Return the last saved snapshot, or None if there is none.

        Raises:
            SnapshotStoreError: If the read fails
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        """Short backend description for logs and health checks."""
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemorySnapshotStore(SnapshotStore):
    """
    In-memory implementation of SnapshotStore.

    Suitable for:
    - Development
    - Testing (simulating a restart within one process)

    NOT suitable for:
    - Production (nothing survives the process)
    """

    def __init__(self, blob: Optional[bytes] = None):
        self._blob = blob
        self._lock = Lock()

    def save(self, blob: bytes) -> None:
        with self._lock:
            self._blob = bytes(blob)

    def load(self) -> Optional[bytes]:
        with self._lock:
            return self._blob

    def describe(self) -> str:
        return "memory"

    def clear(self) -> None:
        """Forget the snapshot (for testing only)."""
        with self._lock:
            self._blob = None


# ============================================================
# FILE IMPLEMENTATION
# ============================================================

class FileSnapshotStore(SnapshotStore):
    """
    Snapshot kept in a single file.

    Writes go to a temporary file in the same directory, are fsynced,
    then renamed over the target with os.replace (atomic on POSIX and
    Windows). A crash mid-save leaves the previous snapshot in place.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, blob: bytes) -> None:
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=str(self._path.parent),
            )
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as e:
            raise SnapshotStoreError(
                f"Could not write snapshot to {self._path}: {e}"
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug("Snapshot written", path=str(self._path), size_bytes=len(blob))

    def load(self) -> Optional[bytes]:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise SnapshotStoreError(
                f"Could not read snapshot from {self._path}: {e}"
            ) from e

    def describe(self) -> str:
        return f"file:{self._path}"


# ============================================================
# POSTGRESQL IMPLEMENTATION (SYNC)
# ============================================================

class PostgresSnapshotStore(SnapshotStore):
    """
    PostgreSQL implementation of SnapshotStore.

    One row in ledger_snapshot (id = TRUE) holds the latest blob.
    Each save runs in its own transaction: the row is either fully
    replaced or untouched.

    Requirements:
    - psycopg2 for connection
    - Table is created on first use

    Usage:
        store = PostgresSnapshotStore(lambda: psycopg2.connect(dsn))
        store.save(ledger.snapshot())
    """

    SCHEMA_SQL = """
        CREATE TABLE IF NOT EXISTS ledger_snapshot (
            id BOOLEAN PRIMARY KEY DEFAULT TRUE CHECK (id),
            blob BYTEA NOT NULL,
            saved_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """

    def __init__(self, connection_factory: Callable[[], Any]):
        """
        Args:
            connection_factory: Callable that returns a psycopg2 connection.
        """
        self._connection_factory = connection_factory
        self._schema_ready = False

    def _ensure_schema(self, cursor) -> None:
        if not self._schema_ready:
            cursor.execute(self.SCHEMA_SQL)
            self._schema_ready = True

    def save(self, blob: bytes) -> None:
        conn = None
        try:
            conn = self._connection_factory()
            conn.autocommit = False
            with conn.cursor() as cursor:
                self._ensure_schema(cursor)
                cursor.execute(
                    """
                    INSERT INTO ledger_snapshot (id, blob, saved_at)
                    VALUES (TRUE, %s, now())
                    ON CONFLICT (id) DO UPDATE
                    SET blob = EXCLUDED.blob, saved_at = EXCLUDED.saved_at
                    """,
                    (bytes(blob),),
                )
            conn.commit()
        except Exception as e:
            if conn is not None:
                conn.rollback()
            raise SnapshotStoreError(f"Could not save snapshot to PostgreSQL: {e}") from e
        finally:
            if conn is not None:
                conn.close()

        logger.debug("Snapshot written", backend="postgres", size_bytes=len(blob))

    def load(self) -> Optional[bytes]:
        conn = None
        try:
            conn = self._connection_factory()
            with conn.cursor() as cursor:
                self._ensure_schema(cursor)
                cursor.execute("SELECT blob FROM ledger_snapshot WHERE id = TRUE")
                row = cursor.fetchone()
            conn.commit()
        except Exception as e:
            raise SnapshotStoreError(f"Could not load snapshot from PostgreSQL: {e}") from e
        finally:
            if conn is not None:
                conn.close()

        if row is None:
            return None
        # psycopg2 returns BYTEA as memoryview
        return bytes(row[0])

    def describe(self) -> str:
        return "postgres"
