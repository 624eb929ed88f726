"""
Storage Layer for the BlockTrace ledger

Provides:
- SnapshotStore abstraction (memory, file, PostgreSQL)
- Backend selection and connection configuration
"""

from .store import (
    SnapshotStore,
    InMemorySnapshotStore,
    FileSnapshotStore,
    PostgresSnapshotStore,
    SnapshotStoreError,
)
from .config import (
    DatabaseConfig,
    SnapshotDriver,
    get_database_config,
    get_database_url,
    get_snapshot_driver,
    get_snapshot_path,
)

__all__ = [
    "SnapshotStore",
    "InMemorySnapshotStore",
    "FileSnapshotStore",
    "PostgresSnapshotStore",
    "SnapshotStoreError",
    "DatabaseConfig",
    "SnapshotDriver",
    "get_database_config",
    "get_database_url",
    "get_snapshot_driver",
    "get_snapshot_path",
]
