"""
Host Lifecycle

Wires a LedgerService to a SnapshotStore and exposes the three hooks
a host process calls around traffic:

- on_init(): fresh process, start with an empty ledger
- on_after_startup(blob): restore the ledger from the last snapshot
- on_before_shutdown(): snapshot the ledger and save it

The hooks never run concurrently with requests; the host guarantees it.

FAILURE RULE:
Persistence failures propagate. A process that cannot restore must not
start serving with an empty or partial ledger, and a process that cannot
save must not report a clean shutdown.

Backend is chosen by configuration (see blocktrace.db.config):
- BLOCKTRACE_SNAPSHOT_DRIVER: memory, file, psycopg2
- DATABASE_URL or DATABASE_HOST: selects psycopg2 by default
- Neither set: file backend at BLOCKTRACE_SNAPSHOT_PATH
"""

from typing import Optional

import psycopg2

from .core import Clock, LedgerService
from .db.config import (
    SnapshotDriver,
    get_database_config,
    get_snapshot_driver,
    get_snapshot_path,
)
from .db.store import (
    FileSnapshotStore,
    InMemorySnapshotStore,
    PostgresSnapshotStore,
    SnapshotStore,
    SnapshotStoreError,
)
from .observability import get_logger

logger = get_logger(__name__)


def create_snapshot_store(driver: Optional[SnapshotDriver] = None) -> SnapshotStore:
    """
    Create the SnapshotStore named by configuration.

    Never falls back to another backend: if the configured backend is
    unusable, raises SnapshotStoreError.
    """
    driver = driver or get_snapshot_driver()

    if driver == SnapshotDriver.MEMORY:
        logger.warning("Using in-memory snapshot store (no persistence)")
        return InMemorySnapshotStore()

    if driver == SnapshotDriver.FILE:
        path = get_snapshot_path()
        logger.info("Using file snapshot store", path=str(path))
        return FileSnapshotStore(path)

    config = get_database_config()
    if config is None:
        raise SnapshotStoreError(
            f"Snapshot driver is {driver.value} but no database is configured. "
            "Set DATABASE_URL or DATABASE_HOST."
        )

    def connection_factory():
        return psycopg2.connect(config.to_dsn())

    # Fail at startup, not at first save
    try:
        connection_factory().close()
    except psycopg2.Error as e:
        raise SnapshotStoreError(
            f"Could not connect to PostgreSQL at {config.to_url(include_password=False)}: {e}"
        ) from e

    logger.info(
        "PostgreSQL snapshot store ready",
        host=config.host,
        port=config.port,
        database=config.database,
    )
    return PostgresSnapshotStore(connection_factory)


class LedgerHost:
    """
    Lifecycle hooks for one ledger and one snapshot store.

    Usage:
        host = LedgerHost(LedgerService(), create_snapshot_store())
        host.start()              # restore or init
        ...serve traffic...
        host.on_before_shutdown() # persist
    """

    def __init__(self, ledger: LedgerService, store: SnapshotStore):
        self._ledger = ledger
        self._store = store

    @property
    def ledger(self) -> LedgerService:
        return self._ledger

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @classmethod
    def from_config(cls, clock: Optional[Clock] = None) -> "LedgerHost":
        """Host with a fresh ledger and the configured snapshot store."""
        return cls(LedgerService(clock=clock), create_snapshot_store())

    def on_init(self) -> None:
        """Fresh start: the ledger begins empty."""
        logger.info(
            "BlockTrace ledger initialized - starting with empty ledger",
            backend=self._store.describe(),
        )

    def on_after_startup(self, blob: Optional[bytes] = None) -> None:
        """
        Restore the ledger from a snapshot.

        Args:
            blob: Snapshot bytes. If None, loads the latest from the store.

        Raises:
            PersistenceError: If there is no snapshot to restore, or it is bad
        """
        if blob is None:
            blob = self._store.load()
            if blob is None:
                raise SnapshotStoreError(
                    f"No snapshot found in {self._store.describe()}"
                )

        self._ledger.restore(blob)
        logger.info(
            "BlockTrace ledger upgraded - restored products",
            product_count=self._ledger.product_count(),
            backend=self._store.describe(),
        )

    def on_before_shutdown(self) -> bytes:
        """
        Snapshot the ledger and save it to the store.

        Returns:
            The saved snapshot bytes

        Raises:
            PersistenceError: If encoding or saving fails
        """
        blob = self._ledger.snapshot()
        self._store.save(blob)
        logger.info(
            "Ledger snapshot saved",
            backend=self._store.describe(),
            size_bytes=len(blob),
        )
        return blob

    def start(self) -> None:
        """Restore if the store holds a snapshot, otherwise start empty."""
        blob = self._store.load()
        if blob is None:
            self.on_init()
        else:
            self.on_after_startup(blob)
