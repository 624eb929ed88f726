# Core ledger services
from .errors import LedgerError, ValidationError, PersistenceError
from .clock import Clock, SystemClock, ManualClock
from .validator import (
    NormalizedStep,
    Rejection,
    REQUIRED_FIELDS,
    normalize_notes,
    validate_step,
)
from .snapshot import SnapshotCodec
from .ledger import LedgerService

__all__ = [
    "LedgerError",
    "ValidationError",
    "PersistenceError",
    "Clock",
    "SystemClock",
    "ManualClock",
    "NormalizedStep",
    "Rejection",
    "REQUIRED_FIELDS",
    "normalize_notes",
    "validate_step",
    "SnapshotCodec",
    "LedgerService",
]
