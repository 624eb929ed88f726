"""
Ledger Service - The Heart of the System

This is an append-only provenance ledger keyed by product.
Nothing is "edited". Steps happen.

The ledger:
- Accepts submitted steps
- Validates them (blank required fields are refused)
- Stamps them with its own clock
- Appends them under their product

Rules (enforced in code):
- append is the ONLY mutating operation besides restore
- timestamps come from the ledger clock, never from the caller
- a product with no steps does not exist in the mapping
- reads sort by timestamp, stable for ties (append order wins)
- totals are recomputed by full scan on every call

CONCURRENCY:
All operations, reads included, run under one re-entrant lock.
Snapshot/restore are called by the host with no traffic in flight,
but take the lock anyway.
"""

import time
from threading import RLock
from typing import Any, Mapping, Optional, Union

from ..observability import get_logger, get_metrics
from ..schemas import AddStepResult, Step, StepSubmission
from .clock import Clock, SystemClock
from .errors import LedgerError, PersistenceError, ValidationError
from .snapshot import SnapshotCodec
from .validator import Rejection, validate_step

logger = get_logger(__name__)

__all__ = [
    "LedgerService",
    "LedgerError",
    "ValidationError",
    "PersistenceError",
]


class LedgerService:
    """
    The core record store.

    Owns the mapping product_id -> [Step]. Construct one per process and
    hand it to whatever serves requests.
    """

    def __init__(self, clock: Optional[Clock] = None):
        """
        Initialize LedgerService.

        Args:
            clock: Timestamp source. If None, uses SystemClock.
        """
        self._clock = clock or SystemClock()
        self._history: dict[str, list[Step]] = {}
        self._lock = RLock()

    @property
    def clock(self) -> Clock:
        return self._clock

    # ================================================================
    # WRITES
    # ================================================================

    def append(self, submission: Union[StepSubmission, Mapping[str, Any]]) -> Step:
        """
        Validate, stamp and append a step.

        This is APPEND ONLY. No updates. No deletes. Ever.

        Raises:
            ValidationError: If a required field is blank. Nothing is stored.
        """
        start = time.perf_counter()
        outcome = validate_step(submission)
        if isinstance(outcome, Rejection):
            get_metrics().record_rejection()
            logger.info(
                "Step rejected",
                field=outcome.field,
                reason=outcome.reason,
            )
            raise ValidationError(outcome.reason, field=outcome.field)

        with self._lock:
            step = Step(
                product_id=outcome.product_id,
                actor_name=outcome.actor_name,
                role=outcome.role,
                action=outcome.action,
                location=outcome.location,
                notes=outcome.notes,
                timestamp=self._clock.now_ns(),
            )
            self._history.setdefault(step.product_id, []).append(step)

        get_metrics().record_append((time.perf_counter() - start) * 1000)

        logger.info(
            "Step added",
            product_id=step.product_id,
            action=step.action,
            step_timestamp=step.timestamp,
        )
        return step

    def add_step(self, submission: Union[StepSubmission, Mapping[str, Any]]) -> AddStepResult:
        """
        AddStep operation: Ok(confirmation) or Err(reason).

        Validation failures are ordinary results, never exceptions.
        """
        try:
            step = self.append(submission)
        except ValidationError as e:
            return AddStepResult.failure(e.reason)
        return AddStepResult.success(
            f"Step added successfully for product {step.product_id}"
        )

    # ================================================================
    # READS
    # ================================================================

    def get_history(self, product_id: str) -> list[Step]:
        """
        All steps for a product, oldest first.

        Unknown products return an empty list.
        sorted() is stable, so equal timestamps keep append order.
        """
        with self._lock:
            history = sorted(
                self._history.get(product_id, []),
                key=lambda s: s.timestamp,
            )
        logger.debug(
            "Retrieved product history",
            product_id=product_id,
            step_count=len(history),
        )
        return history

    def list_products(self) -> list[str]:
        """Every product with at least one step, sorted."""
        with self._lock:
            return sorted(self._history.keys())

    def product_count(self) -> int:
        with self._lock:
            return len(self._history)

    def total_step_count(self) -> int:
        """Sum of history lengths. Full scan, no maintained counter."""
        with self._lock:
            return sum(len(steps) for steps in self._history.values())

    def info(self) -> str:
        """Human-readable summary: product count and total step count."""
        with self._lock:
            product_count = len(self._history)
            total_steps = sum(len(steps) for steps in self._history.values())
        return (
            f"BlockTrace Ledger - Products: {product_count}, "
            f"Total Steps: {total_steps}"
        )

    # ================================================================
    # SNAPSHOT / RESTORE
    # Called by the host lifecycle only, never mid-traffic
    # ================================================================

    def export_state(self) -> dict[str, list[Step]]:
        """Copy of the raw mapping, per-product append order preserved."""
        with self._lock:
            return {
                product_id: list(steps)
                for product_id, steps in self._history.items()
            }

    def snapshot(self) -> bytes:
        """
        Serialize the entire ledger.

        Raises:
            PersistenceError: If the ledger cannot be encoded
        """
        with self._lock:
            blob = SnapshotCodec.encode(self._history)
            product_count = len(self._history)
            step_count = sum(len(steps) for steps in self._history.values())

        get_metrics().record_snapshot()
        logger.info(
            "Ledger snapshot taken",
            product_count=product_count,
            step_count=step_count,
            size_bytes=len(blob),
        )
        return blob

    def restore(self, blob: bytes) -> None:
        """
        Replace the entire in-memory ledger with the snapshot content.

        Decoding happens before the swap: if the blob is bad, the
        current ledger is left exactly as it was.

        Raises:
            PersistenceError: If the blob is corrupt or inconsistent
        """
        history = SnapshotCodec.decode(blob)

        with self._lock:
            self._history = history
            product_count = len(history)
            step_count = sum(len(steps) for steps in history.values())

        get_metrics().record_restore()
        logger.info(
            "Ledger restored from snapshot",
            product_count=product_count,
            step_count=step_count,
        )

    @classmethod
    def load_from_snapshot(
        cls,
        blob: bytes,
        clock: Optional[Clock] = None,
    ) -> "LedgerService":
        """
        Build a new LedgerService from a snapshot blob.

        Raises:
            PersistenceError: If the blob is corrupt or inconsistent
        """
        ledger = cls(clock=clock)
        ledger.restore(blob)
        return ledger
