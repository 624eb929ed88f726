"""
Demonstration: Farm-to-Shelf Provenance

This example follows one batch of coffee from harvest to retail,
shows a rejected submission, then simulates a restart through
snapshot and restore.

Run with: python -m examples.demo_lifecycle
"""

from blocktrace.core import LedgerService, ManualClock
from blocktrace.db import InMemorySnapshotStore
from blocktrace.host import LedgerHost
from blocktrace.schemas import StepSubmission


STEPS = [
    StepSubmission(
        product_id="COFFEE-0042",
        actor_name="Alice Mwangi",
        role="Farmer",
        action="Harvested",
        location="Nyeri, Kenya",
        notes="Shade-grown SL28",
    ),
    StepSubmission(
        product_id="COFFEE-0042",
        actor_name="Kahawa Co-op",
        role="Processor",
        action="Washed and dried",
        location="Nyeri Mill",
    ),
    StepSubmission(
        product_id="COFFEE-0042",
        actor_name="Blue Line Freight",
        role="Distributor",
        action="Shipped",
        location="Port of Mombasa",
        notes="   ",  # blank notes are stored as absent
    ),
    StepSubmission(
        product_id="COFFEE-0042",
        actor_name="Corner Roastery",
        role="Retailer",
        action="Received",
        location="Rotterdam",
    ),
]


def main():
    print("=" * 60)
    print("BlockTrace - Farm-to-Shelf Demonstration")
    print("=" * 60)
    print()

    store = InMemorySnapshotStore()
    host = LedgerHost(LedgerService(clock=ManualClock(start=1_700_000_000_000_000_000, step=3_600_000_000_000)), store)
    host.start()
    ledger = host.ledger

    # ================================================================
    # STEP 1: RECORD CUSTODY STEPS
    # ================================================================
    print("=" * 60)
    print("STEP 1: RECORD CUSTODY STEPS")
    print("=" * 60)

    for submission in STEPS:
        result = ledger.add_step(submission)
        print(f"[OK] {result.ok} ({submission.action})")
    print()

    # ================================================================
    # STEP 2: REJECTED SUBMISSION
    # ================================================================
    print("=" * 60)
    print("STEP 2: REJECTED SUBMISSION")
    print("=" * 60)

    result = ledger.add_step({
        "product_id": "COFFEE-0042",
        "actor_name": "",
        "role": "Inspector",
        "action": "Inspected",
        "location": "Rotterdam",
    })
    print(f"[REJECTED] {result.err}")
    print(f"   Total steps unchanged: {ledger.total_step_count()}")
    print()

    # ================================================================
    # STEP 3: READ THE HISTORY
    # ================================================================
    print("=" * 60)
    print("STEP 3: PRODUCT HISTORY")
    print("=" * 60)

    for step in ledger.get_history("COFFEE-0042"):
        notes = step.notes if step.notes is not None else "(no notes)"
        print(f"   [{step.timestamp}] {step.role:<12} {step.action:<18} {step.location} - {notes}")
    print()

    # ================================================================
    # STEP 4: RESTART
    # ================================================================
    print("=" * 60)
    print("STEP 4: SNAPSHOT AND RESTORE")
    print("=" * 60)

    blob = host.on_before_shutdown()
    print(f"[OK] Snapshot saved ({len(blob)} bytes)")

    restarted = LedgerHost(LedgerService(), store)
    restarted.start()
    print(f"[OK] Restored: {restarted.ledger.info()}")

    same = restarted.ledger.get_history("COFFEE-0042") == ledger.get_history("COFFEE-0042")
    print(f"   Histories identical: {same}")
    print()

    print("=" * 60)
    print("DEMONSTRATION COMPLETE")
    print("=" * 60)


if __name__ == "__main__":
    main()
