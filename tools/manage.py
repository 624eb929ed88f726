#!/usr/bin/env python3
"""
BlockTrace Management CLI

Commands for managing the ledger snapshot:
- info: Print product and step counts
- products: List every product with recorded steps
- history: Print a product's steps, oldest first
- add-step: Record a step and save the snapshot
- export-snapshot: Write the ledger as readable JSON
- import-snapshot: Replace the stored snapshot with a snapshot file
- verify-snapshot: Decode and check the stored snapshot

Every command works against the configured snapshot store
(BLOCKTRACE_SNAPSHOT_DRIVER, BLOCKTRACE_SNAPSHOT_PATH, DATABASE_URL).

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage info
    python -m tools.manage history P1
    python -m tools.manage add-step --product-id P1 --actor-name Alice \\
        --role Farmer --action Harvested --location "Field A"
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def _load_host():
    """Host with the ledger restored from the configured store."""
    from blocktrace.host import LedgerHost

    host = LedgerHost.from_config()
    host.start()
    return host


def cmd_info(args):
    """Print the ledger summary."""
    host = _load_host()
    print(host.ledger.info())
    print(f"  Backend: {host.store.describe()}")


def cmd_products(args):
    """List products."""
    host = _load_host()
    products = host.ledger.list_products()
    if not products:
        print("No products recorded.")
        return
    for product_id in products:
        print(product_id)


def cmd_history(args):
    """Print a product's history."""
    host = _load_host()
    history = host.ledger.get_history(args.product_id)

    if not history:
        print(f"No steps recorded for product {args.product_id}")
        return

    if args.json:
        print(json.dumps(
            [step.model_dump(exclude_none=True) for step in history],
            indent=2,
        ))
        return

    print(f"History for {args.product_id} ({len(history)} steps):")
    for step in history:
        line = f"  [{step.timestamp}] {step.action} by {step.actor_name} ({step.role}) at {step.location}"
        if step.notes is not None:
            line += f" - {step.notes}"
        print(line)


def cmd_add_step(args):
    """Record a step, then save the snapshot."""
    from blocktrace.schemas import StepSubmission

    host = _load_host()
    result = host.ledger.add_step(StepSubmission(
        product_id=args.product_id,
        actor_name=args.actor_name,
        role=args.role,
        action=args.action,
        location=args.location,
        notes=args.notes,
    ))

    if not result.is_ok:
        print(f"[FAIL] {result.err}")
        return 1

    host.on_before_shutdown()
    print(f"[OK] {result.ok}")


def cmd_export_snapshot(args):
    """Export the stored snapshot as indented JSON."""
    host = _load_host()
    blob = host.ledger.snapshot()

    output_file = args.output or "ledger_snapshot.json"
    with open(output_file, "w") as f:
        json.dump(json.loads(blob), f, indent=2, sort_keys=True)

    print(f"[OK] Exported {host.ledger.product_count()} products, "
          f"{host.ledger.total_step_count()} steps to {output_file}")


def cmd_import_snapshot(args):
    """Replace the stored snapshot with a snapshot file."""
    from blocktrace.core import LedgerService, PersistenceError
    from blocktrace.host import create_snapshot_store

    raw = Path(args.input).read_bytes()
    # Accept indented exports by re-encoding canonically
    try:
        blob = LedgerService.load_from_snapshot(_canonical_bytes(raw)).snapshot()
    except PersistenceError as e:
        print(f"[FAIL] Snapshot rejected: {e}")
        return 1

    store = create_snapshot_store()
    store.save(blob)
    print(f"[OK] Imported snapshot into {store.describe()}")


def _canonical_bytes(raw: bytes) -> bytes:
    """Re-serialize a possibly indented export so the digest check applies."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    return json.dumps(
        parsed, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def cmd_verify_snapshot(args):
    """Decode and verify the stored snapshot."""
    from blocktrace.core import LedgerService, PersistenceError, SnapshotCodec
    from blocktrace.host import create_snapshot_store

    store = create_snapshot_store()
    blob = store.load()
    if blob is None:
        print(f"No snapshot in {store.describe()}")
        return 0

    try:
        ledger = LedgerService.load_from_snapshot(blob)
    except PersistenceError as e:
        print(f"[FAIL] Snapshot verification FAILED: {e}")
        return 1

    print("[OK] Snapshot verified")
    print(f"  {ledger.info()}")
    print(f"  Digest: {SnapshotCodec.digest(ledger.export_state())[:16]}...")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="BlockTrace Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Show ledger logs")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("info", help="Print product and step counts")
    subparsers.add_parser("products", help="List products")

    p_history = subparsers.add_parser("history", help="Print a product's history")
    p_history.add_argument("product_id", help="Product identifier")
    p_history.add_argument("--json", action="store_true", help="Print as JSON")

    p_add = subparsers.add_parser("add-step", help="Record a step")
    p_add.add_argument("--product-id", required=True)
    p_add.add_argument("--actor-name", required=True)
    p_add.add_argument("--role", required=True)
    p_add.add_argument("--action", required=True)
    p_add.add_argument("--location", required=True)
    p_add.add_argument("--notes", default=None)

    p_export = subparsers.add_parser("export-snapshot", help="Export the ledger to JSON")
    p_export.add_argument("--output", "-o", help="Output file (default: ledger_snapshot.json)")

    p_import = subparsers.add_parser("import-snapshot", help="Import a snapshot file")
    p_import.add_argument("input", help="Snapshot file (raw or exported JSON)")

    subparsers.add_parser("verify-snapshot", help="Verify the stored snapshot")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    from blocktrace.observability import setup_logging
    setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING, json_format=False)

    commands = {
        "info": cmd_info,
        "products": cmd_products,
        "history": cmd_history,
        "add-step": cmd_add_step,
        "export-snapshot": cmd_export_snapshot,
        "import-snapshot": cmd_import_snapshot,
        "verify-snapshot": cmd_verify_snapshot,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
