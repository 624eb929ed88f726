"""BlockTrace: append-only product provenance ledger."""

__version__ = "0.1.0"
