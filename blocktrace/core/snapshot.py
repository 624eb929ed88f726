"""
Snapshot Codec

Deterministic serialization of the whole ledger for durable storage.
Same ledger -> same bytes. Always.

If this breaks, restores become ambiguous.
Every change here must be backward-compatible or versioned.

CANONICAL SERIALIZATION RULES:
1. Dictionary keys: sorted recursively (Unicode codepoint order)
2. Nulls: omitted entirely (absent notes -> no "notes" key)
3. Empty strings: preserved (they are valid data, distinct from absent)
4. Floats, sets, bytes: BANNED
5. JSON output: no extra whitespace, sorted keys, ASCII only
6. Step order inside a product: preserved exactly as appended

ENVELOPE:
    {"__snapshot_v": 1, "digest": "<sha256 of canonical ledger>", "ledger": {...}}

Decoding verifies version, digest, and every step. Any problem raises
PersistenceError. There is no partial decode.
"""

import hashlib
import hmac
import json
from typing import Any

from pydantic import ValidationError as SchemaError

from ..schemas import Step
from .errors import PersistenceError
from .validator import REQUIRED_FIELDS


class SnapshotCodec:
    """
    Canonical encode/decode for ledger snapshots.

    IMMUTABLE CONTRACT:
    - encode(decode(blob)) == blob for any blob this codec produced
    - absent notes and empty-string notes stay distinct
    """

    # Increment if serialization rules change in breaking ways
    FORMAT_VERSION = 1

    @classmethod
    def _serialize_value(cls, value: Any, path: str = "") -> Any:
        """Convert Python objects to canonical JSON-compatible values."""
        if value is None:
            return None  # Filtered out by _to_canonical_dict

        if isinstance(value, bool):
            return value

        if isinstance(value, int):
            return value

        if isinstance(value, float):
            raise PersistenceError(
                f"Cannot serialize float at {path}. "
                "Floats are banned in snapshots."
            )

        if isinstance(value, str):
            return value

        if isinstance(value, (list, tuple)):
            return [
                cls._serialize_value(v, f"{path}[{i}]")
                for i, v in enumerate(value)
            ]

        if isinstance(value, dict):
            return cls._to_canonical_dict(value, path)

        if hasattr(value, "model_dump"):
            return cls._to_canonical_dict(value.model_dump(mode="python"), path)

        if isinstance(value, (bytes, set)):
            raise PersistenceError(
                f"Cannot serialize {type(value).__name__} at {path}. "
                "Only JSON-compatible types are allowed."
            )

        raise PersistenceError(
            f"Cannot serialize {type(value).__name__} at {path}."
        )

    @classmethod
    def _to_canonical_dict(cls, data: dict[str, Any], path: str = "") -> dict[str, Any]:
        result = {}
        for key in sorted(data.keys()):
            if not isinstance(key, str):
                raise PersistenceError(
                    f"Dictionary key at {path} must be string, "
                    f"got {type(key).__name__}"
                )
            key_path = f"{path}.{key}" if path else key
            serialized = cls._serialize_value(data[key], key_path)
            if serialized is not None:
                result[key] = serialized
        return result

    @staticmethod
    def _dumps(data: Any) -> str:
        return json.dumps(
            data,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )

    @classmethod
    def canonicalize(cls, history: dict[str, list[Step]]) -> str:
        """Canonical JSON of the ledger mapping (no envelope)."""
        return cls._dumps(cls._to_canonical_dict(history))

    @classmethod
    def digest(cls, history: dict[str, list[Step]]) -> str:
        """SHA-256 hex digest of the canonical ledger."""
        return hashlib.sha256(cls.canonicalize(history).encode("utf-8")).hexdigest()

    @classmethod
    def encode(cls, history: dict[str, list[Step]]) -> bytes:
        """
        Encode the ledger mapping into a snapshot blob.

        Raises:
            PersistenceError: If the ledger holds unserializable data
        """
        canonical = cls._to_canonical_dict(history)
        digest = hashlib.sha256(cls._dumps(canonical).encode("utf-8")).hexdigest()
        envelope = {
            "__snapshot_v": cls.FORMAT_VERSION,
            "digest": digest,
            "ledger": canonical,
        }
        return cls._dumps(envelope).encode("utf-8")

    @classmethod
    def decode(cls, blob: bytes) -> dict[str, list[Step]]:
        """
        Decode a snapshot blob into a fresh ledger mapping.

        Raises:
            PersistenceError: On any corruption, version or invariant problem
        """
        if not isinstance(blob, (bytes, bytearray)):
            raise PersistenceError(
                f"Snapshot must be bytes, got {type(blob).__name__}"
            )

        try:
            envelope = json.loads(bytes(blob).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Snapshot is not valid JSON: {e}") from e

        if not isinstance(envelope, dict):
            raise PersistenceError("Snapshot envelope must be an object")

        version = envelope.get("__snapshot_v")
        if version != cls.FORMAT_VERSION:
            raise PersistenceError(
                f"Unsupported snapshot version: {version!r}. "
                f"Expected {cls.FORMAT_VERSION}."
            )

        raw_ledger = envelope.get("ledger")
        if not isinstance(raw_ledger, dict):
            raise PersistenceError("Snapshot 'ledger' must be an object")

        claimed = envelope.get("digest")
        computed = hashlib.sha256(cls._dumps(raw_ledger).encode("utf-8")).hexdigest()
        if not isinstance(claimed, str) or not hmac.compare_digest(computed, claimed.lower()):
            raise PersistenceError(
                f"Snapshot digest mismatch. "
                f"Computed: {computed[:16]}..., "
                f"Stored: {str(claimed)[:16]}..."
            )

        history: dict[str, list[Step]] = {}
        for product_id, raw_steps in raw_ledger.items():
            history[product_id] = cls._decode_steps(product_id, raw_steps)
        return history

    @staticmethod
    def _decode_steps(product_id: str, raw_steps: Any) -> list[Step]:
        if not isinstance(raw_steps, list):
            raise PersistenceError(
                f"Steps for product {product_id!r} must be a list"
            )
        if not raw_steps:
            raise PersistenceError(
                f"Product {product_id!r} has no steps. "
                "Empty sequences are never persisted."
            )

        steps = []
        for index, raw in enumerate(raw_steps):
            try:
                step = Step.model_validate(raw)
            except SchemaError as e:
                raise PersistenceError(
                    f"Invalid step {index} for product {product_id!r}: {e}"
                ) from e

            if step.product_id != product_id:
                raise PersistenceError(
                    f"Step {index} is filed under {product_id!r} "
                    f"but belongs to {step.product_id!r}"
                )
            for name, message in REQUIRED_FIELDS:
                if not getattr(step, name).strip():
                    raise PersistenceError(
                        f"Step {index} for product {product_id!r}: {message}"
                    )
            steps.append(step)
        return steps
