"""
Step Validator

Pure function. No state, no clock, no storage.

Rules (checked in order, first failure wins):
- product_id, actor_name, role, action, location must be non-empty
  after trimming surrounding whitespace
- notes that trim to empty become absent (None); not an error
- any incoming timestamp is ignored

Required values are stored as submitted. Trimming is only the
emptiness test.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from ..schemas import StepSubmission


# (field, rejection message) in check order
REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("product_id", "Product ID cannot be empty"),
    ("actor_name", "Actor name cannot be empty"),
    ("role", "Role cannot be empty"),
    ("action", "Action cannot be empty"),
    ("location", "Location cannot be empty"),
)


@dataclass(frozen=True)
class NormalizedStep:
    """A step that passed validation, still without a timestamp."""
    product_id: str
    actor_name: str
    role: str
    action: str
    location: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class Rejection:
    """Why a step was refused."""
    field: str
    reason: str


def _read(candidate: Union[StepSubmission, Mapping[str, Any]], name: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(name)
    return getattr(candidate, name, None)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def normalize_notes(notes: Optional[str]) -> Optional[str]:
    """Blank notes are absent notes."""
    if notes is None or not notes.strip():
        return None
    return notes


def validate_step(
    candidate: Union[StepSubmission, Mapping[str, Any]],
) -> Union[NormalizedStep, Rejection]:
    """
    Validate and normalize a candidate step.

    Args:
        candidate: StepSubmission or a mapping with the same keys

    Returns:
        NormalizedStep on success, Rejection naming the first bad field
    """
    for name, message in REQUIRED_FIELDS:
        if _is_blank(_read(candidate, name)):
            return Rejection(field=name, reason=message)

    notes = _read(candidate, "notes")
    if notes is not None and not isinstance(notes, str):
        return Rejection(field="notes", reason="Notes must be text")

    return NormalizedStep(
        product_id=_read(candidate, "product_id"),
        actor_name=_read(candidate, "actor_name"),
        role=_read(candidate, "role"),
        action=_read(candidate, "action"),
        location=_read(candidate, "location"),
        notes=normalize_notes(notes),
    )
