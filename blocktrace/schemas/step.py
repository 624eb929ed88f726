"""
Canonical Step Schema

A step is one custody or provenance event for a product:
who did what, in what capacity, where.

Steps are written once and never edited.
The timestamp belongs to the ledger, never to the caller.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class StepSubmission(BaseModel):
    """
    A step as submitted by a caller.

    Field contents are NOT checked here. Blank, missing or null values are
    rejected by the validator with a message naming the field, so every field
    is optional at this layer.
    """
    product_id: Optional[str] = Field(
        default=None,
        description="Product identifier (partition key)"
    )

    actor_name: Optional[str] = Field(
        default=None,
        description="Who performed the action"
    )

    role: Optional[str] = Field(
        default=None,
        description="Capacity the actor acted in",
        examples=["Farmer", "Distributor", "Retailer"]
    )

    action: Optional[str] = Field(
        default=None,
        description="What happened to the product",
        examples=["Harvested", "Shipped", "Received"]
    )

    location: Optional[str] = Field(
        default=None,
        description="Where it happened"
    )

    notes: Optional[str] = Field(
        default=None,
        description="Free-form remarks. Blank notes are stored as absent."
    )

    # Accepted for wire compatibility, always replaced by the ledger
    timestamp: Optional[Any] = Field(
        default=None,
        description="Ignored. The ledger assigns the timestamp on append."
    )

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "P1",
                "actor_name": "Alice",
                "role": "Farmer",
                "action": "Harvested",
                "location": "Field A",
                "notes": "Organic batch",
            }
        }


class Step(BaseModel):
    """
    A stored step. Immutable.

    INVARIANTS (enforced by the ledger, not by this model):
    - product_id, actor_name, role, action, location non-empty after trim
    - notes is None or non-blank
    - timestamp assigned by the ledger clock
    """
    product_id: str
    actor_name: str
    role: str
    action: str
    location: str
    notes: Optional[str] = None
    timestamp: int = Field(
        ...,
        ge=0,
        description="Nanoseconds since the Unix epoch, assigned on append"
    )

    class Config:
        frozen = True
        # Unknown keys in a snapshot are corruption, not data to drop
        extra = "forbid"


class AddStepResult(BaseModel):
    """
    Outcome of an AddStep call.

    Exactly one of ok/err is set. Serialized by alias as
    {"Ok": "..."} or {"Err": "..."}.
    """
    ok: Optional[str] = Field(default=None, alias="Ok")
    err: Optional[str] = Field(default=None, alias="Err")

    class Config:
        populate_by_name = True

    @classmethod
    def success(cls, message: str) -> "AddStepResult":
        return cls(ok=message)

    @classmethod
    def failure(cls, reason: str) -> "AddStepResult":
        return cls(err=reason)

    @property
    def is_ok(self) -> bool:
        return self.err is None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
