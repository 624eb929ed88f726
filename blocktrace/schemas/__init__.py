# Canonical Schemas for the BlockTrace provenance ledger

from .step import AddStepResult, Step, StepSubmission

__all__ = [
    "AddStepResult",
    "Step",
    "StepSubmission",
]
