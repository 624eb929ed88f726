"""
API Routes for the BlockTrace ledger

Command endpoint (the only write):
- POST /api/steps                         - AddStep

Query endpoints (sorted on read):
- GET /api/products                       - GetAllProducts
- GET /api/products/{product_id}/history  - GetProductHistory
- GET /api/steps/count                    - GetTotalStepsCount
- GET /api/info                           - GetCanisterInfo

No PATCH, no PUT, no DELETE. Steps are never edited.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core import LedgerService
from ..schemas import AddStepResult, Step, StepSubmission


router = APIRouter(prefix="/api", tags=["Ledger"])


# ============================================================
# Response Models
# ============================================================

class StepCount(BaseModel):
    """Total number of steps across all products."""
    total_steps: int


class LedgerInfo(BaseModel):
    """Ledger summary."""
    info: str
    product_count: int
    total_steps: int


# ============================================================
# Helper Functions
# ============================================================

def get_ledger(request: Request) -> LedgerService:
    """Get ledger from app state."""
    return request.app.state.ledger


# ============================================================
# Endpoints
# ============================================================

@router.post(
    "/steps",
    response_model=AddStepResult,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": AddStepResult, "description": "Step rejected"}},
)
def add_step(submission: StepSubmission, request: Request):
    """
    Record a custody step for a product.

    The ledger assigns the timestamp. Any timestamp in the body is ignored.

    Returns {"Ok": message} (201) or {"Err": reason} (400).
    """
    result = get_ledger(request).add_step(submission)
    status_code = status.HTTP_201_CREATED if result.is_ok else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status_code, content=result.to_wire())


@router.get("/products", response_model=list[str])
def get_all_products(request: Request):
    """Every product with at least one recorded step."""
    return get_ledger(request).list_products()


@router.get(
    "/products/{product_id}/history",
    response_model=list[Step],
    response_model_exclude_none=True,
)
def get_product_history(product_id: str, request: Request):
    """
    All steps for a product, oldest first.

    Unknown products return an empty list, not 404. Absent notes are
    omitted from each step.
    """
    return get_ledger(request).get_history(product_id)


@router.get("/steps/count", response_model=StepCount)
def get_total_steps_count(request: Request):
    """Total steps across all products."""
    return StepCount(total_steps=get_ledger(request).total_step_count())


@router.get("/info", response_model=LedgerInfo)
def get_ledger_info(request: Request):
    """Human-readable ledger summary plus the raw counts."""
    ledger = get_ledger(request)
    return LedgerInfo(
        info=ledger.info(),
        product_count=ledger.product_count(),
        total_steps=ledger.total_step_count(),
    )
