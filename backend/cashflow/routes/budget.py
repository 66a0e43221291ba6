from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import logging
import traceback

from cashflow.database import get_db
from cashflow.db_helpers import get_user_id
from cashflow.schemas import CellEditRequest, GenerateBudgetRequest, OverrideRequest
from cashflow.services.budget_projector import CellEdit, RateEdit
from cashflow.services.budget_service import BudgetService
from cashflow.services.ledger import BudgetStoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _store_unavailable(e: BudgetStoreError) -> HTTPException:
    return HTTPException(status_code=503, detail=f"Budget storage unavailable: {str(e)}")


@router.post("/generate")
def generate_budget(
    request: GenerateBudgetRequest,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Project a budget from the trailing ledger history without saving it."""
    user_id = get_user_id(user_id)
    try:
        budget = BudgetService(db, user_id).generate(request.horizon)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"[BUDGET] Error generating budget: {type(e).__name__}: {e}")
        logger.error(f"[BUDGET] Traceback:\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=f"Budget generation failed: {str(e)}")
    return budget.to_dict()


@router.put("")
def save_budget(
    payload: Dict[str, Any] = Body(...),
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Save a budget, replacing the user's current one."""
    user_id = get_user_id(user_id)
    try:
        return BudgetService(db, user_id).save(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BudgetStoreError as e:
        raise _store_unavailable(e)


@router.get("")
def load_budget(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Get the saved budget, or {"budget": null} when there is none."""
    user_id = get_user_id(user_id)
    try:
        return BudgetService(db, user_id).load()
    except BudgetStoreError as e:
        raise _store_unavailable(e)
    except ValueError as e:
        # A stored row that no longer parses is a server-side problem
        logger.error(f"[BUDGET] Saved budget for user {user_id} is invalid: {e}")
        raise HTTPException(status_code=500, detail=f"Saved budget is invalid: {str(e)}")


@router.delete("")
def delete_budget(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Delete the saved budget. Deleting when none exists is not an error."""
    user_id = get_user_id(user_id)
    try:
        deleted = BudgetService(db, user_id).delete()
    except BudgetStoreError as e:
        raise _store_unavailable(e)
    return {"ok": True, "deleted": deleted}


@router.post("/override")
def override_budget(
    request: OverrideRequest,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Apply a cell or rate edit to the given budget and return the result."""
    user_id = get_user_id(user_id)

    edit = request.edit
    if isinstance(edit, CellEditRequest):
        budget_edit = CellEdit(
            month=edit.month,
            category=edit.category,
            income=edit.income,
            expenses=edit.expenses,
        )
    else:
        budget_edit = RateEdit(
            category=edit.category,
            income_rate_pct=edit.incomeRatePct,
            expense_rate_pct=edit.expenseRatePct,
        )

    try:
        budget = BudgetService(db, user_id).override(request.budget, budget_edit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return budget.to_dict()


@router.get("/variance")
def budget_variance(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Plan vs actual for the saved budget's elapsed months."""
    user_id = get_user_id(user_id)
    try:
        return BudgetService(db, user_id).variance()
    except BudgetStoreError as e:
        raise _store_unavailable(e)
    except ValueError as e:
        logger.error(f"[VARIANCE] Saved budget for user {user_id} is invalid: {e}")
        raise HTTPException(status_code=500, detail=f"Saved budget is invalid: {str(e)}")
