from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging
import traceback

from cashflow.database import get_db
from cashflow.db_helpers import get_user_id
from cashflow.services.budget_service import BudgetService
from cashflow.services.ledger import BudgetStoreError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
def get_rolling_forecast(
    horizon: str = Query("sixMonths", description="sixMonths or yearEnd"),
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Actual months followed by forecast months with running balance and
    cash runway.
    """
    user_id = get_user_id(user_id)
    try:
        return BudgetService(db, user_id).rolling_forecast(horizon)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BudgetStoreError as e:
        raise HTTPException(status_code=503, detail=f"Budget storage unavailable: {str(e)}")
    except Exception as e:
        logger.error(f"[FORECAST] Error building rolling forecast: {type(e).__name__}: {e}")
        logger.error(f"[FORECAST] Traceback:\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=f"Rolling forecast failed: {str(e)}")
