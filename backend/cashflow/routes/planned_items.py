from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from cashflow.database import get_db
from cashflow.db_helpers import get_user_id
from cashflow.schemas import PlannedItemCreate, PlannedItemResponse
from cashflow.services.ledger import PlannedItemStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[PlannedItemResponse])
def list_planned_items(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List planned items for the current user, by expected date."""
    user_id = get_user_id(user_id)
    return PlannedItemStore(db, user_id).rows()


@router.post("", response_model=PlannedItemResponse, status_code=201)
def create_planned_item(
    item: PlannedItemCreate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Create a planned income or expense."""
    user_id = get_user_id(user_id)
    try:
        return PlannedItemStore(db, user_id).create(**item.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{item_id}", status_code=204)
def delete_planned_item(
    item_id: UUID,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Delete a planned item."""
    user_id = get_user_id(user_id)
    if not PlannedItemStore(db, user_id).delete(item_id):
        raise HTTPException(status_code=404, detail="Planned item not found")
    return None
