from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional, Union
from uuid import UUID


# Budget Schemas
class GenerateBudgetRequest(BaseModel):
    horizon: str  # sixMonths, yearEnd


class CellEditRequest(BaseModel):
    kind: Literal["cell"]
    month: str
    category: str
    income: Optional[float] = None
    expenses: Optional[float] = None


class RateEditRequest(BaseModel):
    kind: Literal["rate"]
    category: str
    incomeRatePct: Optional[float] = None
    expenseRatePct: Optional[float] = None


class OverrideRequest(BaseModel):
    """Budget to edit plus the edit itself; the budget is validated by the engine."""
    budget: Dict[str, Any]
    edit: Union[CellEditRequest, RateEditRequest] = Field(discriminator="kind")


# Planned Item Schemas
class PlannedItemBase(BaseModel):
    kind: Literal["income", "expense"]
    description: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    expected_date: date
    recurrence: Literal["one-off", "monthly"] = "one-off"


class PlannedItemCreate(PlannedItemBase):
    pass


class PlannedItemResponse(PlannedItemBase):
    id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
