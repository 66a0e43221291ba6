"""
Database-backed collaborators of the forecasting engine.

Everything here is scoped to one owner. The engine itself never touches the
session; it only sees LedgerEntry, PlannedEntry and Budget values.
"""
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging
import traceback

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from cashflow.models import Budget as BudgetRow, Category, PlannedItem, Transaction, User
from cashflow.services.budget_projector import (
    RECURRENCE_MONTHLY,
    RECURRENCE_ONE_OFF,
    Budget,
    PlannedEntry,
)
from cashflow.services.history_aggregator import LedgerEntry

logger = logging.getLogger(__name__)

PLANNED_ITEM_KINDS = ("income", "expense")
PLANNED_ITEM_RECURRENCES = (RECURRENCE_ONE_OFF, RECURRENCE_MONTHLY)


class BudgetStoreError(Exception):
    """Raised when the budget store cannot be read or written."""


def get_functional_currency(db: Session, user_id: str) -> str:
    user = db.query(User).filter(User.id == user_id).first()
    return (user.functional_currency if user and user.functional_currency else "EUR")


def _start_of_day(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _end_of_day(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)


class TransactionLedger:
    """
    Read-only view of a user's booked transactions in their reporting
    currency. Transactions excluded from analytics are invisible here.
    """

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id
        self.currency = get_functional_currency(db, user_id)

    def _base_filters(self):
        return [
            Transaction.user_id == self.user_id,
            Transaction.currency == self.currency,
            Transaction.include_in_analytics.is_(True),
        ]

    def entries(self, from_date: Optional[date] = None, to_date: Optional[date] = None) -> List[LedgerEntry]:
        """
        Ledger entries with their resolved category name.

        The user-assigned category wins over the system-assigned one.
        """
        user_category = aliased(Category)
        system_category = aliased(Category)

        query = (
            self.db.query(
                Transaction.amount,
                Transaction.booked_at,
                user_category.name,
                system_category.name,
            )
            .outerjoin(user_category, Transaction.category_id == user_category.id)
            .outerjoin(system_category, Transaction.category_system_id == system_category.id)
            .filter(*self._base_filters())
        )
        if from_date is not None:
            query = query.filter(Transaction.booked_at >= _start_of_day(from_date))
        if to_date is not None:
            query = query.filter(Transaction.booked_at <= _end_of_day(to_date))

        rows = query.order_by(Transaction.booked_at).all()
        logger.debug(f"[LEDGER] Loaded {len(rows)} transactions for user {self.user_id} in {self.currency}")

        return [
            LedgerEntry(
                amount=amount,
                booked_at=booked_at,
                category=override_name or system_name,
            )
            for amount, booked_at, override_name, system_name in rows
        ]

    def current_balance(self, as_of: Optional[datetime] = None) -> float:
        """Signed sum of every visible transaction booked up to `as_of`."""
        as_of = as_of or datetime.utcnow()

        transaction_sum = self.db.query(func.sum(Transaction.amount)).filter(
            *self._base_filters(),
            Transaction.booked_at <= as_of,
        ).scalar()

        # sum() returns NULL when there are no rows
        return round(float(Decimal(str(transaction_sum or 0))), 2)


class PlannedItemStore:
    """CRUD over the user's planned items."""

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def rows(self) -> List[PlannedItem]:
        return (
            self.db.query(PlannedItem)
            .filter(PlannedItem.user_id == self.user_id)
            .order_by(PlannedItem.expected_date, PlannedItem.created_at)
            .all()
        )

    def list(self) -> List[PlannedEntry]:
        return [
            PlannedEntry(
                kind=row.kind,
                amount=float(row.amount),
                expected_date=row.expected_date,
                recurrence=row.recurrence or RECURRENCE_ONE_OFF,
                description=row.description or "",
            )
            for row in self.rows()
        ]

    def create(
        self,
        kind: str,
        description: str,
        amount: Decimal,
        expected_date: date,
        recurrence: str = RECURRENCE_ONE_OFF,
    ) -> PlannedItem:
        """
        Add a planned item.

        Raises:
            ValueError: If kind, recurrence or amount are invalid.
        """
        if kind not in PLANNED_ITEM_KINDS:
            raise ValueError(f"kind must be one of {', '.join(PLANNED_ITEM_KINDS)}")
        if recurrence not in PLANNED_ITEM_RECURRENCES:
            raise ValueError(f"recurrence must be one of {', '.join(PLANNED_ITEM_RECURRENCES)}")
        if amount is None or Decimal(str(amount)) <= 0:
            raise ValueError("amount must be greater than zero")
        if not description or not description.strip():
            raise ValueError("description is required")

        item = PlannedItem(
            user_id=self.user_id,
            kind=kind,
            description=description.strip(),
            amount=Decimal(str(amount)),
            expected_date=expected_date,
            recurrence=recurrence,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"[PLANNED] Created {recurrence} {kind} item {item.id} for user {self.user_id}")
        return item

    def delete(self, item_id: UUID) -> bool:
        item = self.db.query(PlannedItem).filter(
            PlannedItem.id == item_id,
            PlannedItem.user_id == self.user_id,
        ).first()
        if not item:
            return False
        self.db.delete(item)
        self.db.commit()
        logger.info(f"[PLANNED] Deleted item {item_id} for user {self.user_id}")
        return True


class BudgetStore:
    """
    The single saved budget of a user.

    Stored rows are parsed back through Budget.from_dict, so what comes out
    of get() is exactly what was put().
    """

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def row(self) -> Optional[BudgetRow]:
        try:
            return self.db.query(BudgetRow).filter(BudgetRow.user_id == self.user_id).first()
        except SQLAlchemyError as e:
            logger.error(f"[BUDGET] Failed to read budget for user {self.user_id}: {e}")
            logger.error(traceback.format_exc())
            self.db.rollback()
            raise BudgetStoreError("Could not read the saved budget") from e

    def get(self) -> Optional[Budget]:
        row = self.row()
        if row is None:
            return None
        return Budget.from_dict(
            {
                "horizon": row.horizon,
                "forecastMonths": row.forecast_months,
                "categoryGrowthRates": row.category_growth_rates,
                "budget": row.budget_data,
                "historicalMonths": row.historical_months,
                "generatedAt": row.generated_at,
            }
        )

    def put(self, budget: Budget) -> BudgetRow:
        """Insert or replace the user's budget (last write wins)."""
        data = budget.to_dict()
        try:
            row = self.db.query(BudgetRow).filter(BudgetRow.user_id == self.user_id).first()
            if row is None:
                row = BudgetRow(user_id=self.user_id)
                self.db.add(row)

            row.horizon = data["horizon"]
            row.forecast_months = data["forecastMonths"]
            row.category_growth_rates = data["categoryGrowthRates"]
            row.budget_data = data["budget"]
            row.historical_months = data["historicalMonths"]
            row.generated_at = data["generatedAt"]
            row.updated_at = datetime.utcnow()

            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"[BUDGET] Failed to save budget for user {self.user_id}: {e}")
            logger.error(traceback.format_exc())
            self.db.rollback()
            raise BudgetStoreError("Could not save the budget") from e

        logger.info(f"[BUDGET] Saved {data['horizon']} budget for user {self.user_id}")
        return row

    def delete(self) -> bool:
        try:
            deleted = self.db.query(BudgetRow).filter(BudgetRow.user_id == self.user_id).delete(
                synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"[BUDGET] Failed to delete budget for user {self.user_id}: {e}")
            logger.error(traceback.format_exc())
            self.db.rollback()
            raise BudgetStoreError("Could not delete the budget") from e

        logger.info(f"[BUDGET] Deleted budget for user {self.user_id} (rows={deleted})")
        return deleted > 0
