"""
Service orchestrating budget forecasting for one user.
Handles:
1. Generating a projected budget from the user's ledger history
2. Saving, loading and deleting the user's single saved budget
3. Applying manual edits to a budget
4. Building the rolling forecast timeline with cash runway
5. Comparing the saved budget against actuals (variance)
"""
from datetime import date, datetime
from typing import Dict, List, Optional, Union
import logging

from sqlalchemy.orm import Session

from cashflow.config import settings
from cashflow.months import month_key, parse_horizon, parse_month
from cashflow.services.budget_projector import (
    Budget,
    BudgetEdit,
    apply_override,
    build_budget,
    refresh_planned_items,
)
from cashflow.services.history_aggregator import MonthlyHistory, aggregate_history, lookback_start
from cashflow.services.ledger import BudgetStore, PlannedItemStore, TransactionLedger
from cashflow.services.rolling_forecast import build_rolling_forecast, summarize
from cashflow.services.runway_calculator import calculate_runway
from cashflow.services.trend_estimator import TREND_WINDOW_MONTHS, estimate_growth_rates
from cashflow.services.variance_analyzer import analyze_variance

logger = logging.getLogger(__name__)

LOOKBACK_MONTHS = settings.forecast_lookback_months


def _month_start(key: str) -> date:
    year, month = parse_month(key)
    return date(year, month, 1)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BudgetService:
    """Budget forecasting operations for a single user."""

    def __init__(self, db: Session, user_id: str, lookback_months: int = LOOKBACK_MONTHS):
        self.db = db
        self.user_id = user_id
        self.lookback_months = lookback_months
        self.ledger = TransactionLedger(db, user_id)
        self.planned_items = PlannedItemStore(db, user_id)
        self.store = BudgetStore(db, user_id)

    def _history(self, current_month: str, today: date) -> MonthlyHistory:
        start = lookback_start(current_month, self.lookback_months)
        entries = self.ledger.entries(from_date=_month_start(start), to_date=today)
        return aggregate_history(entries, current_month=current_month, lookback_months=self.lookback_months)

    def _project(self, horizon, today: date) -> Budget:
        current_month = month_key(today)
        history = self._history(current_month, today)
        rates = estimate_growth_rates(history, TREND_WINDOW_MONTHS)
        return build_budget(
            rates,
            horizon,
            current_month,
            planned_items=self.planned_items.list(),
            historical_months=history.months,
            generated_at=datetime.combine(today, datetime.now().time()).replace(microsecond=0).isoformat(),
        )

    def generate(self, horizon, today: Optional[date] = None) -> Budget:
        """
        Project a budget from the trailing ledger history. Nothing is saved.

        Raises:
            ValueError: If the horizon is not recognised.
        """
        horizon = parse_horizon(horizon)
        today = today or date.today()
        budget = self._project(horizon, today)
        logger.info(
            f"[BUDGET] Generated {horizon.value} budget for user {self.user_id}: "
            f"{len(budget.category_growth_rates)} categories, "
            f"{len(budget.historical_months)} historical months"
        )
        return budget

    def save(self, payload: Union[Budget, Dict]) -> Dict:
        """
        Validate and persist a budget, replacing any saved one.

        Raises:
            ValueError: If the payload is not a valid budget.
            BudgetStoreError: If the store write fails.
        """
        budget = payload if isinstance(payload, Budget) else Budget.from_dict(payload)
        row = self.store.put(budget)
        return {
            "ok": True,
            "budget": budget.to_dict(),
            "createdAt": _iso(row.created_at),
            "updatedAt": _iso(row.updated_at),
        }

    def load(self) -> Dict:
        row = self.store.row()
        if row is None:
            return {"budget": None}
        return {
            "budget": self.store.get().to_dict(),
            "createdAt": _iso(row.created_at),
            "updatedAt": _iso(row.updated_at),
        }

    def delete(self) -> bool:
        return self.store.delete()

    def override(self, payload: Union[Budget, Dict], edit: BudgetEdit, today: Optional[date] = None) -> Budget:
        """
        Apply an edit to a budget payload and return the edited budget.

        Months up to and including the current month keep their planned
        values on rate edits. Nothing is saved.
        """
        budget = payload if isinstance(payload, Budget) else Budget.from_dict(payload)
        current_month = month_key(today or date.today())
        return apply_override(budget, edit, current_month=current_month)

    def rolling_forecast(self, horizon, today: Optional[date] = None, now: Optional[datetime] = None) -> Dict:
        """
        Actual months from the ledger followed by forecast months, with the
        running balance anchored on the current month and the cash runway.

        The saved budget is used when its horizon matches; otherwise a
        budget is projected on the fly and not persisted.
        """
        horizon = parse_horizon(horizon)
        today = today or date.today()
        current_month = month_key(today)

        saved = self.store.get()
        is_saved_budget = saved is not None and saved.horizon == horizon
        if is_saved_budget:
            budget = refresh_planned_items(saved, self.planned_items.list())
            logger.info(f"[FORECAST] Using saved {horizon.value} budget for user {self.user_id}")
        else:
            budget = self._project(horizon, today)
            logger.info(f"[FORECAST] No saved {horizon.value} budget for user {self.user_id}; projected on the fly")

        history = self._history(current_month, today)
        current_balance = self.ledger.current_balance(as_of=now)

        entries = build_rolling_forecast(history, budget, current_balance, current_month)
        runway = calculate_runway(entries, current_balance)

        summary = summarize(entries)
        summary.update(
            {
                "currentBalance": current_balance,
                "currentMonth": current_month,
                "horizon": horizon.value,
                "isSavedBudget": is_saved_budget,
                "runway": runway.to_dict(),
            }
        )
        return {
            "entries": [entry.to_dict() for entry in entries],
            "summary": summary,
            "currency": self.ledger.currency,
        }

    def variance(self, today: Optional[date] = None) -> Dict:
        """
        Plan vs actual for the saved budget's months that have started.

        Without a saved budget there is nothing to compare and the record
        list is empty.
        """
        today = today or date.today()
        current_month = month_key(today)

        row = self.store.row()
        if row is None:
            return {
                "hasBudget": False,
                "records": [],
                "horizon": None,
                "forecastMonths": [],
                "currency": self.ledger.currency,
                "budgetCreatedAt": None,
                "budgetUpdatedAt": None,
            }

        budget = refresh_planned_items(self.store.get(), self.planned_items.list())

        records: List = []
        first_month = budget.forecast_months[0]
        if first_month <= current_month:
            entries = self.ledger.entries(from_date=_month_start(first_month), to_date=today)
            history = aggregate_history(entries)
            records = analyze_variance(budget, history, current_month)

        logger.info(f"[VARIANCE] {len(records)} elapsed budget months for user {self.user_id}")
        return {
            "hasBudget": True,
            "records": [record.to_dict() for record in records],
            "horizon": budget.horizon.value,
            "forecastMonths": list(budget.forecast_months),
            "currency": self.ledger.currency,
            "budgetCreatedAt": _iso(row.created_at),
            "budgetUpdatedAt": _iso(row.updated_at),
        }
