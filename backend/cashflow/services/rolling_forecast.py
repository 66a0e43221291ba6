"""
Rolling forecast: one chronological timeline of actual and forecast months.

Months up to and including the current month are "actual" and always use
the aggregated ledger, even when the budget has a value for them. Later
months are "forecast" and use the budget cells.

The running balance is anchored on the current month, whose balance is the
live ledger balance. Forecast balances are walked forward from the anchor
and earlier actual balances are walked backward from it, so the
actual/forecast boundary always agrees with the ledger.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cashflow.months import add_months, months_between
from cashflow.services.budget_projector import Budget
from cashflow.services.history_aggregator import Flow, MonthlyHistory

TYPE_ACTUAL = "actual"
TYPE_FORECAST = "forecast"


@dataclass
class RollingForecastEntry:
    month: str
    type: str
    income: float
    expenses: float
    net: float
    balance: float = 0.0
    by_category: Dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "type": self.type,
            "income": self.income,
            "expenses": self.expenses,
            "net": self.net,
            "balance": self.balance,
            "byCategory": self.by_category,
        }


def _entry(month: str, entry_type: str, flow: Flow, by_category: Dict[str, dict]) -> RollingForecastEntry:
    income = round(flow.income, 2)
    expenses = round(flow.expenses, 2)
    return RollingForecastEntry(
        month=month,
        type=entry_type,
        income=income,
        expenses=expenses,
        net=round(income - expenses, 2),
        by_category=by_category,
    )


def _actual_entries(history: MonthlyHistory, current_month: str) -> List[RollingForecastEntry]:
    past_months = [m for m in history.months if m <= current_month]
    first = past_months[0] if past_months else current_month

    entries = []
    for month in months_between(first, current_month):
        by_category = {
            name: {"income": round(flow.income, 2), "expenses": round(flow.expenses, 2)}
            for name, flow in sorted(history.by_category.get(month, {}).items())
        }
        entries.append(_entry(month, TYPE_ACTUAL, history.month_total(month), by_category))
    return entries


def _forecast_entries(budget: Optional[Budget], current_month: str) -> List[RollingForecastEntry]:
    if budget is None:
        return []

    future_months = [m for m in budget.forecast_months if m > current_month]
    if not future_months:
        return []

    entries = []
    # forecastMonths is contiguous, so only the gap before it needs filling
    for month in months_between(add_months(current_month, 1), future_months[-1]):
        cells = budget.month_cells(month)
        by_category = {
            name: {"income": cell.income, "expenses": cell.expenses}
            for name, cell in sorted(cells.items())
        }
        entries.append(_entry(month, TYPE_FORECAST, budget.month_total(month), by_category))
    return entries


def _apply_balances(entries: List[RollingForecastEntry], anchor_index: int, current_balance: float) -> None:
    entries[anchor_index].balance = current_balance

    for i in range(anchor_index + 1, len(entries)):
        entries[i].balance = round(entries[i - 1].balance + entries[i].net, 2)

    for i in range(anchor_index - 1, -1, -1):
        entries[i].balance = round(entries[i + 1].balance - entries[i + 1].net, 2)


def _totals(entries: List[RollingForecastEntry]) -> dict:
    income = round(sum(e.income for e in entries), 2)
    expenses = round(sum(e.expenses for e in entries), 2)
    return {
        "months": len(entries),
        "income": income,
        "expenses": expenses,
        "net": round(income - expenses, 2),
    }


def build_rolling_forecast(
    history: MonthlyHistory,
    budget: Optional[Budget],
    current_balance: float,
    current_month: str,
) -> List[RollingForecastEntry]:
    """
    Merge actual and forecast months into one timeline with balances.

    The entry for `current_month` is always present and always carries
    exactly `current_balance`.
    """
    actual = _actual_entries(history, current_month)
    forecast = _forecast_entries(budget, current_month)

    entries = actual + forecast
    _apply_balances(entries, len(actual) - 1, current_balance)
    return entries


def summarize(entries: List[RollingForecastEntry]) -> dict:
    actual = [e for e in entries if e.type == TYPE_ACTUAL]
    forecast = [e for e in entries if e.type == TYPE_FORECAST]
    return {
        "actual": _totals(actual),
        "forecast": _totals(forecast),
        "total": _totals(entries),
    }
