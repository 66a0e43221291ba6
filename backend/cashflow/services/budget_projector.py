"""
Budget projection and budget edits.

The projector compounds each category's baseline forward over the forecast
horizon and then folds planned one-off/recurring items into the synthetic
"Planned Items" category.

Every cell of a budget is tagged with its source:
- computed: owned by the projector, may be recomputed (rate edits,
  planned item refresh),
- manual: entered by the user, preserved verbatim and never recomputed.

All functions here are pure. Edits go through `apply_override`, which
returns a new Budget and leaves its input untouched.
"""
import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from cashflow.months import (
    Horizon,
    forecast_months_for,
    month_key,
    parse_horizon,
    parse_month,
    validate_forecast_months,
)
from cashflow.services.history_aggregator import Flow
from cashflow.services.trend_estimator import CategoryGrowthRate

logger = logging.getLogger(__name__)

PLANNED_ITEMS_CATEGORY = "Planned Items"

SOURCE_COMPUTED = "computed"
SOURCE_MANUAL = "manual"
CELL_SOURCES = (SOURCE_COMPUTED, SOURCE_MANUAL)

RECURRENCE_ONE_OFF = "one-off"
RECURRENCE_MONTHLY = "monthly"


@dataclass
class BudgetCell:
    income: float = 0.0
    expenses: float = 0.0
    source: str = SOURCE_COMPUTED

    @property
    def net(self) -> float:
        return self.income - self.expenses

    @property
    def is_manual(self) -> bool:
        return self.source == SOURCE_MANUAL

    def to_dict(self) -> dict:
        return {"income": self.income, "expenses": self.expenses, "source": self.source}

    @classmethod
    def from_dict(cls, data: dict, where: str = "") -> "BudgetCell":
        if not isinstance(data, dict):
            raise ValueError(f"Budget cell {where} must be an object")
        try:
            income = float(data.get("income", 0) or 0)
            expenses = float(data.get("expenses", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Budget cell {where} has non-numeric values") from exc
        _check_amount(income, f"income of {where}")
        _check_amount(expenses, f"expenses of {where}")

        source = data.get("source") or SOURCE_COMPUTED
        if source not in CELL_SOURCES:
            raise ValueError(f"Budget cell {where} has unknown source {source!r}")
        return cls(income=income, expenses=expenses, source=source)


@dataclass
class PlannedEntry:
    """Expected one-off or monthly income/expense entered by the user."""
    kind: str  # income, expense
    amount: float
    expected_date: date
    recurrence: str = RECURRENCE_ONE_OFF
    description: str = ""


@dataclass
class Budget:
    horizon: Horizon
    forecast_months: List[str]
    category_growth_rates: Dict[str, CategoryGrowthRate] = field(default_factory=dict)
    cells: Dict[str, Dict[str, BudgetCell]] = field(default_factory=dict)
    historical_months: List[str] = field(default_factory=list)
    generated_at: Optional[str] = None

    def month_cells(self, month: str) -> Dict[str, BudgetCell]:
        return self.cells.get(month, {})

    def month_total(self, month: str) -> Flow:
        total = Flow()
        for cell in self.month_cells(month).values():
            total.income += cell.income
            total.expenses += cell.expenses
        return total

    def to_dict(self) -> dict:
        return {
            "horizon": self.horizon.value,
            "forecastMonths": list(self.forecast_months),
            "categoryGrowthRates": {
                name: rate.to_dict() for name, rate in self.category_growth_rates.items()
            },
            "budget": {
                month: {name: cell.to_dict() for name, cell in categories.items()}
                for month, categories in self.cells.items()
            },
            "historicalMonths": list(self.historical_months),
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Budget":
        """
        Parse and validate a budget payload.

        Raises:
            ValueError: If any field is missing or violates the budget
                invariants (contiguous months, horizon length, non-negative
                cells, cells only in forecast months).
        """
        if not isinstance(data, dict):
            raise ValueError("Budget payload must be an object")

        horizon = parse_horizon(data.get("horizon"))

        forecast_months = data.get("forecastMonths")
        if not isinstance(forecast_months, list):
            raise ValueError("forecastMonths is required and must be a list")
        forecast_months = [str(m) for m in forecast_months]
        validate_forecast_months(forecast_months)
        generated_at = data.get("generatedAt")
        _check_horizon_length(horizon, forecast_months, generated_at)

        raw_rates = data.get("categoryGrowthRates")
        if raw_rates is None:
            raw_rates = {}
        if not isinstance(raw_rates, dict):
            raise ValueError("categoryGrowthRates must be an object keyed by category")
        rates = {str(name): CategoryGrowthRate.from_dict(value) for name, value in raw_rates.items()}

        raw_budget = data.get("budget")
        if raw_budget is None:
            raw_budget = {}
        if not isinstance(raw_budget, dict):
            raise ValueError("budget must be an object keyed by month")

        allowed = set(forecast_months)
        cells: Dict[str, Dict[str, BudgetCell]] = {}
        for month, categories in raw_budget.items():
            if month not in allowed:
                raise ValueError(f"budget contains month {month!r} outside forecastMonths")
            if not isinstance(categories, dict):
                raise ValueError(f"budget[{month!r}] must be an object keyed by category")
            cells[month] = {
                str(name): BudgetCell.from_dict(value, where=f"{month}/{name}")
                for name, value in categories.items()
            }

        return cls(
            horizon=horizon,
            forecast_months=forecast_months,
            category_growth_rates=rates,
            cells=cells,
            historical_months=[str(m) for m in data.get("historicalMonths") or []],
            generated_at=generated_at,
        )


@dataclass
class CellEdit:
    """Manual override of one budget cell."""
    month: str
    category: str
    income: Optional[float] = None
    expenses: Optional[float] = None


@dataclass
class RateEdit:
    """Manual override of a category's growth rate(s)."""
    category: str
    income_rate_pct: Optional[float] = None
    expense_rate_pct: Optional[float] = None


BudgetEdit = Union[CellEdit, RateEdit]


def _check_amount(value: float, label: str) -> None:
    if not math.isfinite(value):
        raise ValueError(f"{label} must be a finite number")
    if value < 0:
        raise ValueError(f"{label} must be zero or positive (got {value})")


def _generation_month(generated_at) -> str:
    """Month key of an ISO generatedAt timestamp."""
    text = str(generated_at)
    try:
        parse_month(text[:7])
    except ValueError as exc:
        raise ValueError(f"generatedAt must be an ISO timestamp (got {generated_at!r})") from exc
    return text[:7]


def _check_horizon_length(horizon: Horizon, forecast_months: List[str], generated_at: Optional[str] = None) -> None:
    """
    With a generation timestamp the months must be exactly the ones the
    horizon covers from that month. Without one, only the shape is checked.
    """
    if generated_at:
        expected = forecast_months_for(horizon, _generation_month(generated_at))
        if forecast_months != expected:
            raise ValueError(
                f"A {horizon.value} budget generated in {_generation_month(generated_at)} must cover "
                f"{expected[0]}..{expected[-1]} (got {forecast_months[0]}..{forecast_months[-1]})"
            )
        return

    if horizon == Horizon.SIX_MONTHS:
        if len(forecast_months) != 6:
            raise ValueError(
                f"A sixMonths budget must cover exactly 6 months (got {len(forecast_months)})"
            )
        return

    _, last_month = parse_month(forecast_months[-1])
    _, first_month = parse_month(forecast_months[0])
    ends_in_december = last_month == 12
    rolled_into_january = len(forecast_months) == 1 and first_month == 1
    if not (ends_in_december or rolled_into_january):
        raise ValueError("A yearEnd budget must run through December of its year")
    # Generated in some month M, a yearEnd budget starts at M+1, so never in
    # January unless it is the single month rolled over from December
    if first_month == 1 and not rolled_into_january:
        raise ValueError("A yearEnd budget covers at most the 11 months after its generation month")


def project_value(baseline: float, rate_pct: float, index: int) -> float:
    """Compound `baseline` for forecast month `index` (0-based), floored at zero."""
    projected = baseline * (1 + rate_pct / 100) ** (index + 1)
    return round(max(0.0, projected), 2)


def project_cell(rate: CategoryGrowthRate, index: int) -> BudgetCell:
    return BudgetCell(
        income=project_value(rate.baseline_value.income, rate.income_rate_pct, index),
        expenses=project_value(rate.baseline_value.expenses, rate.expense_rate_pct, index),
        source=SOURCE_COMPUTED,
    )


def planned_contribution(items: Iterable[PlannedEntry], month: str) -> Flow:
    """
    Planned income/expenses falling into `month`.

    One-off items count only in the month of their expected date; monthly
    items count in every month from their expected month onward.
    """
    total = Flow()
    for item in items:
        item_month = month_key(item.expected_date)
        if item.recurrence == RECURRENCE_MONTHLY:
            applies = month >= item_month
        else:
            applies = month == item_month
        if not applies:
            continue

        amount = abs(float(item.amount or 0))
        if item.kind == "income":
            total.income += amount
        else:
            total.expenses += amount
    return total


def _planned_items_cell(
    rates: Dict[str, CategoryGrowthRate],
    items: List[PlannedEntry],
    month: str,
    index: int,
) -> Optional[BudgetCell]:
    """Trend value (if the category has history) plus planned contributions."""
    contribution = planned_contribution(items, month)
    rate = rates.get(PLANNED_ITEMS_CATEGORY)
    if rate is None and contribution.income == 0 and contribution.expenses == 0:
        return None

    cell = project_cell(rate, index) if rate is not None else BudgetCell()
    cell.income = round(cell.income + contribution.income, 2)
    cell.expenses = round(cell.expenses + contribution.expenses, 2)
    return cell


def project_budget(
    rates: Dict[str, CategoryGrowthRate],
    forecast_months: List[str],
    planned_items: Optional[Iterable[PlannedEntry]] = None,
) -> Dict[str, Dict[str, BudgetCell]]:
    """Project every category over the forecast months and fold in planned items."""
    items = list(planned_items or [])
    cells: Dict[str, Dict[str, BudgetCell]] = {}

    for index, month in enumerate(forecast_months):
        month_cells = {
            category: project_cell(rate, index)
            for category, rate in rates.items()
            if category != PLANNED_ITEMS_CATEGORY
        }
        planned_cell = _planned_items_cell(rates, items, month, index)
        if planned_cell is not None:
            month_cells[PLANNED_ITEMS_CATEGORY] = planned_cell
        cells[month] = month_cells

    return cells


def build_budget(
    rates: Dict[str, CategoryGrowthRate],
    horizon: Union[Horizon, str],
    current_month: str,
    planned_items: Optional[Iterable[PlannedEntry]] = None,
    historical_months: Optional[List[str]] = None,
    generated_at: Optional[str] = None,
) -> Budget:
    """Assemble a fresh Budget for `horizon` as seen from `current_month`."""
    horizon = parse_horizon(horizon)
    forecast_months = forecast_months_for(horizon, current_month)
    cells = project_budget(rates, forecast_months, planned_items)

    if generated_at is None:
        now = datetime.now().replace(microsecond=0)
        # generatedAt must fall in current_month for the budget to reload
        generated_at = now.isoformat() if month_key(now) == current_month else f"{current_month}-01T00:00:00"

    logger.debug(
        f"[PROJECTOR] Built {horizon.value} budget over {forecast_months[0]}..{forecast_months[-1]} "
        f"for {len(rates)} categories"
    )
    return Budget(
        horizon=horizon,
        forecast_months=forecast_months,
        category_growth_rates=copy.deepcopy(rates),
        cells=cells,
        historical_months=list(historical_months or []),
        generated_at=generated_at,
    )


def refresh_planned_items(budget: Budget, planned_items: Iterable[PlannedEntry]) -> Budget:
    """
    Rebuild the computed "Planned Items" cells from the current planned items.

    Saved budgets keep whatever planned items existed at generation time;
    this brings them in line with later additions/deletions. Manual cells
    are left untouched.
    """
    items = list(planned_items)
    refreshed = copy.deepcopy(budget)

    for index, month in enumerate(refreshed.forecast_months):
        month_cells = refreshed.cells.setdefault(month, {})
        existing = month_cells.get(PLANNED_ITEMS_CATEGORY)
        if existing is not None and existing.is_manual:
            continue

        cell = _planned_items_cell(refreshed.category_growth_rates, items, month, index)
        if cell is None:
            month_cells.pop(PLANNED_ITEMS_CATEGORY, None)
        else:
            month_cells[PLANNED_ITEMS_CATEGORY] = cell

    return refreshed


def _apply_cell_edit(budget: Budget, edit: CellEdit) -> Budget:
    if edit.month not in budget.forecast_months:
        raise ValueError(f"Month {edit.month!r} is not part of this budget's forecast")
    if not edit.category or not edit.category.strip():
        raise ValueError("category is required for a cell edit")
    if edit.income is None and edit.expenses is None:
        raise ValueError("A cell edit needs an income and/or expenses value")

    month_cells = budget.cells.setdefault(edit.month, {})
    current = month_cells.get(edit.category, BudgetCell())

    income = current.income if edit.income is None else float(edit.income)
    expenses = current.expenses if edit.expenses is None else float(edit.expenses)
    _check_amount(income, f"income of {edit.month}/{edit.category}")
    _check_amount(expenses, f"expenses of {edit.month}/{edit.category}")

    month_cells[edit.category] = BudgetCell(income=income, expenses=expenses, source=SOURCE_MANUAL)
    return budget


def _apply_rate_edit(budget: Budget, edit: RateEdit, current_month: Optional[str]) -> Budget:
    if edit.category == PLANNED_ITEMS_CATEGORY:
        raise ValueError("Planned Items follow the planned items list; edit its cells instead")
    rate = budget.category_growth_rates.get(edit.category)
    if rate is None:
        raise ValueError(f"Unknown category {edit.category!r}")
    if edit.income_rate_pct is None and edit.expense_rate_pct is None:
        raise ValueError("A rate edit needs incomeRatePct and/or expenseRatePct")

    for value, label in ((edit.income_rate_pct, "incomeRatePct"), (edit.expense_rate_pct, "expenseRatePct")):
        if value is None:
            continue
        if not math.isfinite(float(value)) or float(value) < -100:
            raise ValueError(f"{label} must be a number of at least -100")

    if edit.income_rate_pct is not None:
        rate.income_rate_pct = float(edit.income_rate_pct)
    if edit.expense_rate_pct is not None:
        rate.expense_rate_pct = float(edit.expense_rate_pct)
    rate.overridden = True

    for index, month in enumerate(budget.forecast_months):
        if current_month and month <= current_month:
            continue
        month_cells = budget.cells.setdefault(month, {})
        existing = month_cells.get(edit.category)
        if existing is not None and existing.is_manual:
            continue
        month_cells[edit.category] = project_cell(rate, index)

    return budget


def apply_override(budget: Budget, edit: BudgetEdit, current_month: Optional[str] = None) -> Budget:
    """
    Apply a user edit and return the edited copy of `budget`.

    CellEdit marks the cell manual. RateEdit replaces the category's rate,
    keeps its baseline and re-projects its computed cells; when
    `current_month` is given, months up to and including it are left as
    planned.
    """
    edited = copy.deepcopy(budget)
    if isinstance(edit, CellEdit):
        return _apply_cell_edit(edited, edit)
    if isinstance(edit, RateEdit):
        return _apply_rate_edit(edited, edit, current_month)
    raise ValueError(f"Unsupported budget edit: {type(edit).__name__}")
