"""
Per-category trend estimation.

For every category in the aggregated history this derives:
- lastValue: the most recent month's income/expenses,
- baselineValue: a trailing moving average used as the compounding base,
- incomeRatePct / expenseRatePct: a month-over-month growth rate estimated
  by ordinary least squares over the recent window, expressed relative to
  the window mean and clamped to keep short noisy histories from
  compounding out of control,
- trend: direction, strength and volatility of the dominant series.

Usage:
    history = aggregate_history(entries)
    rates = estimate_growth_rates(history)
"""
import statistics
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from cashflow.config import settings
from cashflow.months import months_between
from cashflow.services.history_aggregator import Flow, MonthlyHistory

# Configuration
TREND_WINDOW_MONTHS = settings.forecast_trend_window_months
BASELINE_MONTHS = settings.forecast_baseline_months
RATE_CLAMP_PCT = settings.forecast_rate_clamp_pct
FLAT_THRESHOLD_PCT = settings.forecast_flat_threshold_pct

TREND_METHOD = "ma3+ols"


@dataclass
class Trend:
    direction: str = "flat"  # up, down, flat
    strength_pct: float = 0.0
    volatility_pct: float = 0.0
    window_months: int = 0
    method: str = TREND_METHOD
    basis: str = "expenses"  # income, expenses

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "strengthPct": self.strength_pct,
            "volatilityPct": self.volatility_pct,
            "windowMonths": self.window_months,
            "method": self.method,
            "basis": self.basis,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Trend":
        data = data or {}
        return cls(
            direction=data.get("direction", "flat"),
            strength_pct=float(data.get("strengthPct", 0) or 0),
            volatility_pct=float(data.get("volatilityPct", 0) or 0),
            window_months=int(data.get("windowMonths", 0) or 0),
            method=data.get("method", TREND_METHOD),
            basis=data.get("basis", "expenses"),
        )


@dataclass
class CategoryGrowthRate:
    """Estimated growth for one category, plus the inputs that produced it."""
    income_rate_pct: float = 0.0
    expense_rate_pct: float = 0.0
    last_value: Flow = field(default_factory=Flow)
    baseline_value: Flow = field(default_factory=Flow)
    trend: Trend = field(default_factory=Trend)
    overridden: bool = False

    def to_dict(self) -> dict:
        return {
            "incomeRatePct": self.income_rate_pct,
            "expenseRatePct": self.expense_rate_pct,
            "lastValue": self.last_value.to_dict(),
            "baselineValue": self.baseline_value.to_dict(),
            "trend": self.trend.to_dict(),
            "overridden": self.overridden,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CategoryGrowthRate":
        """
        Build from a stored or submitted payload.

        Budgets saved by the previous dashboard used incomeRate/expenseRate
        and had no baselineValue; those fall back to lastValue.
        """
        if not isinstance(data, dict):
            raise ValueError("Each category growth rate must be an object")

        last = _flow_from_dict(data.get("lastValue"))
        baseline_raw = data.get("baselineValue")
        baseline = _flow_from_dict(baseline_raw) if baseline_raw else Flow(last.income, last.expenses)

        income_rate = data.get("incomeRatePct", data.get("incomeRate", 0))
        expense_rate = data.get("expenseRatePct", data.get("expenseRate", 0))
        return cls(
            income_rate_pct=float(income_rate or 0),
            expense_rate_pct=float(expense_rate or 0),
            last_value=last,
            baseline_value=baseline,
            trend=Trend.from_dict(data.get("trend")),
            overridden=bool(data.get("overridden", False)),
        )


def _flow_from_dict(data: Optional[dict]) -> Flow:
    data = data or {}
    try:
        return Flow(
            income=float(data.get("income", 0) or 0),
            expenses=float(data.get("expenses", 0) or 0),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid income/expenses values: {data!r}") from exc


def clamp_rate(rate: float) -> float:
    return max(-RATE_CLAMP_PCT, min(RATE_CLAMP_PCT, rate))


def ols_rate_pct(values: Sequence[float]) -> float:
    """
    Growth rate in percent per month from an OLS fit of `values`.

    The fitted slope is expressed relative to the series mean. Fewer than
    two points, or a zero mean, give a rate of 0.
    """
    n = len(values)
    if n < 2:
        return 0.0

    mean_y = sum(values) / n
    if mean_y == 0:
        return 0.0

    mean_x = (n - 1) / 2
    sxx = sum((x - mean_x) ** 2 for x in range(n))
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in enumerate(values))
    slope = sxy / sxx
    return slope / mean_y * 100


def volatility_pct(values: Sequence[float]) -> float:
    """Coefficient of variation in percent; 0 when undefined."""
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values) / mean * 100


def moving_average(series: Sequence[Flow], months: int = BASELINE_MONTHS) -> Flow:
    """Trailing moving average; falls back to the last point on short series."""
    if len(series) < months:
        last = series[-1]
        return Flow(last.income, last.expenses)
    window = series[-months:]
    return Flow(
        income=sum(f.income for f in window) / months,
        expenses=sum(f.expenses for f in window) / months,
    )


def _direction(rate: float) -> str:
    if abs(rate) < FLAT_THRESHOLD_PCT:
        return "flat"
    return "up" if rate > 0 else "down"


def category_series(history: MonthlyHistory, category: str) -> List[Flow]:
    """
    Monthly flows for a category, from its first to its last observed month.
    Gaps between observed months count as zero; a category seen only once
    is a single data point.
    """
    observed = [m for m in history.months if category in history.by_category.get(m, {})]
    if not observed:
        return []
    return [history.category_flow(m, category) for m in months_between(observed[0], observed[-1])]


def estimate_category(series: Sequence[Flow], window_months: int = TREND_WINDOW_MONTHS) -> CategoryGrowthRate:
    """
    Estimate the growth rate of a single category series.

    Rates are rounded to 2 decimals here, and the rounded value is the one
    stored in the budget and compounded by the projector, so a reloaded
    budget re-projects to exactly the same cells.
    """
    window = list(series[-window_months:])
    incomes = [f.income for f in window]
    expenses = [f.expenses for f in window]

    income_rate = round(clamp_rate(ols_rate_pct(incomes)), 2)
    expense_rate = round(clamp_rate(ols_rate_pct(expenses)), 2)

    last = series[-1]
    baseline = moving_average(series)

    # The trend describes whichever side dominates the category
    if baseline.income > baseline.expenses:
        basis, rate, basis_values = "income", income_rate, incomes
    else:
        basis, rate, basis_values = "expenses", expense_rate, expenses

    trend = Trend(
        direction=_direction(rate),
        strength_pct=abs(rate),
        volatility_pct=round(volatility_pct(basis_values), 2),
        window_months=len(window),
        method=TREND_METHOD,
        basis=basis,
    )

    return CategoryGrowthRate(
        income_rate_pct=income_rate,
        expense_rate_pct=expense_rate,
        last_value=Flow(round(last.income, 2), round(last.expenses, 2)),
        baseline_value=Flow(round(baseline.income, 2), round(baseline.expenses, 2)),
        trend=trend,
    )


def estimate_growth_rates(
    history: MonthlyHistory,
    window_months: int = TREND_WINDOW_MONTHS,
) -> Dict[str, CategoryGrowthRate]:
    """Estimate growth rates for every category present in the history."""
    if window_months < 1:
        raise ValueError("window_months must be at least 1")

    rates: Dict[str, CategoryGrowthRate] = {}
    for category in history.categories:
        series = category_series(history, category)
        if not series:
            continue
        rates[category] = estimate_category(series, window_months)
    return rates
