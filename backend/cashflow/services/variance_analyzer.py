"""
Plan vs actual variance for budget months that have already elapsed.

Sign convention: income and expenses are both positive magnitudes in plan
and actual, so net = income - expenses and therefore
    variance.net = variance.income - variance.expenses
holds exactly for every month and category.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from cashflow.services.budget_projector import Budget
from cashflow.services.history_aggregator import Flow, MonthlyHistory
from cashflow.services.rolling_forecast import TYPE_ACTUAL


def _figures(income: float, expenses: float, net: float) -> dict:
    return {"income": income, "expenses": expenses, "net": net}


def variance_percent(variance: float, plan: float) -> float:
    """Variance relative to the magnitude of the plan; 0 when nothing was planned."""
    if plan == 0:
        return 0.0
    return round(variance / abs(plan) * 100, 2)


@dataclass
class VarianceFigures:
    plan: dict
    actual: dict
    variance: dict
    variance_percent: dict

    def to_dict(self) -> dict:
        return {
            "plan": self.plan,
            "actual": self.actual,
            "variance": self.variance,
            "variancePercent": self.variance_percent,
        }


@dataclass
class VarianceRecord:
    month: str
    type: str
    figures: VarianceFigures
    by_category: Dict[str, VarianceFigures] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {"month": self.month, "type": self.type}
        data.update(self.figures.to_dict())
        data["byCategory"] = {name: figures.to_dict() for name, figures in self.by_category.items()}
        return data


def compare(plan: Flow, actual: Flow) -> VarianceFigures:
    plan_net = plan.income - plan.expenses
    actual_net = actual.income - actual.expenses

    variance_income = actual.income - plan.income
    variance_expenses = actual.expenses - plan.expenses
    variance_net = variance_income - variance_expenses

    return VarianceFigures(
        plan=_figures(plan.income, plan.expenses, plan_net),
        actual=_figures(actual.income, actual.expenses, actual_net),
        variance=_figures(variance_income, variance_expenses, variance_net),
        variance_percent=_figures(
            variance_percent(variance_income, plan.income),
            variance_percent(variance_expenses, plan.expenses),
            variance_percent(variance_net, plan_net),
        ),
    )


def analyze_variance(budget: Budget, history: MonthlyHistory, current_month: str) -> List[VarianceRecord]:
    """
    Compare the saved budget with actuals for every forecast month that is
    now in the past or current.

    Per category, actuals only include categorized transactions. The month
    aggregate uses the ledger totals (including uncategorized transactions)
    so it reconciles with the account balance.
    """
    records = []
    for month in budget.forecast_months:
        if month > current_month:
            continue

        plan_cells = budget.month_cells(month)
        actual_categories = history.by_category.get(month, {})

        by_category = {}
        for name in sorted(set(plan_cells) | set(actual_categories)):
            cell = plan_cells.get(name)
            plan = Flow(cell.income, cell.expenses) if cell else Flow()
            actual = actual_categories.get(name, Flow())
            by_category[name] = compare(plan, Flow(round(actual.income, 2), round(actual.expenses, 2)))

        total = history.month_total(month)
        figures = compare(
            budget.month_total(month),
            Flow(round(total.income, 2), round(total.expenses, 2)),
        )
        records.append(VarianceRecord(month=month, type=TYPE_ACTUAL, figures=figures, by_category=by_category))

    return records
