"""
Tests for plan vs actual variance.
"""
import sys
import os
from datetime import date

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cashflow.months import Horizon, months_between
from cashflow.services.budget_projector import Budget, BudgetCell
from cashflow.services.history_aggregator import Flow, LedgerEntry, aggregate_history
from cashflow.services.variance_analyzer import analyze_variance, compare, variance_percent


def _budget():
    months = months_between("2024-01", "2024-06")
    cells = {
        m: {
            "Sales": BudgetCell(income=2000.0, expenses=0.0),
            "Rent": BudgetCell(income=0.0, expenses=800.0),
        }
        for m in months
    }
    return Budget(horizon=Horizon.SIX_MONTHS, forecast_months=months, cells=cells)


def _history():
    return aggregate_history([
        LedgerEntry(amount=2500, booked_at=date(2024, 1, 5), category="Sales"),
        LedgerEntry(amount=-800, booked_at=date(2024, 1, 1), category="Rent"),
        LedgerEntry(amount=-120, booked_at=date(2024, 1, 20), category="Travel"),
        LedgerEntry(amount=-30, booked_at=date(2024, 1, 21), category=None),
        LedgerEntry(amount=1800, booked_at=date(2024, 2, 5), category="Sales"),
    ])


def test_variance_scenario():
    records = analyze_variance(_budget(), _history(), "2024-01")

    assert len(records) == 1
    sales = records[0].by_category["Sales"]
    assert sales.variance["income"] == 500
    assert sales.variance_percent["income"] == 25
    print("✓ Actual income above plan gives positive variance")


def test_only_elapsed_months_are_compared():
    records = analyze_variance(_budget(), _history(), "2024-02")

    assert [r.month for r in records] == ["2024-01", "2024-02"]
    assert all(r.type == "actual" for r in records)
    assert analyze_variance(_budget(), _history(), "2023-12") == []
    print("✓ Variance covers forecast months up to the current month")


def test_variance_net_is_additive():
    for record in analyze_variance(_budget(), _history(), "2024-03"):
        for figures in [record.figures] + list(record.by_category.values()):
            variance = figures.variance
            assert variance["net"] == variance["income"] - variance["expenses"]
    print("✓ variance.net = variance.income - variance.expenses everywhere")


def test_categories_are_a_union_of_plan_and_actual():
    record = analyze_variance(_budget(), _history(), "2024-01")[0]

    assert set(record.by_category) == {"Sales", "Rent", "Travel"}
    travel = record.by_category["Travel"]
    assert travel.plan["expenses"] == 0
    assert travel.actual["expenses"] == 120
    assert travel.variance_percent["expenses"] == 0
    print("✓ Unplanned categories appear with a zero plan")


def test_month_aggregate_includes_uncategorized():
    record = analyze_variance(_budget(), _history(), "2024-01")[0]

    assert record.figures.plan == {"income": 2000.0, "expenses": 800.0, "net": 1200.0}
    assert record.figures.actual == {"income": 2500.0, "expenses": 950.0, "net": 1550.0}
    assert record.figures.variance["net"] == 350.0
    print("✓ Month aggregate actual reconciles with the full ledger")


def test_record_serialization():
    data = analyze_variance(_budget(), _history(), "2024-01")[0].to_dict()

    assert data["month"] == "2024-01"
    assert data["type"] == "actual"
    assert set(data) == {"month", "type", "plan", "actual", "variance", "variancePercent", "byCategory"}
    assert data["byCategory"]["Sales"]["variancePercent"]["income"] == 25
    print("✓ Variance record serializes with camelCase keys")


def test_percent_uses_plan_magnitude():
    assert variance_percent(50, 0) == 0
    assert variance_percent(-100, -200) == -50
    figures = compare(Flow(100.0, 100.0), Flow(100.0, 150.0))
    assert figures.plan["net"] == 0
    assert figures.variance["net"] == -50
    assert figures.variance_percent["net"] == 0
    print("✓ Variance percent relative to |plan|, zero when nothing planned")


if __name__ == "__main__":
    test_variance_scenario()
    test_only_elapsed_months_are_compared()
    test_variance_net_is_additive()
    test_categories_are_a_union_of_plan_and_actual()
    test_month_aggregate_includes_uncategorized()
    test_record_serialization()
    test_percent_uses_plan_magnitude()
    print("\n✅ All variance analyzer tests passed!")
