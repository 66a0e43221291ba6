"""
Tests for per-category growth rate estimation.
"""
import sys
import os
from datetime import date

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cashflow.services.budget_projector import project_budget, project_value
from cashflow.services.history_aggregator import Flow, LedgerEntry, aggregate_history
from cashflow.services.trend_estimator import (
    CategoryGrowthRate,
    category_series,
    estimate_category,
    estimate_growth_rates,
    ols_rate_pct,
)


def _expense_series(values):
    return [Flow(income=0.0, expenses=v) for v in values]


def test_single_data_point_has_zero_rate():
    rate = estimate_category(_expense_series([420.0]))

    assert rate.expense_rate_pct == 0
    assert rate.income_rate_pct == 0
    assert rate.last_value.expenses == 420.0
    assert rate.baseline_value.expenses == 420.0
    assert rate.trend.direction == "flat"
    print("✓ Single data point gives a zero rate with baseline = last value")


def test_rising_series():
    rate = estimate_category(_expense_series([100, 110, 120, 130, 140, 150]))

    # slope 10 over a mean of 125
    assert rate.expense_rate_pct == 8.0
    assert rate.baseline_value.expenses == 140.0
    assert rate.last_value.expenses == 150.0
    assert rate.trend.direction == "up"
    assert rate.trend.basis == "expenses"
    assert rate.trend.strength_pct == 8.0
    assert rate.trend.window_months == 6
    assert rate.trend.method == "ma3+ols"
    print("✓ Rising series: OLS rate, 3-month baseline and trend metadata")


def test_window_limits_regression():
    # Only the last 6 points are regressed; the early spike is ignored
    rate = estimate_category(_expense_series([5000, 100, 100, 100, 100, 100, 100]))
    assert rate.expense_rate_pct == 0
    assert rate.trend.direction == "flat"
    assert rate.trend.volatility_pct == 0
    print("✓ Regression window ignores points before it")


def test_rate_is_clamped():
    rate = estimate_category(_expense_series([1, 100]))
    assert rate.expense_rate_pct == 50.0

    rate = estimate_category(_expense_series([100, 1]))
    assert rate.expense_rate_pct == -50.0
    print("✓ Rates clamped to +/-50% per month")


def test_zero_mean_gives_zero_rate():
    assert ols_rate_pct([0, 0, 0]) == 0
    assert ols_rate_pct([]) == 0
    print("✓ Zero-mean and empty series give a zero rate")


def test_income_dominated_trend_basis():
    series = [Flow(income=v, expenses=10) for v in (1000, 1000, 1000, 1000)]
    rate = estimate_category(series)
    assert rate.trend.basis == "income"
    assert rate.trend.direction == "flat"
    print("✓ Trend describes the dominant side of the category")


def test_category_series_zero_fills_gaps():
    history = aggregate_history([
        LedgerEntry(amount=-100, booked_at=date(2024, 1, 5), category="Rent"),
        LedgerEntry(amount=-100, booked_at=date(2024, 3, 5), category="Rent"),
        LedgerEntry(amount=-30, booked_at=date(2024, 4, 5), category="Coffee"),
    ])

    rent = category_series(history, "Rent")
    assert [f.expenses for f in rent] == [100, 0, 100]

    coffee = category_series(history, "Coffee")
    assert [f.expenses for f in coffee] == [30]
    print("✓ Category series spans first to last observed month and zero-fills gaps")


def test_single_month_before_latest_has_zero_rate():
    history = aggregate_history([
        LedgerEntry(amount=-500, booked_at=date(2024, 1, 12), category="Legal"),
        LedgerEntry(amount=1000, booked_at=date(2024, 1, 3), category="Sales"),
        LedgerEntry(amount=1100, booked_at=date(2024, 2, 3), category="Sales"),
        LedgerEntry(amount=1200, booked_at=date(2024, 3, 3), category="Sales"),
    ])
    legal = estimate_growth_rates(history)["Legal"]

    assert legal.expense_rate_pct == 0
    assert legal.income_rate_pct == 0
    assert legal.last_value.expenses == 500.0
    assert legal.baseline_value.expenses == 500.0
    assert legal.trend.direction == "flat"
    print("✓ Category seen once, before the latest month, still has a zero rate")


def test_projection_compounds_the_stored_rate():
    rate = estimate_category(_expense_series([100, 103, 107, 108]))
    cells = project_budget({"Supplies": rate}, ["2024-05", "2024-06"])

    assert rate.expense_rate_pct == round(rate.expense_rate_pct, 2)
    assert cells["2024-05"]["Supplies"].expenses == project_value(
        rate.baseline_value.expenses, rate.expense_rate_pct, 0
    )
    assert cells["2024-06"]["Supplies"].expenses == project_value(
        rate.baseline_value.expenses, rate.expense_rate_pct, 1
    )
    print("✓ Projection compounds the rounded rate stored in the budget")


def test_estimate_growth_rates_per_category():
    history = aggregate_history([
        LedgerEntry(amount=3000, booked_at=date(2024, 1, 1), category="Salary"),
        LedgerEntry(amount=3000, booked_at=date(2024, 2, 1), category="Salary"),
        LedgerEntry(amount=-50, booked_at=date(2024, 2, 9), category=None),
    ])
    rates = estimate_growth_rates(history)

    assert set(rates) == {"Salary"}
    assert rates["Salary"].income_rate_pct == 0
    assert rates["Salary"].baseline_value.income == 3000
    assert estimate_growth_rates(aggregate_history([])) == {}
    print("✓ Growth rates estimated for categorized history only")


def test_growth_rate_from_legacy_payload():
    rate = CategoryGrowthRate.from_dict({
        "incomeRate": 2.5,
        "expenseRate": -1,
        "lastValue": {"income": 100, "expenses": 40},
    })
    assert rate.income_rate_pct == 2.5
    assert rate.expense_rate_pct == -1
    assert rate.baseline_value.income == 100
    assert rate.baseline_value.expenses == 40
    print("✓ Legacy rate payloads fall back to lastValue as baseline")


if __name__ == "__main__":
    test_single_data_point_has_zero_rate()
    test_rising_series()
    test_window_limits_regression()
    test_rate_is_clamped()
    test_zero_mean_gives_zero_rate()
    test_income_dominated_trend_basis()
    test_category_series_zero_fills_gaps()
    test_single_month_before_latest_has_zero_rate()
    test_projection_compounds_the_stored_rate()
    test_estimate_growth_rates_per_category()
    test_growth_rate_from_legacy_payload()
    print("\n✅ All trend estimator tests passed!")
