"""
Tests for budget projection, planned item fold-in and budget edits.
"""
import sys
import os
from datetime import date

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cashflow.services.budget_projector import (
    PLANNED_ITEMS_CATEGORY,
    SOURCE_COMPUTED,
    SOURCE_MANUAL,
    Budget,
    CellEdit,
    PlannedEntry,
    RateEdit,
    apply_override,
    build_budget,
    project_budget,
    project_value,
    refresh_planned_items,
)
from cashflow.months import months_between
from cashflow.services.history_aggregator import Flow
from cashflow.services.trend_estimator import CategoryGrowthRate


def _rates():
    return {
        "Sales": CategoryGrowthRate(
            income_rate_pct=10.0,
            expense_rate_pct=0.0,
            last_value=Flow(1000.0, 0.0),
            baseline_value=Flow(1000.0, 0.0),
        ),
        "Rent": CategoryGrowthRate(
            income_rate_pct=0.0,
            expense_rate_pct=-5.0,
            last_value=Flow(0.0, 800.0),
            baseline_value=Flow(0.0, 800.0),
        ),
    }


def _budget(planned_items=None):
    return build_budget(
        _rates(),
        "sixMonths",
        "2024-01",
        planned_items=planned_items,
        historical_months=["2023-11", "2023-12", "2024-01"],
        generated_at="2024-01-15T10:00:00",
    )


def test_compounding_scenario():
    cells = project_budget(_rates(), ["2024-02", "2024-03", "2024-04"])

    assert cells["2024-02"]["Sales"].income == 1100.00
    assert cells["2024-03"]["Sales"].income == 1210.00
    assert cells["2024-04"]["Sales"].income == 1331.00
    assert cells["2024-02"]["Sales"].source == SOURCE_COMPUTED
    print("✓ Baseline compounds month over month")


def test_projected_cells_are_never_negative():
    assert project_value(100.0, -100.0, 0) == 0
    assert project_value(100.0, -100.0, 5) == 0
    assert project_value(0.0, 50.0, 3) == 0

    budget = _budget()
    for month in budget.forecast_months:
        for cell in budget.month_cells(month).values():
            assert cell.income >= 0
            assert cell.expenses >= 0
    print("✓ Projected cells are non-negative")


def test_horizon_lengths():
    assert len(_budget().forecast_months) == 6
    year_end = build_budget(_rates(), "yearEnd", "2024-09")
    assert year_end.forecast_months == ["2024-10", "2024-11", "2024-12"]
    december = build_budget(_rates(), "yearEnd", "2024-12")
    assert december.forecast_months == ["2025-01"]

    payload = _budget().to_dict()
    payload["forecastMonths"] = payload["forecastMonths"][:5]
    payload["budget"].pop("2024-07")
    try:
        Budget.from_dict(payload)
        assert False, "Expected ValueError for a short sixMonths budget"
    except ValueError:
        pass
    print("✓ Forecast months match the horizon")


def test_year_end_months_match_generation_month():
    full_year = {
        "horizon": "yearEnd",
        "forecastMonths": months_between("2024-01", "2024-12"),
        "budget": {},
    }
    starts_too_early = {
        "horizon": "yearEnd",
        "forecastMonths": months_between("2024-03", "2024-12"),
        "budget": {},
        "generatedAt": "2024-03-10T09:00:00",
    }
    six_months_shifted = dict(_budget().to_dict(), generatedAt="2024-02-01T08:00:00")

    for candidate in (full_year, starts_too_early, six_months_shifted):
        try:
            Budget.from_dict(candidate)
            assert False, f"Expected ValueError for {candidate['forecastMonths'][0]}"
        except ValueError:
            pass

    generated = build_budget(_rates(), "yearEnd", "2024-03", generated_at="2024-03-10T09:00:00")
    assert Budget.from_dict(generated.to_dict()).forecast_months == months_between("2024-04", "2024-12")
    print("✓ yearEnd months must start after the generation month")


def test_planned_items_fold_in_scenario():
    items = [
        PlannedEntry(kind="expense", amount=200.0, expected_date=date(2024, 3, 15), recurrence="monthly"),
    ]
    budget = _budget(items)

    assert PLANNED_ITEMS_CATEGORY not in budget.month_cells("2024-02")
    for month in budget.forecast_months[1:]:
        assert budget.month_cells(month)[PLANNED_ITEMS_CATEGORY].expenses == 200.0
        assert budget.month_cells(month)[PLANNED_ITEMS_CATEGORY].income == 0
    print("✓ Monthly planned expense lands from its start month onward")


def test_one_off_planned_income():
    items = [
        PlannedEntry(kind="income", amount=5000.0, expected_date=date(2024, 4, 1)),
    ]
    budget = _budget(items)

    assert budget.month_cells("2024-04")[PLANNED_ITEMS_CATEGORY].income == 5000.0
    months_with_item = [m for m in budget.forecast_months if PLANNED_ITEMS_CATEGORY in budget.month_cells(m)]
    assert months_with_item == ["2024-04"]
    print("✓ One-off planned income lands only in its month")


def test_round_trip_is_exact():
    budget = _budget([PlannedEntry(kind="expense", amount=99.99, expected_date=date(2024, 2, 1))])
    payload = budget.to_dict()

    assert Budget.from_dict(payload).to_dict() == payload
    print("✓ Budget survives to_dict/from_dict unchanged")


def test_from_dict_rejects_invalid_payloads():
    payload = _budget().to_dict()

    bad_month = dict(payload, budget={"2030-01": {}})
    negative = _budget().to_dict()
    negative["budget"]["2024-02"]["Sales"]["income"] = -1
    gap = _budget().to_dict()
    gap["forecastMonths"][2] = "2024-09"

    for candidate in (bad_month, negative, gap, dict(payload, horizon="weekly")):
        try:
            Budget.from_dict(candidate)
            assert False, "Expected ValueError"
        except ValueError:
            pass
    print("✓ Invalid budget payloads are rejected")


def test_apply_override_does_not_mutate_input():
    budget = _budget()
    before = budget.to_dict()

    edited = apply_override(budget, CellEdit(month="2024-03", category="Sales", income=1500.0))

    assert budget.to_dict() == before
    cell = edited.month_cells("2024-03")["Sales"]
    assert cell.income == 1500.0
    assert cell.expenses == 0
    assert cell.source == SOURCE_MANUAL
    print("✓ Cell edit returns a new budget with a manual cell")


def test_manual_cells_survive_rate_edits():
    budget = apply_override(_budget(), CellEdit(month="2024-03", category="Sales", income=1500.0))
    edited = apply_override(budget, RateEdit(category="Sales", income_rate_pct=20.0))

    assert edited.month_cells("2024-03")["Sales"].income == 1500.0
    assert edited.month_cells("2024-03")["Sales"].source == SOURCE_MANUAL
    assert edited.month_cells("2024-02")["Sales"].income == 1200.0
    assert edited.month_cells("2024-04")["Sales"].income == 1728.0

    rate = edited.category_growth_rates["Sales"]
    assert rate.overridden is True
    assert rate.income_rate_pct == 20.0
    assert rate.baseline_value.income == 1000.0
    print("✓ Rate edit re-projects computed cells and keeps manual ones")


def test_rate_edit_leaves_elapsed_months():
    budget = _budget()
    edited = apply_override(budget, RateEdit(category="Sales", income_rate_pct=0.0), current_month="2024-03")

    assert edited.month_cells("2024-02")["Sales"].income == 1100.0
    assert edited.month_cells("2024-03")["Sales"].income == 1210.0
    assert edited.month_cells("2024-04")["Sales"].income == 1000.0
    print("✓ Rate edit only re-projects months after the current one")


def test_invalid_edits_are_rejected():
    budget = _budget([PlannedEntry(kind="expense", amount=10.0, expected_date=date(2024, 2, 1))])
    edits = [
        CellEdit(month="2025-01", category="Sales", income=1.0),
        CellEdit(month="2024-02", category="Sales", expenses=-5.0),
        RateEdit(category="Unknown", income_rate_pct=1.0),
        RateEdit(category=PLANNED_ITEMS_CATEGORY, expense_rate_pct=1.0),
        RateEdit(category="Sales", income_rate_pct=-150.0),
    ]
    for edit in edits:
        try:
            apply_override(budget, edit)
            assert False, f"Expected ValueError for {edit}"
        except ValueError:
            pass
    print("✓ Invalid edits raise ValueError")


def test_refresh_planned_items_is_idempotent():
    items = [PlannedEntry(kind="expense", amount=200.0, expected_date=date(2024, 3, 1), recurrence="monthly")]
    budget = _budget(items)

    once = refresh_planned_items(budget, items)
    twice = refresh_planned_items(once, items)

    assert once.to_dict() == budget.to_dict()
    assert twice.to_dict() == once.to_dict()
    print("✓ Refreshing planned items on an unchanged list is a no-op")


def test_refresh_planned_items_tracks_store_changes():
    items = [PlannedEntry(kind="expense", amount=200.0, expected_date=date(2024, 3, 1), recurrence="monthly")]
    budget = apply_override(
        _budget(items),
        CellEdit(month="2024-05", category=PLANNED_ITEMS_CATEGORY, expenses=50.0),
    )

    refreshed = refresh_planned_items(budget, [])

    assert PLANNED_ITEMS_CATEGORY not in refreshed.month_cells("2024-03")
    assert refreshed.month_cells("2024-05")[PLANNED_ITEMS_CATEGORY].expenses == 50.0
    print("✓ Removed planned items disappear; manual Planned Items cells stay")


if __name__ == "__main__":
    test_compounding_scenario()
    test_projected_cells_are_never_negative()
    test_horizon_lengths()
    test_year_end_months_match_generation_month()
    test_planned_items_fold_in_scenario()
    test_one_off_planned_income()
    test_round_trip_is_exact()
    test_from_dict_rejects_invalid_payloads()
    test_apply_override_does_not_mutate_input()
    test_manual_cells_survive_rate_edits()
    test_rate_edit_leaves_elapsed_months()
    test_invalid_edits_are_rejected()
    test_refresh_planned_items_is_idempotent()
    test_refresh_planned_items_tracks_store_changes()
    print("\n✅ All budget projector tests passed!")
