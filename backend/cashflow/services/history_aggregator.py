"""
Historical aggregation of ledger entries into month x category totals.

Income is the sum of positive amounts and expenses the sum of the absolute
value of negative amounts, so both are non-negative magnitudes. Entries
without a category never appear in the per-category map but are always
counted in the monthly totals, which keeps totals reconciled with the
full ledger.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from cashflow.months import add_months, month_key


@dataclass
class Flow:
    """Income and expenses for one month (and optionally one category)."""
    income: float = 0.0
    expenses: float = 0.0

    @property
    def net(self) -> float:
        return self.income - self.expenses

    def add_amount(self, amount: float) -> None:
        if amount >= 0:
            self.income += amount
        else:
            self.expenses += abs(amount)

    def to_dict(self) -> dict:
        return {"income": self.income, "expenses": self.expenses}


@dataclass
class LedgerEntry:
    """Minimal view of a booked transaction as seen by the engine."""
    amount: Union[float, Decimal]
    booked_at: Union[date, datetime]
    category: Optional[str] = None


@dataclass
class MonthlyHistory:
    """Output of the historical aggregation."""
    by_category: Dict[str, Dict[str, Flow]] = field(default_factory=dict)
    totals: Dict[str, Flow] = field(default_factory=dict)

    @property
    def months(self) -> List[str]:
        return sorted(self.totals.keys())

    @property
    def categories(self) -> List[str]:
        names = set()
        for month_categories in self.by_category.values():
            names.update(month_categories.keys())
        return sorted(names)

    def category_flow(self, month: str, category: str) -> Flow:
        return self.by_category.get(month, {}).get(category, Flow())

    def month_total(self, month: str) -> Flow:
        return self.totals.get(month, Flow())

    def is_empty(self) -> bool:
        return not self.totals


def normalize_category(category: Optional[str]) -> Optional[str]:
    if category is None:
        return None
    name = str(category).strip()
    return name or None


def lookback_start(current_month: str, lookback_months: int) -> str:
    """First month included in a trailing window ending at `current_month`."""
    return add_months(current_month, -(lookback_months - 1))


def aggregate_history(
    entries: Iterable[LedgerEntry],
    current_month: Optional[str] = None,
    lookback_months: Optional[int] = None,
) -> MonthlyHistory:
    """
    Group ledger entries into monthly totals per category.

    Args:
        entries: Ledger entries for a single owner in a single currency.
        current_month: Month the lookback window ends at. Entries after it
            are kept; the window only bounds how far back history goes.
        lookback_months: Number of trailing months to keep, including
            `current_month`. None keeps the full history.

    Returns:
        MonthlyHistory with per-category flows and overall monthly totals.
    """
    if lookback_months is not None and lookback_months < 1:
        raise ValueError("lookback_months must be at least 1")

    first_month = None
    if current_month and lookback_months:
        first_month = lookback_start(current_month, lookback_months)

    by_category: Dict[str, Dict[str, Flow]] = defaultdict(dict)
    totals: Dict[str, Flow] = {}

    for entry in entries:
        month = month_key(entry.booked_at)
        if first_month and month < first_month:
            continue

        amount = float(entry.amount or 0)
        totals.setdefault(month, Flow()).add_amount(amount)

        category = normalize_category(entry.category)
        if category is None:
            continue
        by_category[month].setdefault(category, Flow()).add_amount(amount)

    return MonthlyHistory(by_category=dict(by_category), totals=totals)
