"""
Month key helpers.

All monthly data in the forecasting engine is keyed by canonical "YYYY-MM"
strings. These sort lexicographically in calendar order, so plain string
comparison is used everywhere for before/after checks.
"""
import re
from datetime import date, datetime
from enum import Enum
from typing import List, Union

MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class Horizon(str, Enum):
    """Forecast length selector."""
    SIX_MONTHS = "sixMonths"
    YEAR_END = "yearEnd"


# Spellings used by earlier versions of the dashboard
_LEGACY_HORIZONS = {
    "6months": Horizon.SIX_MONTHS,
    "yearend": Horizon.YEAR_END,
}


def parse_horizon(value: Union[str, Horizon, None]) -> Horizon:
    """
    Parse a horizon value from a request.

    Raises:
        ValueError: If the value is missing or not a known horizon.
    """
    if isinstance(value, Horizon):
        return value
    if value is None or not str(value).strip():
        raise ValueError("horizon is required (expected 'sixMonths' or 'yearEnd')")

    raw = str(value).strip()
    for horizon in Horizon:
        if horizon.value == raw:
            return horizon
    legacy = _LEGACY_HORIZONS.get(raw.lower())
    if legacy is not None:
        return legacy
    raise ValueError(f"Invalid horizon {raw!r} (expected 'sixMonths' or 'yearEnd')")


def month_key(value: Union[date, datetime]) -> str:
    return f"{value.year}-{value.month:02d}"


def parse_month(key: str) -> tuple:
    """Split a month key into (year, month), validating the format."""
    match = MONTH_KEY_PATTERN.match(str(key))
    if not match:
        raise ValueError(f"Invalid month key {key!r} (expected 'YYYY-MM')")
    return int(match.group(1)), int(match.group(2))


def add_months(key: str, count: int) -> str:
    year, month = parse_month(key)
    index = year * 12 + (month - 1) + count
    return f"{index // 12}-{index % 12 + 1:02d}"


def months_between(start: str, end: str) -> List[str]:
    """Inclusive contiguous month range. Empty if end is before start."""
    months = []
    current = start
    while current <= end:
        months.append(current)
        current = add_months(current, 1)
    return months


def forecast_months_for(horizon: Horizon, current_month: str) -> List[str]:
    """
    Months covered by a forecast generated during `current_month`.

    sixMonths: the six months following the current month.
    yearEnd: the months remaining in the current year after the current
    month. In December this would be empty, so the following January is
    returned as the single forecast month.
    """
    horizon = parse_horizon(horizon)
    if horizon == Horizon.SIX_MONTHS:
        return [add_months(current_month, i) for i in range(1, 7)]

    _, month = parse_month(current_month)
    remaining = max(1, 12 - month)
    return [add_months(current_month, i) for i in range(1, remaining + 1)]


def validate_forecast_months(months: List[str]) -> None:
    """
    Check that forecast months are well-formed, strictly increasing and
    contiguous.

    Raises:
        ValueError: On the first violation found.
    """
    if not months:
        raise ValueError("forecastMonths must contain at least one month")
    for key in months:
        parse_month(key)
    for previous, current in zip(months, months[1:]):
        if current != add_months(previous, 1):
            raise ValueError(
                f"forecastMonths must be contiguous and strictly increasing "
                f"(found {previous!r} followed by {current!r})"
            )
