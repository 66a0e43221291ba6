"""
Cash runway from the forecast part of a rolling forecast timeline.
"""
import math
from dataclasses import dataclass
from typing import List, Optional

from cashflow.services.rolling_forecast import TYPE_FORECAST, RollingForecastEntry

SEVERITY_CRITICAL = "critical"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"
SEVERITY_HEALTHY = "healthy"


@dataclass
class Runway:
    months: Optional[int]  # None means the balance never runs out
    negative_month: Optional[str]
    severity: str
    message: str
    extrapolated: bool = False

    def to_dict(self) -> dict:
        return {
            "runway": self.months,
            "negativeMonth": self.negative_month,
            "severity": self.severity,
            "message": self.message,
            "extrapolated": self.extrapolated,
        }


def classify_runway(months: Optional[int]) -> str:
    if months is None:
        return SEVERITY_HEALTHY
    if months <= 1:
        return SEVERITY_CRITICAL
    if months <= 3:
        return SEVERITY_MEDIUM
    if months <= 6:
        return SEVERITY_LOW
    return SEVERITY_HEALTHY


def _message(months: Optional[int], severity: str) -> str:
    if months is None:
        return "Positive cash flow trajectory"
    unit = "month" if months == 1 else "months"
    labels = {
        SEVERITY_CRITICAL: "Critical",
        SEVERITY_MEDIUM: "Medium Risk",
        SEVERITY_LOW: "Low Risk",
    }
    label = labels.get(severity)
    return f"{months} {unit} ({label})" if label else f"{months} {unit}"


def calculate_runway(entries: List[RollingForecastEntry], current_balance: float) -> Runway:
    """
    Months until the running balance first reaches zero or below.

    The first forecast month with balance <= 0 sets the runway (1-based)
    and the negative month. Otherwise a negative mean forecast net is
    extrapolated past the horizon from the current balance, and a mean of
    zero or more means the balance never runs out.
    """
    forecast = [e for e in entries if e.type == TYPE_FORECAST]

    months: Optional[int] = None
    negative_month: Optional[str] = None
    extrapolated = False

    for index, entry in enumerate(forecast):
        if entry.balance <= 0:
            months = index + 1
            negative_month = entry.month
            break

    if months is None and forecast:
        mean_net = sum(e.net for e in forecast) / len(forecast)
        if mean_net < 0:
            months = max(0, math.floor(current_balance / abs(mean_net)))
            extrapolated = True

    severity = classify_runway(months)
    return Runway(
        months=months,
        negative_month=negative_month,
        severity=severity,
        message=_message(months, severity),
        extrapolated=extrapolated,
    )
