"""
Analytics Metrics: pure helpers shared by every analytic operation.

Covers:
  - Ratio metrics with a zero-denominator policy (result is 0, never NaN)
  - Growth rate from a recent/older split of a monthly series
  - Additive and compounding forecasts with decaying confidence
  - Threshold buckets: stock status, churn risk, turnover, lifecycle, lead status
  - Profit and margin

No DB or async dependencies.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

# ──────────────────────────────────────────────────────────────────────────
# Numeric coercion
# ──────────────────────────────────────────────────────────────────────────


def as_number(value) -> float:
    """Coerce an aggregate value to float; NULL, missing and non-finite become 0."""
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        value = float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def safe_ratio(numerator, denominator) -> float:
    """numerator / denominator × 100, defined as 0 when the denominator is 0."""
    denom = as_number(denominator)
    if denom == 0:
        return 0.0
    return as_number(numerator) / denom * 100


def average(values) -> float:
    values = [as_number(v) for v in values]
    if not values:
        return 0.0
    return sum(values) / len(values)


# ──────────────────────────────────────────────────────────────────────────
# Forecasting
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class ForecastPoint:
    month: str
    value: float
    confidence: float


def split_growth_rate(series: list[float], window: int) -> tuple[float, float, float]:
    """Growth of the recent half of a most-recent-first series over its older half.

    Returns (growth_rate_pct, recent_avg, older_avg). Growth is 0 when the
    older half averages 0 (including when it is empty).
    """
    values = [as_number(v) for v in series[:window]]
    half = window // 2
    recent_avg = average(values[:half])
    older_avg = average(values[half:window])
    if older_avg == 0:
        return 0.0, recent_avg, older_avg
    return (recent_avg - older_avg) / older_avg * 100, recent_avg, older_avg


def add_months(start: date, months: int) -> str:
    """YYYY-MM label for `months` calendar months after `start`."""
    index = start.year * 12 + (start.month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def forecast_confidence(step_index: int, decay: float, floor: float) -> float:
    return max(floor, 1 - decay * step_index)


def additive_forecast(
    base: float,
    growth_rate: float,
    horizon: int,
    decay: float,
    floor: float,
    start: date | None = None,
) -> list[ForecastPoint]:
    """Linear extrapolation: base × (1 + g/100 × i)."""
    start = start or date.today()
    return [
        ForecastPoint(
            month=add_months(start, i),
            value=max(0.0, base * (1 + growth_rate / 100 * i)),
            confidence=forecast_confidence(i, decay, floor),
        )
        for i in range(1, horizon + 1)
    ]


def compound_forecast(
    base: float,
    growth_rate: float,
    horizon: int,
    decay: float,
    floor: float,
    start: date | None = None,
) -> list[ForecastPoint]:
    """Geometric extrapolation: base × (1 + g/100)^i."""
    start = start or date.today()
    return [
        ForecastPoint(
            month=add_months(start, i),
            value=max(0.0, base * (1 + growth_rate / 100) ** i),
            confidence=forecast_confidence(i, decay, floor),
        )
        for i in range(1, horizon + 1)
    ]


# ──────────────────────────────────────────────────────────────────────────
# Threshold buckets (evaluated top to bottom, first match wins)
# ──────────────────────────────────────────────────────────────────────────

LOW_STOCK = "Low Stock"
MEDIUM_STOCK = "Medium Stock"
HIGH_STOCK = "High Stock"

CHURN_RISK_THRESHOLDS = ((90, "High Risk"), (60, "Medium Risk"), (30, "Low Risk"))
CHURN_ACTIVE = "Active"

TURNOVER_WINDOW_DAYS = 30
TURNOVER_THRESHOLDS = ((90, "Slow Moving"), (30, "Normal"))
TURNOVER_FAST = "Fast Moving"
TURNOVER_NO_SALES = "No Sales"

LIFECYCLE_STAGES = (
    (30, "New (0-30 days)"),
    (90, "Recent (31-90 days)"),
    (365, "Established (91-365 days)"),
)
LIFECYCLE_MATURE = "Mature (365+ days)"

LEAD_STAGES = ((30, "Hot Lead"), (60, "Warm Lead"), (90, "Cold Lead"))
LEAD_INACTIVE = "Inactive"


def stock_status(quantity, reorder_level) -> str:
    qty = as_number(quantity)
    level = as_number(reorder_level)
    if qty <= level:
        return LOW_STOCK
    if qty <= level * 2:
        return MEDIUM_STOCK
    return HIGH_STOCK


def churn_risk(days_since_last_order: float) -> str:
    for threshold, label in CHURN_RISK_THRESHOLDS:
        if days_since_last_order > threshold:
            return label
    return CHURN_ACTIVE


def days_of_inventory(current_stock, units_sold, window_days: int = TURNOVER_WINDOW_DAYS) -> float:
    sold = as_number(units_sold)
    if sold == 0:
        return 0.0
    return as_number(current_stock) / (sold / window_days)


def turnover_class(current_stock, units_sold, window_days: int = TURNOVER_WINDOW_DAYS) -> str:
    if as_number(units_sold) == 0:
        return TURNOVER_NO_SALES
    days = days_of_inventory(current_stock, units_sold, window_days)
    for threshold, label in TURNOVER_THRESHOLDS:
        if days > threshold:
            return label
    return TURNOVER_FAST


def lifecycle_stage(days_since_acquisition: float) -> str:
    for limit, label in LIFECYCLE_STAGES:
        if days_since_acquisition <= limit:
            return label
    return LIFECYCLE_MATURE


def lead_status(days_since_last_order: float) -> str:
    for limit, label in LEAD_STAGES:
        if days_since_last_order <= limit:
            return label
    return LEAD_INACTIVE


# ──────────────────────────────────────────────────────────────────────────
# Financial
# ──────────────────────────────────────────────────────────────────────────


def profit_and_margin(revenue, cost) -> tuple[float, float]:
    """profit = revenue − cost; margin = profit / revenue × 100 (0 on zero revenue)."""
    profit = as_number(revenue) - as_number(cost)
    return profit, safe_ratio(profit, revenue)


def days_between(earlier: datetime | date | None, now: datetime | None = None) -> float | None:
    """Whole and fractional days from `earlier` to `now`; None when `earlier` is missing."""
    if earlier is None:
        return None
    now = now or datetime.utcnow()
    if not isinstance(earlier, datetime):
        earlier = datetime(earlier.year, earlier.month, earlier.day)
    return (now - earlier).total_seconds() / 86400
