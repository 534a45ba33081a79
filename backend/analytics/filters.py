"""
Filter Compiler: request filters and date range → bound SQL predicates.

Only the allow-listed keys below become predicates, and every value is
bound through SQLAlchemy operators (IN / comparison), never spliced into
statement text.

  customerTier     → customers.customer_tier
  industry         → customers.industry
  region           → orders.region
  productCategory  → products.category
  status           → orders.status
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import select

from core.errors import (
    InvalidDateFormat,
    InvalidDateRange,
    InvalidFilterKey,
    InvalidFilterValueType,
    ValidationError,
)
from db.models import Customer, Order, OrderItem, Product

FILTER_COLUMNS = {
    "customerTier": Customer.customer_tier,
    "industry": Customer.industry,
    "region": Order.region,
    "productCategory": Product.category,
    "status": Order.status,
}

CUSTOMER_KEYS = frozenset({"customerTier", "industry"})
ORDER_KEYS = frozenset({"region", "status"})
PRODUCT_KEYS = frozenset({"productCategory"})


@dataclass(frozen=True)
class PredicateSet:
    """Compiled filters: allow-listed key → sorted bound values, plus date bounds."""

    values: dict[str, tuple[str, ...]] = field(default_factory=dict)
    start: datetime | None = None
    end: datetime | None = None
    end_exclusive: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.values and self.start is None and self.end is None

    def _membership(self, keys) -> list:
        return [FILTER_COLUMNS[key].in_(vals) for key, vals in self.values.items() if key in keys]

    def _date_conditions(self) -> list:
        conditions = []
        if self.start is not None:
            conditions.append(Order.order_date >= self.start)
        if self.end is not None:
            if self.end_exclusive:
                conditions.append(Order.order_date < self.end)
            else:
                conditions.append(Order.order_date <= self.end)
        return conditions

    def customer_conditions(self) -> list:
        """Customer-level predicates only (tier, industry)."""
        return self._membership(CUSTOMER_KEYS)

    def inventory_conditions(self) -> list:
        """Product-level predicates for inventory queries (category)."""
        return self._membership(PRODUCT_KEYS)

    def order_conditions(self) -> list:
        """Predicates for statements joining orders and customers.

        A product category constraint becomes a bound subquery selecting the
        orders that contain at least one item in the category.
        """
        conditions = self._membership(CUSTOMER_KEYS | ORDER_KEYS)
        categories = self.values.get("productCategory")
        if categories:
            conditions.append(
                Order.id.in_(
                    select(OrderItem.order_id)
                    .join(Product, Product.id == OrderItem.product_id)
                    .where(Product.category.in_(categories))
                    .correlate(None)
                )
            )
        return conditions + self._date_conditions()

    def item_conditions(self) -> list:
        """Predicates for statements joining order items, products, orders and customers."""
        return self._membership(FILTER_COLUMNS.keys()) + self._date_conditions()

    def describe(self) -> dict[str, Any]:
        """JSON-safe echo of the compiled filters."""
        end = None
        if self.end is not None:
            end = (self.end - timedelta(days=1)).date().isoformat() if self.end_exclusive else self.end.isoformat()
        return {
            "filters": {key: list(vals) for key, vals in self.values.items()},
            "dateRange": {
                "start": self.start.isoformat() if self.start else None,
                "end": end,
            },
        }


def _normalise_values(key: str, raw) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,) if raw else ()
    if isinstance(raw, (list, tuple, set, frozenset)):
        for value in raw:
            if not isinstance(value, str):
                raise InvalidFilterValueType(key)
        return tuple(sorted({value for value in raw if value}))
    raise InvalidFilterValueType(key)


def parse_iso_date(field_name: str, value) -> tuple[datetime, bool]:
    """Parse an ISO date or datetime string.

    Returns (timestamp, date_only) so callers can widen a bare end date to
    cover the whole day.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateFormat(field_name, value)
    text = value.strip()
    try:
        return datetime.combine(date.fromisoformat(text), time.min), True
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidDateFormat(field_name, value) from None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed, False


def compile_filters(filters: dict | None = None, date_range: dict | None = None) -> PredicateSet:
    """Validate filters and date range and compile them into a PredicateSet."""
    if filters is None:
        filters = {}
    if not isinstance(filters, dict):
        raise ValidationError("Filters must be an object")

    values: dict[str, tuple[str, ...]] = {}
    for key in sorted(filters):
        if key not in FILTER_COLUMNS:
            raise InvalidFilterKey(key)
        normalised = _normalise_values(key, filters[key])
        if normalised:
            values[key] = normalised

    start = end = None
    end_exclusive = False
    if date_range:
        if not isinstance(date_range, dict):
            raise ValidationError("dateRange must be an object")
        if date_range.get("start") is not None:
            start, _ = parse_iso_date("start", date_range["start"])
        if date_range.get("end") is not None:
            end, end_is_date = parse_iso_date("end", date_range["end"])
            if start is not None and (start.date() > end.date() if end_is_date else start > end):
                raise InvalidDateRange()
            if end_is_date:
                end = end + timedelta(days=1)
                end_exclusive = True

    return PredicateSet(values=values, start=start, end=end, end_exclusive=end_exclusive)
