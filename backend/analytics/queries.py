"""
Shared query builders for analytic operations.

Every order-scoped statement starts from orders_query() or items_query()
so the PredicateSet conditions always have their tables joined.
"""

from typing import Any

from sqlalchemy import Select, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.filters import PredicateSet
from db.models import Customer, Order, OrderItem, Product


async def fetch_one(db: AsyncSession, stmt: Select) -> dict[str, Any]:
    """First row as a dict; {} when the statement returns nothing."""
    result = await db.execute(stmt)
    row = result.first()
    return dict(row._mapping) if row is not None else {}


async def fetch_all(db: AsyncSession, stmt: Select) -> list[dict[str, Any]]:
    result = await db.execute(stmt)
    return [dict(row._mapping) for row in result.all()]


def orders_query(*columns) -> Select:
    """SELECT … FROM orders JOIN customers."""
    return select(*columns).select_from(Order).join(Customer, Customer.id == Order.customer_id)


def items_query(*columns) -> Select:
    """SELECT … FROM order_items JOIN products JOIN orders JOIN customers."""
    return (
        select(*columns)
        .select_from(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .join(Order, Order.id == OrderItem.order_id)
        .join(Customer, Customer.id == Order.customer_id)
    )


def month_label(year, month) -> str | None:
    if year is None or month is None:
        return None
    return f"{int(year):04d}-{int(month):02d}"


def scoped_customer_ids(predicates: PredicateSet) -> Select:
    """Distinct ids of customers with at least one order matching the predicates."""
    return orders_query(Customer.id).where(*predicates.order_conditions()).distinct().correlate(None)


async def monthly_trend(
    db: AsyncSession,
    predicates: PredicateSet,
    window: int,
    **measures,
) -> list[dict[str, Any]]:
    """Aggregate filtered orders by calendar month, most recent first, capped to `window` months.

    `measures` maps output names to aggregate expressions, e.g.
    revenue=func.sum(Order.total_amount).
    """
    year = extract("year", Order.order_date)
    month = extract("month", Order.order_date)
    stmt = (
        orders_query(
            year.label("year"),
            month.label("month_num"),
            *(expr.label(name) for name, expr in measures.items()),
        )
        .where(*predicates.order_conditions())
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
        .limit(window)
    )
    rows = await fetch_all(db, stmt)
    trend = []
    for row in rows:
        entry = {"month": month_label(row.pop("year"), row.pop("month_num"))}
        entry.update(row)
        trend.append(entry)
    return trend


def default_order_measures() -> dict[str, Any]:
    return {
        "orders": func.count(Order.id),
        "revenue": func.sum(Order.total_amount),
    }
