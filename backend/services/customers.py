"""
Customer Records: search, detail view and profile updates.

Updates go through an allow-list of columns; tier and status values are
checked against the stored enumerations before anything is written.
"""

from datetime import datetime

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.metrics import as_number
from core.errors import DomainError, NotFoundError, ValidationError
from db.models import Customer, Order, OrderItem, Product, SalesRep
from dispatch.schemas import (
    CUSTOMER_FIELD_CHOICES,
    CUSTOMER_UPDATE_FIELDS,
    CustomerDetailsParams,
    SearchCustomersParams,
    UpdateCustomerParams,
)

logger = structlog.get_logger()


async def search_customers(db: AsyncSession, params: SearchCustomersParams) -> dict:
    conditions = []
    if params.query:
        term = params.query.lower()
        conditions.append(
            or_(
                func.lower(Customer.name).contains(term, autoescape=True),
                func.lower(Customer.email).contains(term, autoescape=True),
                func.lower(Customer.company).contains(term, autoescape=True),
            )
        )
    if params.customer_tier:
        conditions.append(Customer.customer_tier == params.customer_tier)
    if params.industry:
        conditions.append(Customer.industry == params.industry)
    if params.location:
        conditions.append(func.lower(Customer.location).contains(params.location.lower(), autoescape=True))
    if params.status:
        conditions.append(Customer.status == params.status)

    result = await db.execute(
        select(
            Customer,
            func.count(Order.id).label("order_count"),
            func.max(Order.order_date).label("last_order"),
            func.sum(Order.total_amount).label("lifetime_value"),
        )
        .outerjoin(Order, Order.customer_id == Customer.id)
        .where(*conditions)
        .group_by(Customer.id)
        .order_by(Customer.total_spent.desc())
        .limit(params.limit)
    )
    customers = []
    for customer, order_count, last_order, lifetime_value in result.all():
        record = customer.to_dict()
        record["order_count"] = order_count
        record["last_order_date"] = last_order or customer.last_order_date
        record["lifetime_value"] = as_number(lifetime_value)
        customers.append(record)

    return {
        "customers": customers,
        "total": len(customers),
        "searchParams": params.model_dump(by_alias=True, exclude_none=True),
    }


async def load_customer_details(db: AsyncSession, customer_id: str) -> dict:
    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer", customer_id)

    order_rows = await db.execute(
        select(Order, SalesRep.name.label("sales_rep_name"))
        .outerjoin(SalesRep, SalesRep.id == Order.sales_rep_id)
        .where(Order.customer_id == customer_id)
        .order_by(Order.order_date.desc())
    )
    orders = [{**order.to_dict(), "sales_rep_name": rep_name} for order, rep_name in order_rows.all()]

    item_rows = await db.execute(
        select(OrderItem, Product.name, Product.category, Product.sku)
        .join(Product, Product.id == OrderItem.product_id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.customer_id == customer_id)
        .order_by(Order.order_date.desc())
    )
    order_items = [
        {**item.to_dict(), "product_name": name, "category": category, "sku": sku}
        for item, name, category, sku in item_rows.all()
    ]

    metrics_row = (
        await db.execute(
            select(
                func.count(Order.id).label("total_orders"),
                func.sum(Order.total_amount).label("total_spent"),
                func.avg(Order.total_amount).label("avg_order_value"),
                func.min(Order.order_date).label("first_order_date"),
                func.max(Order.order_date).label("last_order_date"),
            ).where(Order.customer_id == customer_id)
        )
    ).one()
    metrics = dict(metrics_row._mapping)

    return {
        "customer": customer.to_dict(),
        "orders": orders,
        "orderItems": order_items,
        "metrics": metrics,
        "summary": {
            "totalOrders": metrics["total_orders"] or 0,
            "totalSpent": as_number(metrics["total_spent"]),
            "avgOrderValue": as_number(metrics["avg_order_value"]),
            "customerSince": metrics["first_order_date"],
            "lastOrder": metrics["last_order_date"],
        },
    }


async def get_customer_details(db: AsyncSession, params: CustomerDetailsParams) -> dict:
    return await load_customer_details(db, params.customer_id)


def _allowed_updates(data: dict) -> dict:
    updates = {}
    for key, value in data.items():
        column = CUSTOMER_UPDATE_FIELDS.get(key)
        if column is None or value is None:
            continue
        choices = CUSTOMER_FIELD_CHOICES.get(column)
        if choices is not None and value not in choices:
            raise ValidationError(f"Invalid {key}: {value}. Expected one of: {', '.join(choices)}")
        updates[column] = value
    return updates


async def update_customer_info(db: AsyncSession, params: UpdateCustomerParams) -> dict:
    """Apply allow-listed field updates and return the refreshed customer details."""
    updates = _allowed_updates(params.data)
    if not updates:
        raise ValidationError("No valid fields to update")

    customer = await db.get(Customer, params.customer_id)
    if customer is None:
        raise NotFoundError("Customer", params.customer_id)

    email = updates.get("email")
    if email is not None and email != customer.email:
        clash = await db.scalar(select(Customer.id).where(Customer.email == email, Customer.id != customer.id))
        if clash is not None:
            raise DomainError(f"Email {email} is already in use by another customer")

    for column, value in updates.items():
        setattr(customer, column, value)
    customer.updated_at = datetime.utcnow()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("customer.update_conflict", customer_id=params.customer_id)
        raise DomainError("Customer update conflicts with an existing record") from None

    logger.info("customer.updated", customer_id=params.customer_id, fields=sorted(updates))
    return await load_customer_details(db, params.customer_id)
