"""
Data Export: flat row sets for one entity type.

  customers → customer-level filters (tier, industry)
  orders    → every order filter and the date range
  products  → productCategory
  inventory → productCategory
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.filters import PredicateSet
from analytics.metrics import stock_status
from analytics.queries import fetch_all, orders_query
from core.errors import ValidationError
from db.models import Customer, InventoryRecord, Order, Product, SalesRep
from dispatch.schemas import ExportDataParams


async def _export_customers(db: AsyncSession, predicates: PredicateSet) -> list[dict]:
    return await fetch_all(
        db,
        select(
            Customer.id,
            Customer.name,
            Customer.email,
            Customer.company,
            Customer.industry,
            Customer.location,
            Customer.customer_tier,
            Customer.total_spent,
            Customer.status,
            func.count(Order.id).label("order_count"),
            func.max(Order.order_date).label("last_order_date"),
        )
        .select_from(Customer)
        .outerjoin(Order, Order.customer_id == Customer.id)
        .where(*predicates.customer_conditions())
        .group_by(Customer.id)
        .order_by(Customer.total_spent.desc()),
    )


async def _export_orders(db: AsyncSession, predicates: PredicateSet) -> list[dict]:
    return await fetch_all(
        db,
        orders_query(
            Order.id,
            Order.order_date,
            Order.status,
            Order.total_amount,
            Order.payment_method,
            Order.region,
            Customer.name.label("customer_name"),
            Customer.company,
            SalesRep.name.label("sales_rep"),
        )
        .outerjoin(SalesRep, SalesRep.id == Order.sales_rep_id)
        .where(*predicates.order_conditions())
        .order_by(Order.order_date.desc()),
    )


async def _export_products(db: AsyncSession, predicates: PredicateSet) -> list[dict]:
    return await fetch_all(
        db,
        select(
            Product.id,
            Product.name,
            Product.category,
            Product.subcategory,
            Product.price,
            Product.cost,
            Product.sku,
            Product.brand,
            Product.status,
            InventoryRecord.quantity,
            InventoryRecord.warehouse,
        )
        .select_from(Product)
        .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
        .where(Product.status == "active", *predicates.inventory_conditions())
        .order_by(Product.category, Product.name),
    )


async def _export_inventory(db: AsyncSession, predicates: PredicateSet) -> list[dict]:
    rows = await fetch_all(
        db,
        select(
            Product.name,
            Product.sku,
            Product.category,
            InventoryRecord.warehouse,
            InventoryRecord.quantity,
            InventoryRecord.reorder_level,
        )
        .select_from(InventoryRecord)
        .join(Product, Product.id == InventoryRecord.product_id)
        .where(Product.status == "active", *predicates.inventory_conditions())
        .order_by(InventoryRecord.quantity),
    )
    for row in rows:
        row["stock_status"] = stock_status(row["quantity"], row["reorder_level"])
    return rows


EXPORTERS = {
    "customers": _export_customers,
    "orders": _export_orders,
    "products": _export_products,
    "inventory": _export_inventory,
}


async def export_data(db: AsyncSession, predicates: PredicateSet, params: ExportDataParams) -> list[dict]:
    exporter = EXPORTERS.get(params.data_type)
    if exporter is None:
        raise ValidationError(f"Unsupported data type: {params.data_type}")
    return await exporter(db, predicates)
