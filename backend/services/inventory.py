"""
Inventory Records: stock lookup and batch level updates.

A batch update runs inside one transaction: every (product, warehouse)
row must exist, otherwise nothing is written.
"""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.metrics import LOW_STOCK, as_number, average, stock_status
from analytics.queries import fetch_all
from core.errors import NotFoundError
from db.models import InventoryRecord, Product
from dispatch.schemas import CheckInventoryParams, UpdateInventoryParams

logger = structlog.get_logger()


async def check_inventory_levels(db: AsyncSession, params: CheckInventoryParams) -> dict:
    conditions = [Product.status == "active"]
    if params.category:
        conditions.append(Product.category == params.category)
    if params.warehouse:
        conditions.append(InventoryRecord.warehouse == params.warehouse)
    if params.low_stock_only:
        conditions.append(InventoryRecord.quantity <= InventoryRecord.reorder_level)

    order_by = (Product.name, InventoryRecord.warehouse) if params.sort_by == "name" else (InventoryRecord.quantity, Product.name)
    inventory = await fetch_all(
        db,
        select(
            Product.id,
            Product.name,
            Product.sku,
            Product.category,
            Product.price,
            Product.cost,
            InventoryRecord.warehouse,
            InventoryRecord.quantity,
            InventoryRecord.reorder_level,
            InventoryRecord.last_updated,
        )
        .select_from(InventoryRecord)
        .join(Product, Product.id == InventoryRecord.product_id)
        .where(*conditions)
        .order_by(*order_by),
    )
    for row in inventory:
        row["stock_status"] = stock_status(row["quantity"], row["reorder_level"])
        row["inventory_value"] = as_number(row["quantity"]) * as_number(row["cost"])

    summary = {
        "total_products": len(inventory),
        "low_stock_count": sum(1 for row in inventory if row["stock_status"] == LOW_STOCK),
        "total_inventory_value": sum(row["inventory_value"] for row in inventory),
        "avg_quantity": average([row["quantity"] for row in inventory]),
    }
    return {
        "inventory": inventory,
        "summary": summary,
        "filters": params.model_dump(by_alias=True, exclude_none=True),
        "insights": [
            f"Total products: {summary['total_products']}",
            f"Low stock items: {summary['low_stock_count']}",
            f"Total inventory value: ${summary['total_inventory_value']:,.2f}",
        ],
    }


async def update_inventory_levels(db: AsyncSession, params: UpdateInventoryParams) -> dict:
    now = datetime.utcnow()
    results = []
    try:
        for update in params.updates:
            record = await db.scalar(
                select(InventoryRecord).where(
                    InventoryRecord.product_id == update.product_id,
                    InventoryRecord.warehouse == update.warehouse,
                )
            )
            if record is None:
                raise NotFoundError("Inventory record", f"{update.product_id}/{update.warehouse}")
            record.quantity = update.quantity
            record.reorder_level = update.reorder_level
            record.last_updated = now
            results.append(
                {
                    "productId": update.product_id,
                    "warehouse": update.warehouse,
                    "quantity": update.quantity,
                    "reorderLevel": update.reorder_level,
                    "stockStatus": stock_status(update.quantity, update.reorder_level),
                    "status": "updated",
                }
            )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning("inventory.update_rolled_back", requested=len(params.updates), applied=len(results))
        raise

    logger.info("inventory.updated", rows=len(results))
    return {"updated": len(results), "results": results}
