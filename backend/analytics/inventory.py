"""
Inventory & Product Analytics

Stock levels, product rankings, turnover, warehouse health and reorder
planning. Inventory statements cover active products only and honour the
productCategory filter; product rankings run over order items and honour
every filter key.

Stock status and turnover class are computed in Python through
analytics.metrics so every operation buckets the same way.
"""

import math
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.filters import PredicateSet
from analytics.metrics import (
    HIGH_STOCK,
    LOW_STOCK,
    TURNOVER_FAST,
    TURNOVER_NO_SALES,
    TURNOVER_WINDOW_DAYS,
    as_number,
    average,
    days_of_inventory,
    profit_and_margin,
    safe_ratio,
    stock_status,
    turnover_class,
)
from analytics.queries import fetch_all, items_query
from analytics.result import AnalyticsResult
from db.models import InventoryRecord, Order, OrderItem, Product

TOP_PRODUCTS_LIMIT = 10
REORDER_LOOKBACK_DAYS = 90
REORDER_SUPPLY_DAYS = 30
REORDER_COVER_DAYS = 7


async def _inventory_rows(db: AsyncSession, predicates: PredicateSet) -> list[dict]:
    rows = await fetch_all(
        db,
        select(
            Product.id.label("product_id"),
            Product.name,
            Product.category,
            Product.sku,
            Product.cost,
            InventoryRecord.warehouse,
            InventoryRecord.quantity,
            InventoryRecord.reorder_level,
        )
        .select_from(InventoryRecord)
        .join(Product, Product.id == InventoryRecord.product_id)
        .where(Product.status == "active", *predicates.inventory_conditions())
        .order_by(InventoryRecord.quantity, Product.name),
    )
    for row in rows:
        row["stock_status"] = stock_status(row["quantity"], row["reorder_level"])
        row["inventory_value"] = as_number(row["quantity"]) * as_number(row["cost"])
    return rows


async def _units_sold_since(db: AsyncSession, since: datetime) -> dict[str, float]:
    rows = await fetch_all(
        db,
        select(OrderItem.product_id, func.sum(OrderItem.quantity).label("units_sold"))
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.order_date >= since)
        .group_by(OrderItem.product_id),
    )
    return {row["product_id"]: as_number(row["units_sold"]) for row in rows}


async def get_inventory_insights(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    rows = await _inventory_rows(db, predicates)
    low_stock = [row for row in rows if row["stock_status"] == LOW_STOCK]

    categories: dict = defaultdict(list)
    warehouses: dict = defaultdict(list)
    for row in rows:
        categories[row["category"]].append(row["quantity"])
        warehouses[row["warehouse"]].append(row["quantity"])
    category_breakdown = sorted(
        (
            {
                "category": category,
                "product_count": len(quantities),
                "total_quantity": sum(quantities),
                "avg_quantity": average(quantities),
            }
            for category, quantities in categories.items()
        ),
        key=lambda c: c["total_quantity"],
        reverse=True,
    )
    warehouse_distribution = [
        {"warehouse": warehouse, "products": len(quantities), "total_quantity": sum(quantities)}
        for warehouse, quantities in sorted(warehouses.items())
    ]
    total_value = sum(row["inventory_value"] for row in rows)
    top_category = category_breakdown[0]["category"] if category_breakdown else None

    return AnalyticsResult(
        data={
            "inventoryStatus": rows,
            "lowStockItems": low_stock,
            "categoryBreakdown": category_breakdown,
            "warehouseDistribution": warehouse_distribution,
        },
        insights=[
            f"Total products in inventory: {len(rows)}",
            f"Low stock items: {len(low_stock)}",
            f"Most stocked category: {top_category or 'N/A'}",
        ],
        recommendations=[
            "Reorder low stock items immediately",
            "Optimize warehouse distribution",
            "Implement automated reorder alerts",
        ],
        metrics={
            "totalProducts": len(rows),
            "lowStockCount": len(low_stock),
            "totalValue": total_value,
        },
        trends={
            "stockLevels": rows,
            "categoryDistribution": category_breakdown,
        },
    )


async def identify_top_products(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    conditions = predicates.item_conditions()
    top_products = await fetch_all(
        db,
        items_query(
            Product.id,
            Product.name,
            Product.category,
            Product.sku,
            func.sum(OrderItem.quantity).label("total_quantity"),
            func.sum(OrderItem.total_price).label("total_revenue"),
            func.count(distinct(OrderItem.order_id)).label("order_count"),
            func.avg(OrderItem.unit_price).label("avg_price"),
        )
        .where(*conditions)
        .group_by(Product.id, Product.name, Product.category, Product.sku)
        .order_by(func.sum(OrderItem.total_price).desc())
        .limit(TOP_PRODUCTS_LIMIT),
    )
    category_performance = await fetch_all(
        db,
        items_query(
            Product.category,
            func.count(distinct(Product.id)).label("product_count"),
            func.sum(OrderItem.total_price).label("category_revenue"),
            func.avg(OrderItem.unit_price).label("avg_category_price"),
        )
        .where(*conditions)
        .group_by(Product.category)
        .order_by(func.sum(OrderItem.total_price).desc()),
    )

    units_sold = sum(int(as_number(p["total_quantity"])) for p in top_products)
    top = top_products[0] if top_products else {}
    top_category = category_performance[0]["category"] if category_performance else None

    return AnalyticsResult(
        data={"topProducts": top_products, "categoryPerformance": category_performance},
        insights=[
            f"Top product: {top.get('name') or 'N/A'}",
            f"Best performing category: {top_category or 'N/A'}",
            f"Total products sold: {units_sold}",
        ],
        recommendations=[
            "Increase inventory for top-performing products",
            "Develop similar products in successful categories",
            "Optimize pricing for underperforming products",
        ],
        metrics={
            "topProductRevenue": as_number(top.get("total_revenue")),
            "totalProductsSold": units_sold,
            "categoryCount": len(category_performance),
        },
        trends={"productRankings": top_products, "categoryTrends": category_performance},
    )


async def get_product_performance(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    """Per-product revenue, cost, profit and margin, plus the category roll-up."""
    rows = await fetch_all(
        db,
        items_query(
            Product.id,
            Product.name,
            Product.category,
            Product.sku,
            Product.price,
            Product.cost,
            func.sum(OrderItem.quantity).label("units_sold"),
            func.sum(OrderItem.total_price).label("revenue"),
            func.sum(OrderItem.quantity * Product.cost).label("total_cost"),
            func.count(distinct(OrderItem.order_id)).label("order_count"),
            func.avg(OrderItem.unit_price).label("avg_selling_price"),
        )
        .where(*predicates.item_conditions())
        .group_by(Product.id, Product.name, Product.category, Product.sku, Product.price, Product.cost)
        .order_by(func.sum(OrderItem.total_price).desc()),
    )

    categories: dict[str, dict] = {}
    for row in rows:
        row["profit"], row["profit_margin"] = profit_and_margin(row["revenue"], row["total_cost"])
        category = categories.setdefault(
            row["category"],
            {"category": row["category"], "product_count": 0, "total_units_sold": 0, "category_revenue": 0.0, "category_cost": 0.0},
        )
        category["product_count"] += 1
        category["total_units_sold"] += int(as_number(row["units_sold"]))
        category["category_revenue"] += as_number(row["revenue"])
        category["category_cost"] += as_number(row["total_cost"])

    category_performance = []
    for category in sorted(categories.values(), key=lambda c: c["category_revenue"], reverse=True):
        _, margin = profit_and_margin(category["category_revenue"], category.pop("category_cost"))
        category["profit_margin"] = margin
        category_performance.append(category)

    units_sold = sum(int(as_number(row["units_sold"])) for row in rows)
    top = rows[0] if rows else {}
    top_category = category_performance[0]["category"] if category_performance else None
    total_profit = sum(row["profit"] for row in rows)

    return AnalyticsResult(
        data={"productPerformance": rows, "categoryPerformance": category_performance},
        insights=[
            f"Top performing product: {top.get('name') or 'N/A'}",
            f"Best category: {top_category or 'N/A'}",
            f"Total products sold: {units_sold}",
        ],
        recommendations=[
            "Promote high-margin products more prominently",
            "Review pricing of products with thin margins",
            "Bundle slow sellers with top performers",
        ],
        metrics={
            "productCount": len(rows),
            "totalUnitsSold": units_sold,
            "totalProfit": total_profit,
        },
        trends={"products": rows, "categories": category_performance},
    )


async def get_inventory_turnover(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """Days of inventory from the last 30 days of unit sales; 'No Sales' when nothing sold."""
    now = now or datetime.utcnow()
    rows = await _inventory_rows(db, predicates)
    sold = await _units_sold_since(db, now - timedelta(days=TURNOVER_WINDOW_DAYS))

    turnover = []
    for row in rows:
        units = sold.get(row["product_id"], 0.0)
        turnover.append(
            {
                "product_id": row["product_id"],
                "name": row["name"],
                "category": row["category"],
                "warehouse": row["warehouse"],
                "current_stock": row["quantity"],
                "units_sold_30_days": units,
                "days_of_inventory": days_of_inventory(row["quantity"], units),
                "turnover_category": turnover_class(row["quantity"], units),
            }
        )
    turnover.sort(key=lambda t: t["days_of_inventory"], reverse=True)

    grouped: dict = defaultdict(list)
    for entry in turnover:
        grouped[entry["turnover_category"]].append(entry)
    summary = [
        {
            "turnover_category": category,
            "product_count": len(entries),
            "total_stock": sum(e["current_stock"] for e in entries),
            "avg_days_inventory": average([e["days_of_inventory"] for e in entries]),
        }
        for category, entries in grouped.items()
    ]
    slow = len(grouped.get("Slow Moving", []))
    fast = len(grouped.get(TURNOVER_FAST, []))
    avg_days = average([s["avg_days_inventory"] for s in summary if s["turnover_category"] != TURNOVER_NO_SALES])

    return AnalyticsResult(
        data={"turnoverData": turnover, "turnoverSummary": summary},
        insights=[
            f"Slow moving products: {slow}",
            f"Fast moving products: {fast}",
            f"Average inventory days: {avg_days:.1f}",
        ],
        recommendations=[
            "Run promotions to clear slow moving stock",
            "Raise reorder levels for fast moving products",
            "Review products with no sales in the last 30 days",
        ],
        metrics={
            "slowMoving": slow,
            "fastMoving": fast,
            "avgDaysOfInventory": avg_days,
        },
        trends={"summary": summary},
    )


async def get_warehouse_analysis(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    """Per-warehouse value and efficiency; efficiency = share of rows above 2× reorder level."""
    rows = await _inventory_rows(db, predicates)

    grouped: dict = defaultdict(list)
    for row in rows:
        grouped[row["warehouse"]].append(row)

    warehouse_data = []
    efficiency = []
    for warehouse, entries in grouped.items():
        quantities = [e["quantity"] for e in entries]
        low = sum(1 for e in entries if e["stock_status"] == LOW_STOCK)
        well_stocked = sum(1 for e in entries if e["stock_status"] == HIGH_STOCK)
        warehouse_data.append(
            {
                "warehouse": warehouse,
                "product_count": len({e["product_id"] for e in entries}),
                "total_quantity": sum(quantities),
                "total_value": sum(e["inventory_value"] for e in entries),
                "avg_quantity_per_product": average(quantities),
                "low_stock_items": low,
            }
        )
        efficiency.append(
            {
                "warehouse": warehouse,
                "total_products": len(entries),
                "well_stocked": well_stocked,
                "under_stocked": low,
                "out_of_stock": sum(1 for q in quantities if as_number(q) == 0),
                "efficiency_score": safe_ratio(well_stocked, len(entries)),
            }
        )
    warehouse_data.sort(key=lambda w: w["total_value"], reverse=True)
    efficiency.sort(key=lambda w: w["efficiency_score"], reverse=True)

    most_valuable = warehouse_data[0]["warehouse"] if warehouse_data else None
    most_efficient = efficiency[0]["warehouse"] if efficiency else None

    return AnalyticsResult(
        data={"warehouseData": warehouse_data, "warehouseEfficiency": efficiency},
        insights=[
            f"Most valuable warehouse: {most_valuable or 'N/A'}",
            f"Most efficient warehouse: {most_efficient or 'N/A'}",
            f"Total warehouses: {len(warehouse_data)}",
        ],
        recommendations=[
            "Transfer stock from well-stocked warehouses to under-stocked ones",
            "Audit warehouses with out-of-stock items",
            "Consolidate low-value warehouses where possible",
        ],
        metrics={
            "warehouseCount": len(warehouse_data),
            "totalInventoryValue": sum(w["total_value"] for w in warehouse_data),
            "topEfficiencyScore": efficiency[0]["efficiency_score"] if efficiency else 0.0,
        },
        trends={"efficiency": efficiency},
    )


async def get_reorder_recommendations(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """
    Rows at or below their reorder level, or holding under a week of demand.

    Average daily sales is units sold over the last 90 days divided by 90.
    The suggested quantity covers 30 days of that demand, or twice the
    reorder level when nothing sold.
    """
    now = now or datetime.utcnow()
    rows = await _inventory_rows(db, predicates)
    sold = await _units_sold_since(db, now - timedelta(days=REORDER_LOOKBACK_DAYS))

    recommendations = []
    for row in rows:
        avg_daily = sold.get(row["product_id"], 0.0) / REORDER_LOOKBACK_DAYS
        quantity = as_number(row["quantity"])
        level = as_number(row["reorder_level"])
        if not (quantity <= level or quantity <= avg_daily * REORDER_COVER_DAYS):
            continue
        if avg_daily == 0:
            order_quantity = int(level * 2)
        else:
            order_quantity = math.ceil(avg_daily * REORDER_SUPPLY_DAYS)
        recommendations.append(
            {
                "product_id": row["product_id"],
                "name": row["name"],
                "sku": row["sku"],
                "category": row["category"],
                "warehouse": row["warehouse"],
                "quantity": row["quantity"],
                "reorder_level": row["reorder_level"],
                "avg_daily_sales": avg_daily,
                "recommended_order_quantity": order_quantity,
                "urgent_reorder_needed": level - quantity,
                "estimated_cost": order_quantity * as_number(row["cost"]),
            }
        )
    recommendations.sort(key=lambda r: (r["urgent_reorder_needed"], r["avg_daily_sales"]), reverse=True)

    urgent = sum(1 for r in recommendations if r["urgent_reorder_needed"] > 0)
    total_cost = sum(r["estimated_cost"] for r in recommendations)
    summary = {"urgent": urgent, "recommended": len(recommendations), "totalValue": total_cost}

    return AnalyticsResult(
        data={"recommendations": recommendations, "summary": summary},
        insights=[
            f"Urgent reorders needed: {urgent}",
            f"Total recommendations: {len(recommendations)}",
            f"Estimated reorder value: ${total_cost:,.2f}",
        ],
        recommendations=[
            "Place urgent reorders before stock runs out",
            "Review reorder levels against recent demand",
            "Negotiate volume pricing for frequent reorders",
        ],
        metrics={
            "urgentReorders": urgent,
            "totalRecommendations": len(recommendations),
            "estimatedReorderValue": total_cost,
        },
        trends={"summary": summary},
    )
