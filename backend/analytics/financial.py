"""Financial summary: order revenue, item-level profit and margin, top 10 products by profit."""

from sqlalchemy import distinct, func
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.filters import PredicateSet
from analytics.metrics import as_number, profit_and_margin
from analytics.queries import fetch_all, fetch_one, items_query, orders_query
from analytics.result import AnalyticsResult
from db.models import Order, OrderItem, Product

MARGIN_TARGET_PCT = 20
PROFITABILITY_LIMIT = 10


async def get_financial_summary(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    """
    Profit and margin come from order items (revenue − quantity × unit cost)
    across every product in scope; the top-10 list is presentation only.
    """
    financial_metrics = await fetch_one(
        db,
        orders_query(
            func.sum(Order.total_amount).label("total_revenue"),
            func.count(Order.id).label("total_orders"),
            func.avg(Order.total_amount).label("avg_order_value"),
            func.count(distinct(Order.customer_id)).label("unique_customers"),
        ).where(*predicates.order_conditions()),
    )

    item_cost = func.sum(OrderItem.quantity * Product.cost)
    item_revenue = func.sum(OrderItem.total_price)
    products = await fetch_all(
        db,
        items_query(
            Product.name,
            Product.category,
            func.sum(OrderItem.quantity).label("units_sold"),
            item_revenue.label("revenue"),
            item_cost.label("total_cost"),
        )
        .where(*predicates.item_conditions())
        .group_by(Product.id, Product.name, Product.category)
        .order_by((item_revenue - item_cost).desc()),
    )
    for product in products:
        product["profit"], product["profit_margin"] = profit_and_margin(product["revenue"], product["total_cost"])

    item_revenue_total = sum(as_number(p["revenue"]) for p in products)
    total_profit, overall_margin = profit_and_margin(
        item_revenue_total, sum(as_number(p["total_cost"]) for p in products)
    )
    profitability = products[:PROFITABILITY_LIMIT]
    total_revenue = as_number(financial_metrics.get("total_revenue"))
    top_product = profitability[0]["name"] if profitability else None

    return AnalyticsResult(
        data={
            "financialMetrics": financial_metrics,
            "productProfitability": profitability,
            "totalProfit": total_profit,
            "overallMargin": overall_margin,
        },
        insights=[
            f"Total revenue: ${total_revenue:,.2f}",
            f"Overall profit margin: {overall_margin:.1f}%",
            f"Most profitable product: {top_product or 'N/A'}",
        ],
        recommendations=[
            "Focus on improving profit margins" if overall_margin < MARGIN_TARGET_PCT else "Maintain healthy profit margins",
            "Increase sales of high-margin products",
            "Review pricing strategy for low-margin items",
        ],
        metrics={
            "totalRevenue": total_revenue,
            "totalProfit": total_profit,
            "profitMargin": overall_margin,
        },
        trends={
            "profitability": profitability,
            "financialHealth": financial_metrics,
        },
    )
