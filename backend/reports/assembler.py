"""
Report Assembler: one composite report across the analytics catalog.

Sequence:
  1. Executive summary (headline counts, top 3 products and customers)
  2. Customer analytics
  3. Sales performance
  4. Inventory insights
  5. Financial summary
  6. Recommendation plan merged from steps 2-5

Recommendations are deduplicated in first-seen order, the first five are
flagged as priority, and the list is split positionally into tiers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import distinct, func
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.customers import get_customer_analytics
from analytics.filters import PredicateSet
from analytics.financial import get_financial_summary
from analytics.inventory import get_inventory_insights
from analytics.metrics import as_number
from analytics.queries import fetch_all, fetch_one, items_query, orders_query
from analytics.result import AnalyticsResult
from analytics.sales import get_sales_performance
from db.models import Customer, Order, OrderItem, Product

logger = structlog.get_logger()

PRIORITY_COUNT = 5
TOP_N = 3


@dataclass(frozen=True)
class Tier:
    name: str
    size: int | None
    timeline: str
    resources: str
    priority: str


IMPLEMENTATION_TIERS = (
    Tier("immediate", 2, "1-2 weeks", "Internal team", "High"),
    Tier("shortTerm", 2, "1-3 months", "Internal team + external consultants", "Medium"),
    Tier("longTerm", None, "3-6 months", "Strategic planning team", "Low"),
)


@dataclass
class CompositeReport:
    metadata: dict[str, Any]
    executive_summary: dict[str, Any]
    customer_analytics: AnalyticsResult
    sales_performance: AnalyticsResult
    inventory_insights: AnalyticsResult
    financial_summary: AnalyticsResult
    recommendations: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata,
            "executiveSummary": self.executive_summary,
            "customerAnalytics": self.customer_analytics.to_dict(),
            "salesPerformance": self.sales_performance.to_dict(),
            "inventoryInsights": self.inventory_insights.to_dict(),
            "financialSummary": self.financial_summary.to_dict(),
            "recommendations": self.recommendations,
        }


def merge_recommendations(*results: AnalyticsResult) -> list[str]:
    """Concatenate recommendation lists, dropping exact duplicates, first occurrence wins."""
    return list(dict.fromkeys(rec for result in results for rec in result.recommendations))


def implementation_plan(recommendations: list[str]) -> dict[str, list[dict]]:
    plan: dict[str, list[dict]] = {}
    remaining = list(recommendations)
    for tier in IMPLEMENTATION_TIERS:
        taken = remaining if tier.size is None else remaining[: tier.size]
        remaining = [] if tier.size is None else remaining[tier.size :]
        plan[tier.name] = [
            {
                "recommendation": rec,
                "timeline": tier.timeline,
                "resources": tier.resources,
                "priority": tier.priority,
            }
            for rec in taken
        ]
    return plan


def build_recommendations(*results: AnalyticsResult) -> dict[str, Any]:
    merged = merge_recommendations(*results)
    return {
        "priority": merged[:PRIORITY_COUNT],
        "all": merged,
        "implementation": implementation_plan(merged),
    }


async def executive_summary(db: AsyncSession, predicates: PredicateSet) -> dict[str, Any]:
    conditions = predicates.order_conditions()
    key_metrics = await fetch_one(
        db,
        orders_query(
            func.count(distinct(Customer.id)).label("total_customers"),
            func.count(Order.id).label("total_orders"),
            func.sum(Order.total_amount).label("total_revenue"),
            func.avg(Order.total_amount).label("avg_order_value"),
        ).where(*conditions),
    )
    top_products = await fetch_all(
        db,
        items_query(Product.name, func.sum(OrderItem.total_price).label("revenue"))
        .where(*predicates.item_conditions())
        .group_by(Product.id, Product.name)
        .order_by(func.sum(OrderItem.total_price).desc())
        .limit(TOP_N),
    )
    top_customers = await fetch_all(
        db,
        orders_query(Customer.name, Customer.company, func.sum(Order.total_amount).label("total_spent"))
        .where(*conditions)
        .group_by(Customer.id, Customer.name, Customer.company)
        .order_by(func.sum(Order.total_amount).desc())
        .limit(TOP_N),
    )

    customers = int(as_number(key_metrics.get("total_customers")))
    revenue = as_number(key_metrics.get("total_revenue"))
    return {
        "keyMetrics": key_metrics,
        "topProducts": top_products,
        "topCustomers": top_customers,
        "summary": f"{customers} active customers generated ${revenue:,.2f} in revenue.",
    }


async def assemble_report(db: AsyncSession, predicates: PredicateSet, fmt: str = "json") -> CompositeReport:
    """Run the report sequence and build the composite; serialization is left to the caller."""
    summary = await executive_summary(db, predicates)
    customers = await get_customer_analytics(db, predicates)
    sales = await get_sales_performance(db, predicates)
    inventory = await get_inventory_insights(db, predicates)
    financial = await get_financial_summary(db, predicates)

    report = CompositeReport(
        metadata={
            "generatedAt": datetime.utcnow().isoformat(),
            **predicates.describe(),
            "format": fmt,
        },
        executive_summary=summary,
        customer_analytics=customers,
        sales_performance=sales,
        inventory_insights=inventory,
        financial_summary=financial,
        recommendations=build_recommendations(customers, sales, inventory, financial),
    )
    logger.info("report.assembled", recommendations=len(report.recommendations["all"]), format=fmt)
    return report
