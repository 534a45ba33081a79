"""
Customer Analytics: who buys, how often, and who is drifting away.

Operations:
  - get_customer_analytics     tier/industry mix and lifetime value
  - analyze_customer_behavior  segments, day/hour patterns, retention
  - analyze_market_segments    industry × tier and location revenue
  - get_customer_churn_risk    days-since-last-order risk buckets
  - get_customer_segments      tier × industry spend
  - get_customer_lifecycle     acquisition-age stages and monthly cohorts
"""

from collections import defaultdict
from datetime import datetime

from sqlalchemy import case, distinct, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.filters import PredicateSet
from analytics.metrics import (
    CHURN_ACTIVE,
    CHURN_RISK_THRESHOLDS,
    LIFECYCLE_MATURE,
    LIFECYCLE_STAGES,
    as_number,
    average,
    churn_risk,
    days_between,
    lifecycle_stage,
    safe_ratio,
)
from analytics.queries import fetch_all, fetch_one, month_label, orders_query, scoped_customer_ids
from analytics.result import AnalyticsResult
from db.models import Customer, Order

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
AT_RISK_BUCKETS = ("High Risk", "Medium Risk")
NO_ORDERS = "No Orders"


def day_name(day_number) -> str:
    try:
        return DAY_NAMES[int(day_number)]
    except (TypeError, ValueError, IndexError):
        return "Unknown"


async def get_customer_analytics(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    """Tier distribution, industry breakdown and lifetime value of customers with matching orders."""
    in_scope = Customer.id.in_(scoped_customer_ids(predicates))

    total = await fetch_one(db, select(func.count(Customer.id).label("count")).where(in_scope))
    tier_distribution = await fetch_all(
        db,
        select(
            Customer.customer_tier,
            func.count(Customer.id).label("count"),
            func.avg(Customer.total_spent).label("avg_spent"),
        )
        .where(in_scope)
        .group_by(Customer.customer_tier)
        .order_by(func.avg(Customer.total_spent).desc()),
    )
    industry_breakdown = await fetch_all(
        db,
        select(
            Customer.industry,
            func.count(Customer.id).label("count"),
            func.sum(Customer.total_spent).label("total_revenue"),
        )
        .where(in_scope)
        .group_by(Customer.industry)
        .order_by(func.sum(Customer.total_spent).desc()),
    )
    clv = await fetch_one(
        db,
        select(
            func.avg(Customer.total_spent).label("avg_clv"),
            func.max(Customer.total_spent).label("max_clv"),
            func.min(Customer.total_spent).label("min_clv"),
        ).where(in_scope),
    )

    total_customers = int(as_number(total.get("count")))
    avg_clv = as_number(clv.get("avg_clv"))
    top_industry = industry_breakdown[0]["industry"] if industry_breakdown else None

    return AnalyticsResult(
        data={
            "totalCustomers": total_customers,
            "customerTierDistribution": tier_distribution,
            "industryBreakdown": industry_breakdown,
            "customerLifetimeValue": clv,
        },
        insights=[
            f"Total active customers: {total_customers}",
            f"Average customer lifetime value: ${avg_clv:,.2f}",
            f"Top performing industry: {top_industry or 'N/A'}",
        ],
        recommendations=[
            "Focus on platinum tier customers for retention programs",
            "Develop industry-specific marketing campaigns",
            "Implement customer segmentation strategies",
        ],
        metrics={
            "totalCustomers": total_customers,
            "avgCLV": avg_clv,
            "maxCLV": as_number(clv.get("max_clv")),
            "minCLV": as_number(clv.get("min_clv")),
        },
        trends={
            "tierDistribution": tier_distribution,
            "industryPerformance": industry_breakdown,
        },
    )


async def analyze_customer_behavior(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """Segment tenure, purchase timing patterns and repeat-purchase retention."""
    conditions = predicates.order_conditions()
    in_scope = Customer.id.in_(scoped_customer_ids(predicates))

    segments = await fetch_all(
        db,
        select(
            Customer.customer_tier,
            func.count(Customer.id).label("count"),
            func.avg(Customer.total_spent).label("avg_spent"),
        )
        .where(in_scope)
        .group_by(Customer.customer_tier)
        .order_by(Customer.customer_tier),
    )
    acquisitions = await fetch_all(
        db, select(Customer.customer_tier, Customer.acquisition_date).where(in_scope)
    )
    tenure: dict[str, list[float]] = defaultdict(list)
    for row in acquisitions:
        days = days_between(row["acquisition_date"], now)
        if days is not None:
            tenure[row["customer_tier"]].append(days)
    for segment in segments:
        segment["avg_days_since_acquisition"] = average(tenure.get(segment["customer_tier"], []))

    dow = extract("dow", Order.order_date)
    hour = extract("hour", Order.order_date)
    purchase_patterns = await fetch_all(
        db,
        orders_query(
            dow.label("day_of_week"),
            hour.label("hour_of_day"),
            func.count(Order.id).label("order_count"),
            func.avg(Order.total_amount).label("avg_amount"),
        )
        .where(*conditions)
        .group_by(dow, hour)
        .order_by(func.count(Order.id).desc()),
    )

    per_customer = (
        orders_query(Order.customer_id, func.count(Order.id).label("order_count"))
        .where(*conditions)
        .group_by(Order.customer_id)
        .subquery()
    )
    retention = await fetch_one(
        db,
        select(
            func.count(per_customer.c.customer_id).label("total_customers"),
            func.sum(case((per_customer.c.order_count > 1, 1), else_=0)).label("repeat_customers"),
        ),
    )
    total_customers = int(as_number(retention.get("total_customers")))
    repeat_customers = int(as_number(retention.get("repeat_customers")))
    retention_rate = safe_ratio(repeat_customers, total_customers)

    peak = purchase_patterns[0] if purchase_patterns else {}
    peak_hour = peak.get("hour_of_day")

    return AnalyticsResult(
        data={
            "customerSegments": segments,
            "purchasePatterns": purchase_patterns,
            "customerRetention": {
                "total_customers": total_customers,
                "repeat_customers": repeat_customers,
            },
            "retentionRate": retention_rate,
        },
        insights=[
            f"Customer retention rate: {retention_rate:.1f}%",
            f"Most active day: {day_name(peak.get('day_of_week'))}",
            f"Peak ordering hour: {int(peak_hour):02d}:00" if peak_hour is not None else "Peak ordering hour: N/A",
        ],
        recommendations=[
            "Implement loyalty programs for repeat customers",
            "Optimize marketing campaigns for peak hours",
            "Develop segment-specific engagement strategies",
        ],
        metrics={
            "retentionRate": retention_rate,
            "totalCustomers": total_customers,
            "repeatCustomers": repeat_customers,
        },
        trends={
            "segments": segments,
            "patterns": purchase_patterns,
        },
    )


async def analyze_market_segments(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    conditions = predicates.order_conditions()

    segment_analysis = await fetch_all(
        db,
        orders_query(
            Customer.industry,
            Customer.customer_tier,
            func.count(distinct(Customer.id)).label("customer_count"),
            func.sum(Order.total_amount).label("segment_revenue"),
            func.avg(Order.total_amount).label("avg_order_value"),
            func.count(Order.id).label("total_orders"),
        )
        .where(*conditions)
        .group_by(Customer.industry, Customer.customer_tier)
        .order_by(func.sum(Order.total_amount).desc()),
    )
    geographic_analysis = await fetch_all(
        db,
        orders_query(
            Customer.location,
            func.count(distinct(Customer.id)).label("customer_count"),
            func.sum(Order.total_amount).label("location_revenue"),
            func.avg(Order.total_amount).label("avg_order_value"),
        )
        .where(*conditions)
        .group_by(Customer.location)
        .order_by(func.sum(Order.total_amount).desc()),
    )

    top_segment = segment_analysis[0] if segment_analysis else {}
    top_location = geographic_analysis[0] if geographic_analysis else {}

    return AnalyticsResult(
        data={
            "segmentAnalysis": segment_analysis,
            "geographicAnalysis": geographic_analysis,
        },
        insights=[
            f"Most valuable segment: {top_segment.get('industry') or 'N/A'} - "
            f"{top_segment.get('customer_tier') or 'N/A'}",
            f"Top geographic market: {top_location.get('location') or 'N/A'}",
            f"Total market segments: {len(segment_analysis)}",
        ],
        recommendations=[
            "Focus marketing efforts on high-value segments",
            "Expand operations in top-performing locations",
            "Develop segment-specific product offerings",
        ],
        metrics={
            "topSegmentRevenue": as_number(top_segment.get("segment_revenue")),
            "totalSegments": len(segment_analysis),
            "topLocationRevenue": as_number(top_location.get("location_revenue")),
        },
        trends={
            "segmentPerformance": segment_analysis,
            "geographicTrends": geographic_analysis,
        },
    )


async def get_customer_churn_risk(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """
    Bucket every customer by days since their last order.

    The at-risk list carries High and Medium risk customers only; Low Risk
    and Active customers appear in the distribution but not in the list.
    Customers with no order history fall into "No Orders".
    """
    rows = await fetch_all(
        db,
        select(
            Customer.id,
            Customer.name,
            Customer.company,
            Customer.customer_tier,
            Customer.total_spent,
            func.max(Order.order_date).label("last_order_date"),
        )
        .select_from(Customer)
        .outerjoin(Order, Order.customer_id == Customer.id)
        .where(*predicates.customer_conditions())
        .group_by(Customer.id, Customer.name, Customer.company, Customer.customer_tier, Customer.total_spent),
    )

    bucket_order = [label for _, label in CHURN_RISK_THRESHOLDS] + [CHURN_ACTIVE, NO_ORDERS]
    distribution = {label: {"churn_risk": label, "customer_count": 0, "total_value_at_risk": 0.0} for label in bucket_order}
    at_risk = []
    for row in rows:
        days = days_between(row["last_order_date"], now)
        bucket = NO_ORDERS if days is None else churn_risk(days)
        distribution[bucket]["customer_count"] += 1
        distribution[bucket]["total_value_at_risk"] += as_number(row["total_spent"])
        if bucket in AT_RISK_BUCKETS:
            at_risk.append({**row, "days_since_last_order": round(days, 1), "churn_risk": bucket})
    at_risk.sort(key=lambda r: r["days_since_last_order"], reverse=True)

    risk_distribution = [entry for entry in distribution.values() if entry["customer_count"]]
    value_at_risk = sum(distribution[label]["total_value_at_risk"] for label in AT_RISK_BUCKETS)
    high_risk = distribution["High Risk"]["customer_count"]

    return AnalyticsResult(
        data={
            "churnRisk": at_risk,
            "riskDistribution": risk_distribution,
        },
        insights=[
            f"Customers at risk: {len(at_risk)}",
            f"Value at risk: ${value_at_risk:,.2f}",
            f"High risk customers: {high_risk}",
        ],
        recommendations=[
            "Implement customer retention campaigns for high-risk customers",
            "Create win-back offers for medium-risk customers",
            "Develop proactive engagement strategies",
        ],
        metrics={
            "atRiskCustomers": len(at_risk),
            "highRiskCustomers": high_risk,
            "valueAtRisk": value_at_risk,
            "churnRiskRate": safe_ratio(len(at_risk), len(rows)),
        },
        trends={
            "riskDistribution": risk_distribution,
        },
    )


async def get_customer_segments(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    conditions = predicates.customer_conditions()

    segments = await fetch_all(
        db,
        select(
            Customer.customer_tier,
            Customer.industry,
            func.count(Customer.id).label("customer_count"),
            func.avg(Customer.total_spent).label("avg_spent"),
            func.sum(Customer.total_spent).label("total_revenue"),
        )
        .where(*conditions)
        .group_by(Customer.customer_tier, Customer.industry)
        .order_by(func.sum(Customer.total_spent).desc()),
    )
    tier_analysis = await fetch_all(
        db,
        select(
            Customer.customer_tier,
            func.count(Customer.id).label("count"),
            func.avg(Customer.total_spent).label("avg_spent"),
            func.min(Customer.total_spent).label("min_spent"),
            func.max(Customer.total_spent).label("max_spent"),
        )
        .where(*conditions)
        .group_by(Customer.customer_tier)
        .order_by(func.avg(Customer.total_spent).desc()),
    )

    top_segment = segments[0] if segments else {}
    top_tier = tier_analysis[0]["customer_tier"] if tier_analysis else None

    return AnalyticsResult(
        data={"segments": segments, "tierAnalysis": tier_analysis},
        insights=[
            f"Total customer segments: {len(segments)}",
            f"Highest value tier: {top_tier or 'N/A'}",
            f"Highest revenue segment: {top_segment.get('customer_tier') or 'N/A'} - "
            f"{top_segment.get('industry') or 'N/A'}",
        ],
        recommendations=[
            "Tailor account management to the highest value tier",
            "Cross-sell into industries with low average spend",
            "Review tier assignments against actual spend",
        ],
        metrics={
            "totalSegments": len(segments),
            "topSegmentRevenue": as_number(top_segment.get("total_revenue")),
            "tierCount": len(tier_analysis),
        },
        trends={"segments": segments, "tiers": tier_analysis},
    )


async def get_customer_lifecycle(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """Acquisition-age stages plus 12-month acquisition cohorts with 30-day activity."""
    now = now or datetime.utcnow()
    rows = await fetch_all(
        db,
        select(Customer.acquisition_date, Customer.total_spent, Customer.last_order_date).where(
            *predicates.customer_conditions()
        ),
    )

    stage_order = [label for _, label in LIFECYCLE_STAGES] + [LIFECYCLE_MATURE]
    stages: dict[str, dict] = {}
    cohorts: dict[str, dict] = {}
    ages = []
    for row in rows:
        age = days_between(row["acquisition_date"], now)
        if age is None:
            continue
        ages.append(age)
        stage = stages.setdefault(lifecycle_stage(age), {"spent": [], "days": []})
        stage["spent"].append(row["total_spent"])
        stage["days"].append(age)

        if age <= 365:
            acquired = row["acquisition_date"]
            key = month_label(acquired.year, acquired.month)
            cohort = cohorts.setdefault(key, {"acquisition_month": key, "acquired_customers": 0, "active_customers": 0})
            cohort["acquired_customers"] += 1
            last_order_age = days_between(row["last_order_date"], now)
            if last_order_age is not None and last_order_age <= 30:
                cohort["active_customers"] += 1

    lifecycle_data = [
        {
            "lifecycle_stage": label,
            "customer_count": len(stages[label]["days"]),
            "avg_spent": average(stages[label]["spent"]),
            "avg_days_since_acquisition": average(stages[label]["days"]),
        }
        for label in stage_order
        if label in stages
    ]
    retention_analysis = sorted(cohorts.values(), key=lambda c: c["acquisition_month"], reverse=True)
    latest = retention_analysis[0] if retention_analysis else {}
    recent_retention = safe_ratio(latest.get("active_customers", 0), latest.get("acquired_customers", 0))
    largest_stage = max(lifecycle_data, key=lambda s: s["customer_count"], default={})

    return AnalyticsResult(
        data={"lifecycleData": lifecycle_data, "retentionAnalysis": retention_analysis},
        insights=[
            f"Most customers are in: {largest_stage.get('lifecycle_stage', 'N/A')} stage",
            f"Average customer age: {average(ages):.0f} days",
            f"Recent retention rate: {recent_retention:.1f}%",
        ],
        recommendations=[
            "Onboard new customers with a structured first 30 days",
            "Schedule business reviews for established accounts",
            "Re-engage mature customers with loyalty offers",
        ],
        metrics={
            "totalCustomers": len(ages),
            "avgCustomerAgeDays": average(ages),
            "recentRetentionRate": recent_retention,
        },
        trends={"stages": lifecycle_data, "cohorts": retention_analysis},
    )
