"""
Sales Analytics: revenue, orders, forecasts, reps and pipeline.

Operations:
  - get_sales_performance             totals, 12-month trend, rep ranking
  - predict_sales_trends              additive 3-month forecast (floor 0.5)
  - get_revenue_forecast              compounding 12-month forecast (floor 0.3)
  - get_order_analytics               status mix, fulfillment and cancellation
  - get_operational_metrics           order age and payment mix
  - analyze_geographic_sales          revenue by customer location and order region
  - get_sales_rep_performance         per rep, per region, monthly per rep
  - get_sales_forecast                compounding revenue + additive orders, 6 months
  - get_customer_acquisition_metrics  customers acquired in the last 12 months
  - get_sales_pipeline                Hot/Warm leads with tier-weighted value

Forecasts split the most recent window of monthly revenue into a recent
and an older half; see analytics.metrics.split_growth_rate.
"""

from datetime import date, datetime, timedelta

from sqlalchemy import case, distinct, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics.filters import PredicateSet
from analytics.metrics import (
    LEAD_STAGES,
    additive_forecast,
    as_number,
    average,
    compound_forecast,
    days_between,
    lead_status,
    safe_ratio,
    split_growth_rate,
)
from analytics.queries import (
    default_order_measures,
    fetch_all,
    fetch_one,
    month_label,
    monthly_trend,
    orders_query,
)
from analytics.result import AnalyticsResult
from db.models import Customer, Order, SalesRep

PIPELINE_TIER_FACTORS = {"platinum": 0.2, "gold": 0.15, "silver": 0.1}
PIPELINE_DEFAULT_FACTOR = 0.05
PIPELINE_STAGES = tuple(label for limit, label in LEAD_STAGES if limit <= 60)

CANCELLATION_ALERT_PCT = 10
FULFILLMENT_TARGET_PCT = 90
REVENUE_MOMENTUM_PCT = 5


def _status_count(status: str):
    return func.sum(case((Order.status == status, 1), else_=0))


def _filtered_orders(predicates: PredicateSet):
    """Subquery of the orders matching the predicates, for outer joins from reps."""
    return (
        orders_query(
            Order.id,
            Order.sales_rep_id,
            Order.customer_id,
            Order.total_amount,
            Order.order_date,
        )
        .where(*predicates.order_conditions())
        .subquery()
    )


async def _order_totals(db: AsyncSession, predicates: PredicateSet) -> dict:
    return await fetch_one(
        db,
        orders_query(
            func.count(Order.id).label("total_orders"),
            func.sum(Order.total_amount).label("total_revenue"),
            func.avg(Order.total_amount).label("avg_order_value"),
            func.count(distinct(Order.customer_id)).label("unique_customers"),
            _status_count("delivered").label("delivered_orders"),
            _status_count("cancelled").label("cancelled_orders"),
        ).where(*predicates.order_conditions()),
    )


def _rates(totals: dict) -> tuple[float, float]:
    """(fulfillment_rate, cancellation_rate) as percentages of all orders."""
    total_orders = totals.get("total_orders")
    return (
        safe_ratio(totals.get("delivered_orders"), total_orders),
        safe_ratio(totals.get("cancelled_orders"), total_orders),
    )


# ─── Performance ───────────────────────────────────────────────────────────


async def get_sales_performance(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    totals = await _order_totals(db, predicates)
    monthly_sales = await monthly_trend(db, predicates, 12, **default_order_measures())

    scoped = _filtered_orders(predicates)
    rep_performance = await fetch_all(
        db,
        select(
            SalesRep.name,
            SalesRep.region,
            func.count(scoped.c.id).label("orders"),
            func.sum(scoped.c.total_amount).label("revenue"),
            func.avg(scoped.c.total_amount).label("avg_deal_size"),
        )
        .select_from(SalesRep)
        .join(scoped, scoped.c.sales_rep_id == SalesRep.id)
        .group_by(SalesRep.id, SalesRep.name, SalesRep.region)
        .order_by(func.sum(scoped.c.total_amount).desc()),
    )

    total_revenue = as_number(totals.get("total_revenue"))
    avg_order_value = as_number(totals.get("avg_order_value"))
    top_rep = rep_performance[0]["name"] if rep_performance else None

    return AnalyticsResult(
        data={
            "salesMetrics": totals,
            "monthlySales": monthly_sales,
            "salesRepPerformance": rep_performance,
        },
        insights=[
            f"Total revenue: ${total_revenue:,.2f}",
            f"Average order value: ${avg_order_value:,.2f}",
            f"Top performing sales rep: {top_rep or 'N/A'}",
        ],
        recommendations=[
            "Implement sales training for underperforming regions",
            "Focus on increasing average order value",
            "Develop targeted campaigns for high-value customers",
        ],
        metrics={
            "totalRevenue": total_revenue,
            "avgOrderValue": avg_order_value,
            "totalOrders": int(as_number(totals.get("total_orders"))),
        },
        trends={
            "monthlyTrend": monthly_sales,
            "repPerformance": rep_performance,
        },
    )


# ─── Forecasts ─────────────────────────────────────────────────────────────


async def predict_sales_trends(
    db: AsyncSession,
    predicates: PredicateSet,
    today: date | None = None,
) -> AnalyticsResult:
    """Additive 3-month revenue forecast from a 12-month, 6/6 split."""
    history = await monthly_trend(db, predicates, 12, **default_order_measures())
    growth_rate, recent_avg, _ = split_growth_rate([m["revenue"] for m in history], 12)

    forecast = [
        {"month": p.month, "predicted_revenue": p.value, "confidence": p.confidence}
        for p in additive_forecast(recent_avg, growth_rate, 3, decay=0.1, floor=0.5, start=today)
    ]
    forecast_total = sum(f["predicted_revenue"] for f in forecast)

    return AnalyticsResult(
        data={"historicalData": history, "forecast": forecast, "growthRate": growth_rate},
        insights=[
            f"Sales growth rate: {growth_rate:.1f}%",
            f"Average monthly revenue: ${recent_avg:,.2f}",
            f"Next quarter forecast: ${forecast_total:,.2f}",
        ],
        recommendations=[
            "Maintain current growth strategies" if growth_rate > 0 else "Implement growth initiatives",
            "Monitor forecast accuracy monthly",
            "Adjust inventory based on predicted demand",
        ],
        metrics={
            "growthRate": growth_rate,
            "avgMonthlyRevenue": recent_avg,
            "forecastedRevenue": forecast_total,
        },
        trends={"historical": history, "predicted": forecast},
    )


async def get_revenue_forecast(
    db: AsyncSession,
    predicates: PredicateSet,
    today: date | None = None,
) -> AnalyticsResult:
    """Compounding 12-month forecast from a 6-month, 3/3 split.

    The base is the recent-half monthly average, so the projection is in
    monthly revenue units like every other forecast.
    """
    totals = await fetch_one(
        db,
        orders_query(func.sum(Order.total_amount).label("total_revenue")).where(*predicates.order_conditions()),
    )
    history = await monthly_trend(db, predicates, 6, revenue=func.sum(Order.total_amount))
    growth_rate, recent_avg, _ = split_growth_rate([m["revenue"] for m in history], 6)

    forecast = [
        {"month": p.month, "forecasted_revenue": p.value, "confidence": p.confidence}
        for p in compound_forecast(recent_avg, growth_rate, 12, decay=0.05, floor=0.3, start=today)
    ]
    annual = sum(f["forecasted_revenue"] for f in forecast)
    current_revenue = as_number(totals.get("total_revenue"))

    return AnalyticsResult(
        data={
            "currentRevenue": totals,
            "monthlyGrowth": history,
            "forecast": forecast,
            "growthRate": growth_rate,
        },
        insights=[
            f"Current revenue: ${current_revenue:,.2f}",
            f"Monthly growth rate: {growth_rate:.1f}%",
            f"Annual forecast: ${annual:,.2f}",
        ],
        recommendations=[
            "Maintain growth momentum" if growth_rate > REVENUE_MOMENTUM_PCT else "Focus on revenue growth strategies",
            "Monitor forecast accuracy quarterly",
            "Adjust business strategies based on forecast trends",
        ],
        metrics={
            "currentRevenue": current_revenue,
            "growthRate": growth_rate,
            "forecastedAnnualRevenue": annual,
        },
        trends={"historical": history, "forecasted": forecast},
    )


async def get_sales_forecast(
    db: AsyncSession,
    predicates: PredicateSet,
    today: date | None = None,
) -> AnalyticsResult:
    """6-month forecast: compounding revenue, additive order counts."""
    history = await monthly_trend(db, predicates, 12, **default_order_measures())
    growth_rate, recent_avg, _ = split_growth_rate([m["revenue"] for m in history], 12)
    recent_orders = average([m["orders"] for m in history[:6]])

    revenue_points = compound_forecast(recent_avg, growth_rate, 6, decay=0.1, floor=0.3, start=today)
    order_points = additive_forecast(recent_orders, growth_rate, 6, decay=0.1, floor=0.3, start=today)
    forecast = [
        {
            "month": rev.month,
            "forecasted_revenue": rev.value,
            "forecasted_orders": max(0, round(orders.value)),
            "confidence": rev.confidence,
        }
        for rev, orders in zip(revenue_points, order_points)
    ]
    forecast_revenue = sum(f["forecasted_revenue"] for f in forecast)
    forecast_orders = sum(f["forecasted_orders"] for f in forecast)

    return AnalyticsResult(
        data={"historicalData": history, "forecast": forecast, "growthRate": growth_rate},
        insights=[
            f"Current growth rate: {growth_rate:.1f}%",
            f"6-month forecast: ${forecast_revenue:,.2f}",
            f"Expected orders: {forecast_orders}",
        ],
        recommendations=[
            "Align staffing with the forecasted order volume",
            "Review the forecast against actuals each month",
            "Plan inventory purchases around forecasted demand",
        ],
        metrics={
            "growthRate": growth_rate,
            "forecastedRevenue": forecast_revenue,
            "forecastedOrders": forecast_orders,
        },
        trends={"historical": history, "forecasted": forecast},
    )


# ─── Orders & operations ───────────────────────────────────────────────────


async def get_order_analytics(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    totals = await _order_totals(db, predicates)
    order_trends = await monthly_trend(
        db,
        predicates,
        12,
        order_count=func.count(Order.id),
        monthly_revenue=func.sum(Order.total_amount),
        avg_order_value=func.avg(Order.total_amount),
    )
    status_distribution = await fetch_all(
        db,
        orders_query(
            Order.status,
            func.count(Order.id).label("count"),
            func.sum(Order.total_amount).label("revenue"),
            func.avg(Order.total_amount).label("avg_value"),
        )
        .where(*predicates.order_conditions())
        .group_by(Order.status)
        .order_by(func.count(Order.id).desc()),
    )
    fulfillment_rate, cancellation_rate = _rates(totals)
    total_orders = int(as_number(totals.get("total_orders")))

    return AnalyticsResult(
        data={
            "orderMetrics": totals,
            "orderTrends": order_trends,
            "orderStatusDistribution": status_distribution,
            "fulfillmentRate": fulfillment_rate,
            "cancellationRate": cancellation_rate,
        },
        insights=[
            f"Total orders: {total_orders}",
            f"Fulfillment rate: {fulfillment_rate:.1f}%",
            f"Cancellation rate: {cancellation_rate:.1f}%",
            f"Average order value: ${as_number(totals.get('avg_order_value')):,.2f}",
        ],
        recommendations=[
            "Investigate and reduce cancellation causes"
            if cancellation_rate > CANCELLATION_ALERT_PCT
            else "Maintain low cancellation rate",
            "Track pending orders daily to shorten fulfillment time",
            "Follow up with customers on cancelled orders",
        ],
        metrics={
            "totalOrders": total_orders,
            "fulfillmentRate": fulfillment_rate,
            "cancellationRate": cancellation_rate,
        },
        trends={"monthly": order_trends, "statusDistribution": status_distribution},
    )


async def get_operational_metrics(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    conditions = predicates.order_conditions()
    totals = await _order_totals(db, predicates)
    order_dates = await db.scalars(orders_query(Order.order_date).where(*conditions))
    ages = [days_between(d, now) for d in order_dates.all()]
    avg_order_age = average([a for a in ages if a is not None])
    totals["avg_order_age_days"] = avg_order_age

    payment_methods = await fetch_all(
        db,
        orders_query(
            Order.payment_method,
            func.count(Order.id).label("count"),
            func.sum(Order.total_amount).label("total_amount"),
        )
        .where(*conditions)
        .group_by(Order.payment_method)
        .order_by(func.sum(Order.total_amount).desc()),
    )
    fulfillment_rate, cancellation_rate = _rates(totals)

    return AnalyticsResult(
        data={
            "orderMetrics": totals,
            "fulfillmentRate": fulfillment_rate,
            "cancellationRate": cancellation_rate,
            "paymentMethods": payment_methods,
        },
        insights=[
            f"Order fulfillment rate: {fulfillment_rate:.1f}%",
            f"Cancellation rate: {cancellation_rate:.1f}%",
            f"Average order processing time: {avg_order_age:.1f} days",
        ],
        recommendations=[
            "Investigate and reduce cancellation causes"
            if cancellation_rate > CANCELLATION_ALERT_PCT
            else "Maintain low cancellation rate",
            "Improve fulfillment processes" if fulfillment_rate < FULFILLMENT_TARGET_PCT else "Excellent fulfillment performance",
            "Optimize payment method offerings based on customer preferences",
        ],
        metrics={
            "fulfillmentRate": fulfillment_rate,
            "cancellationRate": cancellation_rate,
            "avgOrderAge": avg_order_age,
        },
        trends={"orderStatus": totals, "paymentTrends": payment_methods},
    )


async def analyze_geographic_sales(db: AsyncSession, predicates: PredicateSet) -> AnalyticsResult:
    conditions = predicates.order_conditions()
    geographic_data = await fetch_all(
        db,
        orders_query(
            Customer.location,
            func.count(distinct(Customer.id)).label("customer_count"),
            func.count(Order.id).label("order_count"),
            func.sum(Order.total_amount).label("total_revenue"),
            func.avg(Order.total_amount).label("avg_order_value"),
        )
        .where(*conditions)
        .group_by(Customer.location)
        .order_by(func.sum(Order.total_amount).desc()),
    )
    regional_performance = await fetch_all(
        db,
        orders_query(
            Order.region,
            func.count(distinct(Customer.id)).label("customer_count"),
            func.sum(Order.total_amount).label("region_revenue"),
            func.avg(Order.total_amount).label("avg_order_value"),
        )
        .where(*conditions)
        .group_by(Order.region)
        .order_by(func.sum(Order.total_amount).desc()),
    )

    top_location = geographic_data[0] if geographic_data else {}
    top_region = regional_performance[0] if regional_performance else {}

    return AnalyticsResult(
        data={"geographicData": geographic_data, "regionalPerformance": regional_performance},
        insights=[
            f"Top performing location: {top_location.get('location') or 'N/A'}",
            f"Best region: {top_region.get('region') or 'N/A'}",
            f"Geographic coverage: {len(geographic_data)} locations",
        ],
        recommendations=[
            "Expand operations in high-performing locations",
            "Investigate opportunities in underperforming regions",
            "Develop location-specific marketing strategies",
        ],
        metrics={
            "topLocationRevenue": as_number(top_location.get("total_revenue")),
            "topRegionRevenue": as_number(top_region.get("region_revenue")),
            "locationCount": len(geographic_data),
        },
        trends={"locationPerformance": geographic_data, "regionalTrends": regional_performance},
    )


# ─── Reps, acquisition, pipeline ───────────────────────────────────────────


async def get_sales_rep_performance(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """Every rep (including reps without orders), their regions, and 12 months per rep."""
    now = now or datetime.utcnow()
    scoped = _filtered_orders(predicates)

    rep_performance = await fetch_all(
        db,
        select(
            SalesRep.id,
            SalesRep.name,
            SalesRep.region,
            func.count(scoped.c.id).label("total_orders"),
            func.coalesce(func.sum(scoped.c.total_amount), 0).label("total_revenue"),
            func.avg(scoped.c.total_amount).label("avg_deal_size"),
            func.count(distinct(scoped.c.customer_id)).label("unique_customers"),
            func.max(scoped.c.order_date).label("last_order_date"),
        )
        .select_from(SalesRep)
        .outerjoin(scoped, scoped.c.sales_rep_id == SalesRep.id)
        .group_by(SalesRep.id, SalesRep.name, SalesRep.region)
        .order_by(func.coalesce(func.sum(scoped.c.total_amount), 0).desc(), SalesRep.name),
    )
    regional_performance = await fetch_all(
        db,
        select(
            SalesRep.region,
            func.count(distinct(SalesRep.id)).label("rep_count"),
            func.count(scoped.c.id).label("total_orders"),
            func.coalesce(func.sum(scoped.c.total_amount), 0).label("region_revenue"),
            func.avg(scoped.c.total_amount).label("avg_deal_size"),
        )
        .select_from(SalesRep)
        .outerjoin(scoped, scoped.c.sales_rep_id == SalesRep.id)
        .group_by(SalesRep.region)
        .order_by(func.coalesce(func.sum(scoped.c.total_amount), 0).desc()),
    )

    year = extract("year", scoped.c.order_date)
    month = extract("month", scoped.c.order_date)
    monthly_rows = await fetch_all(
        db,
        select(
            SalesRep.name,
            year.label("year"),
            month.label("month_num"),
            func.count(scoped.c.id).label("orders"),
            func.sum(scoped.c.total_amount).label("revenue"),
        )
        .select_from(SalesRep)
        .join(scoped, scoped.c.sales_rep_id == SalesRep.id)
        .where(scoped.c.order_date >= now - timedelta(days=365))
        .group_by(SalesRep.id, SalesRep.name, year, month)
        .order_by(SalesRep.name, year.desc(), month.desc()),
    )
    monthly_performance = [
        {
            "name": row["name"],
            "month": month_label(row["year"], row["month_num"]),
            "orders": row["orders"],
            "revenue": row["revenue"],
        }
        for row in monthly_rows
    ]

    top_rep = rep_performance[0]["name"] if rep_performance else None
    top_region = regional_performance[0]["region"] if regional_performance else None

    return AnalyticsResult(
        data={
            "repPerformance": rep_performance,
            "regionalPerformance": regional_performance,
            "monthlyPerformance": monthly_performance,
        },
        insights=[
            f"Top performer: {top_rep or 'N/A'}",
            f"Best region: {top_region or 'N/A'}",
            f"Total sales reps: {len(rep_performance)}",
        ],
        recommendations=[
            "Pair top performers with reps below the team average",
            "Rebalance territories where rep coverage is thin",
            "Review reps with no orders in the period",
        ],
        metrics={
            "totalReps": len(rep_performance),
            "topRepRevenue": as_number(rep_performance[0]["total_revenue"]) if rep_performance else 0.0,
            "activeReps": sum(1 for rep in rep_performance if rep["total_orders"]),
        },
        trends={"monthly": monthly_performance, "regions": regional_performance},
    )


async def get_customer_acquisition_metrics(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """Customers acquired in the trailing 12 months, by month and industry."""
    now = now or datetime.utcnow()
    conditions = [Customer.acquisition_date >= now - timedelta(days=365), *predicates.customer_conditions()]

    year = extract("year", Customer.acquisition_date)
    month = extract("month", Customer.acquisition_date)
    monthly_rows = await fetch_all(
        db,
        select(
            year.label("year"),
            month.label("month_num"),
            func.count(Customer.id).label("new_customers"),
            func.sum(Customer.total_spent).label("acquisition_revenue"),
        )
        .where(*conditions)
        .group_by(year, month)
        .order_by(year.desc(), month.desc()),
    )
    acquisition_data = [
        {
            "month": month_label(row["year"], row["month_num"]),
            "new_customers": row["new_customers"],
            "acquisition_revenue": row["acquisition_revenue"],
        }
        for row in monthly_rows
    ]
    channels = await fetch_all(
        db,
        select(
            Customer.industry,
            func.count(Customer.id).label("customers_acquired"),
            func.avg(Customer.total_spent).label("avg_customer_value"),
            func.sum(Customer.total_spent).label("total_acquisition_revenue"),
        )
        .where(*conditions)
        .group_by(Customer.industry)
        .order_by(func.sum(Customer.total_spent).desc()),
    )
    acquired = await fetch_all(db, select(Customer.acquisition_date, Customer.total_spent).where(*conditions))
    avg_clv = average([row["total_spent"] for row in acquired])
    avg_age = average([days_between(row["acquisition_date"], now) for row in acquired])

    new_customers = sum(int(row["new_customers"]) for row in acquisition_data)
    top_channel = channels[0]["industry"] if channels else None

    return AnalyticsResult(
        data={
            "acquisitionData": acquisition_data,
            "acquisitionChannels": channels,
            "customerLifetimeValue": {"avg_clv": avg_clv, "avg_customer_age_days": avg_age},
        },
        insights=[
            f"New customers this year: {new_customers}",
            f"Average CLV: ${avg_clv:,.2f}",
            f"Top acquisition channel: {top_channel or 'N/A'}",
        ],
        recommendations=[
            "Invest in the industries bringing the highest-value customers",
            "Follow up with new customers inside their first month",
            "Compare acquisition revenue month over month",
        ],
        metrics={
            "newCustomers": new_customers,
            "avgCLV": avg_clv,
            "avgCustomerAgeDays": avg_age,
        },
        trends={"monthly": acquisition_data, "channels": channels},
    )


async def get_sales_pipeline(
    db: AsyncSession,
    predicates: PredicateSet,
    now: datetime | None = None,
) -> AnalyticsResult:
    """Hot and Warm leads (last order within 60 days), valued by a tier factor on lifetime spend."""
    rows = await fetch_all(
        db,
        select(
            Customer.id.label("customer_id"),
            Customer.name.label("customer_name"),
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

    pipeline = []
    summary = {stage: {"lead_status": stage, "lead_count": 0, "total_value": 0.0} for stage in PIPELINE_STAGES}
    for row in rows:
        days = days_between(row["last_order_date"], now)
        if days is None:
            continue
        status = lead_status(days)
        if status not in summary:
            continue
        factor = PIPELINE_TIER_FACTORS.get(row["customer_tier"], PIPELINE_DEFAULT_FACTOR)
        value = as_number(row["total_spent"]) * factor
        pipeline.append(
            {
                **row,
                "days_since_last_order": round(days, 1),
                "lead_status": status,
                "estimated_opportunity_value": value,
            }
        )
        summary[status]["lead_count"] += 1
        summary[status]["total_value"] += value
    pipeline.sort(key=lambda lead: lead["estimated_opportunity_value"], reverse=True)

    pipeline_summary = [entry for entry in summary.values() if entry["lead_count"]]
    total_value = sum(entry["total_value"] for entry in pipeline_summary)
    hot = summary[PIPELINE_STAGES[0]]["lead_count"]
    warm = summary[PIPELINE_STAGES[1]]["lead_count"]

    return AnalyticsResult(
        data={"pipelineData": pipeline, "pipelineSummary": pipeline_summary},
        insights=[
            f"Total pipeline value: ${total_value:,.2f}",
            f"Hot leads: {hot}",
            f"Warm leads: {warm}",
        ],
        recommendations=[
            "Contact hot leads this week",
            "Send targeted offers to warm leads",
            "Prioritise platinum and gold accounts in follow-ups",
        ],
        metrics={
            "pipelineValue": total_value,
            "hotLeads": hot,
            "warmLeads": warm,
        },
        trends={"stages": pipeline_summary},
    )
