"""
Operation Dispatcher: the single entry point for multiplexed calls.

Per call:
  RECEIVED → (rate limit) → AUTHENTICATED → SCHEMA_VALIDATED → ROUTED
           → COMPLETED | FAILED

Every exception is caught here and turned into the error envelope; known
errors carry their message, anything else is logged and reported as an
internal error. Nothing is retried.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from analytics import customers, financial, inventory, sales
from analytics.filters import PredicateSet, compile_filters
from core.errors import BusinessIntelligenceError, RateLimitExceeded
from dispatch.context import AppContext
from dispatch.schemas import (
    ExportDataParams,
    Operation,
    OperationParams,
    OperationRequest,
    parse_operation,
    required_parameters,
    validate_parameters,
    validate_request,
)
from reports.assembler import assemble_report
from reports.export import export_data
from reports.formatters import render
from services import customers as customer_records
from services import inventory as inventory_records
from services import sales as sales_records

logger = structlog.get_logger()

DEV_PRINCIPAL = {"sub": "dev-user", "email": "dev@bizintel.local", "role": "admin"}
INTERNAL_ERROR_MESSAGE = "Internal error while processing the request"


class CallState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    SCHEMA_VALIDATED = "schema_validated"
    ROUTED = "routed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CallTrace:
    operation: str | None = None
    states: list[CallState] = field(default_factory=lambda: [CallState.RECEIVED])
    error: str | None = None

    @property
    def state(self) -> CallState:
        return self.states[-1]

    def advance(self, state: CallState) -> None:
        self.states.append(state)

    def fail(self, message: str) -> None:
        self.error = message
        self.states.append(CallState.FAILED)


@dataclass(frozen=True)
class ValidatedCall:
    operation: Operation
    params: OperationParams
    predicates: PredicateSet
    format: str = "json"


Handler = Callable[[AsyncSession, ValidatedCall], Awaitable[Any]]


def _filter_inputs(request: OperationRequest, params: OperationParams) -> tuple[Any, Any]:
    if isinstance(params, ExportDataParams):
        return (
            params.filters if params.filters is not None else request.filters,
            params.date_range if params.date_range is not None else request.date_range,
        )
    return request.filters, request.date_range


# ─── Route table ───────────────────────────────────────────────────────────


def _analytic(operation_fn) -> Handler:
    async def handle(db: AsyncSession, call: ValidatedCall):
        result = await operation_fn(db, call.predicates)
        return result.to_dict()

    return handle


def _record(service_fn) -> Handler:
    async def handle(db: AsyncSession, call: ValidatedCall):
        return await service_fn(db, call.params)

    return handle


async def _business_report(db: AsyncSession, call: ValidatedCall):
    report = await assemble_report(db, call.predicates, call.format)
    return render(report.to_dict(), call.format)


async def _export(db: AsyncSession, call: ValidatedCall):
    rows = await export_data(db, call.predicates, call.params)
    return render(rows, call.format)


ROUTES: dict[Operation, Handler] = {
    Operation.GET_CUSTOMER_ANALYTICS: _analytic(customers.get_customer_analytics),
    Operation.ANALYZE_CUSTOMER_BEHAVIOR: _analytic(customers.analyze_customer_behavior),
    Operation.ANALYZE_MARKET_SEGMENTS: _analytic(customers.analyze_market_segments),
    Operation.GET_CUSTOMER_CHURN_RISK: _analytic(customers.get_customer_churn_risk),
    Operation.GET_CUSTOMER_SEGMENTS: _analytic(customers.get_customer_segments),
    Operation.GET_CUSTOMER_LIFECYCLE: _analytic(customers.get_customer_lifecycle),
    Operation.GET_SALES_PERFORMANCE: _analytic(sales.get_sales_performance),
    Operation.PREDICT_SALES_TRENDS: _analytic(sales.predict_sales_trends),
    Operation.GET_REVENUE_FORECAST: _analytic(sales.get_revenue_forecast),
    Operation.GET_ORDER_ANALYTICS: _analytic(sales.get_order_analytics),
    Operation.GET_OPERATIONAL_METRICS: _analytic(sales.get_operational_metrics),
    Operation.ANALYZE_GEOGRAPHIC_SALES: _analytic(sales.analyze_geographic_sales),
    Operation.GET_SALES_REP_PERFORMANCE: _analytic(sales.get_sales_rep_performance),
    Operation.GET_SALES_FORECAST: _analytic(sales.get_sales_forecast),
    Operation.GET_CUSTOMER_ACQUISITION_METRICS: _analytic(sales.get_customer_acquisition_metrics),
    Operation.GET_SALES_PIPELINE: _analytic(sales.get_sales_pipeline),
    Operation.GET_INVENTORY_INSIGHTS: _analytic(inventory.get_inventory_insights),
    Operation.IDENTIFY_TOP_PRODUCTS: _analytic(inventory.identify_top_products),
    Operation.GET_PRODUCT_PERFORMANCE: _analytic(inventory.get_product_performance),
    Operation.GET_INVENTORY_TURNOVER: _analytic(inventory.get_inventory_turnover),
    Operation.GET_WAREHOUSE_ANALYSIS: _analytic(inventory.get_warehouse_analysis),
    Operation.GET_REORDER_RECOMMENDATIONS: _analytic(inventory.get_reorder_recommendations),
    Operation.GET_FINANCIAL_SUMMARY: _analytic(financial.get_financial_summary),
    Operation.SEARCH_CUSTOMERS: _record(customer_records.search_customers),
    Operation.GET_CUSTOMER_DETAILS: _record(customer_records.get_customer_details),
    Operation.UPDATE_CUSTOMER_INFO: _record(customer_records.update_customer_info),
    Operation.CHECK_INVENTORY_LEVELS: _record(inventory_records.check_inventory_levels),
    Operation.UPDATE_INVENTORY_LEVELS: _record(inventory_records.update_inventory_levels),
    Operation.CREATE_SALES_OPPORTUNITY: _record(sales_records.create_sales_opportunity),
    Operation.GENERATE_BUSINESS_REPORT: _business_report,
    Operation.EXPORT_DATA: _export,
}


def describe_operations() -> list[dict]:
    return [{"name": op.value, "requiredParameters": required_parameters(op)} for op in Operation]


# ─── Envelope ──────────────────────────────────────────────────────────────


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def envelope(payload: Any) -> dict:
    text = payload if isinstance(payload, str) else json.dumps(payload, default=_json_default, indent=2)
    return {"content": [{"type": "text", "text": text}]}


def error_envelope(message: str) -> dict:
    return {"content": [{"type": "text", "text": f"Error: {message}"}], "isError": True}


# ─── Dispatcher ────────────────────────────────────────────────────────────


def extract_token(arguments: Any, meta: dict | None) -> str | None:
    """Metadata-carried token first, then the argument-carried one."""
    if meta and meta.get("authToken"):
        return meta["authToken"]
    if isinstance(arguments, dict):
        return arguments.get("authToken")
    return None


class Dispatcher:
    def __init__(self, context: AppContext, routes: dict[Operation, Handler] | None = None):
        self.context = context
        self.routes = routes or ROUTES

    def authenticate(self, token: str | None) -> dict:
        if self.context.settings.debug:
            return DEV_PRINCIPAL
        return self.context.tokens.verify(token)

    def _check_rate_limit(self, caller: str) -> None:
        if self.context.limiter is None:
            return
        retry_after = self.context.limiter.check(caller)
        if retry_after is not None:
            raise RateLimitExceeded(retry_after)

    async def call(
        self,
        arguments: Any,
        meta: dict | None = None,
        caller: str | None = None,
        trace: CallTrace | None = None,
    ) -> dict:
        """Process one multiplexed call and return its envelope. Never raises."""
        trace = trace or CallTrace()
        try:
            payload = await self._run(arguments, meta, caller, trace)
        except BusinessIntelligenceError as exc:
            trace.fail(exc.message)
            logger.warning("dispatch.failed", operation=trace.operation, kind=exc.kind, error=exc.message)
            return error_envelope(exc.message)
        except Exception:
            trace.fail(INTERNAL_ERROR_MESSAGE)
            logger.error("dispatch.crashed", operation=trace.operation, exc_info=True)
            return error_envelope(INTERNAL_ERROR_MESSAGE)

        trace.advance(CallState.COMPLETED)
        logger.info("dispatch.completed", operation=trace.operation)
        return envelope(payload)

    async def _run(self, arguments: Any, meta: dict | None, caller: str | None, trace: CallTrace) -> Any:
        token = extract_token(arguments, meta)
        self._check_rate_limit(caller or token or "anonymous")

        principal = self.authenticate(token)
        trace.advance(CallState.AUTHENTICATED)

        request = validate_request(arguments)
        trace.operation = request.operation
        operation = parse_operation(request.operation)
        params = validate_parameters(operation, request.parameters)
        call = ValidatedCall(
            operation=operation,
            params=params,
            predicates=compile_filters(*_filter_inputs(request, params)),
            format=request.format,
        )
        trace.advance(CallState.SCHEMA_VALIDATED)

        handler = self.routes[operation]
        trace.advance(CallState.ROUTED)
        logger.info("dispatch.routed", operation=operation.value, principal=principal.get("sub"))
        async with self.context.session_factory() as db:
            return await handler(db, call)
