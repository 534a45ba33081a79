"""
Tests for the operation dispatcher: auth, validation, routing, envelopes.
"""

import json
from datetime import datetime, timedelta

import pytest

from core.errors import NotFoundError
from dispatch.dispatcher import (
    INTERNAL_ERROR_MESSAGE,
    ROUTES,
    CallState,
    CallTrace,
    Dispatcher,
    describe_operations,
    envelope,
    error_envelope,
    extract_token,
)
from dispatch.rate_limit import FixedWindowRateLimiter
from dispatch.schemas import Operation, required_parameters


def _payload(result: dict):
    assert "isError" not in result
    return json.loads(result["content"][0]["text"])


def _error(result: dict) -> str:
    assert result["isError"] is True
    return result["content"][0]["text"]


class TestRouteTable:
    def test_every_operation_routed(self):
        assert set(ROUTES) == set(Operation)
        assert len(Operation) == 31

    def test_required_parameters(self):
        assert required_parameters(Operation.GET_SALES_PERFORMANCE) == []
        assert required_parameters(Operation.UPDATE_CUSTOMER_INFO) == ["customerId", "data"]
        assert required_parameters(Operation.EXPORT_DATA) == ["dataType"]
        described = {op["name"]: op["requiredParameters"] for op in describe_operations()}
        assert described["create_sales_opportunity"] == ["customerId", "productId", "quantity", "estimatedValue"]


class TestEnvelope:
    def test_dates_serialised(self):
        result = envelope({"at": datetime(2024, 1, 2, 3, 4)})
        assert json.loads(result["content"][0]["text"]) == {"at": "2024-01-02T03:04:00"}

    def test_strings_pass_through(self):
        assert envelope("a,b\n1,2\n")["content"][0]["text"] == "a,b\n1,2\n"

    def test_error_envelope(self):
        assert error_envelope("boom") == {"content": [{"type": "text", "text": "Error: boom"}], "isError": True}

    def test_meta_token_wins(self):
        assert extract_token({"authToken": "arg"}, {"authToken": "meta"}) == "meta"
        assert extract_token({"authToken": "arg"}, {}) == "arg"
        assert extract_token("not-a-dict", None) is None


@pytest.mark.asyncio
class TestAuthentication:
    async def test_missing_token(self, dispatcher, seeded_db):
        result = await dispatcher.call({"operation": "get_sales_performance"})
        assert _error(result) == "Error: Authentication required: missing token"

    async def test_invalid_token(self, dispatcher, seeded_db):
        result = await dispatcher.call({"operation": "get_sales_performance", "authToken": "forged"})
        assert _error(result) == "Error: Invalid or expired token"

    async def test_expired_token(self, dispatcher, context, seeded_db):
        token = context.tokens.issue({"sub": "ops"}, expires_delta=timedelta(seconds=-1))
        result = await dispatcher.call({"operation": "get_sales_performance", "authToken": token})
        assert _error(result) == "Error: Invalid or expired token"

    async def test_token_in_meta(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call({"operation": "get_sales_performance"}, meta={"authToken": auth_token})
        assert _payload(result)["metrics"]["totalRevenue"] == 88000

    async def test_debug_mode_skips_auth(self, context, seeded_db):
        context.settings.debug = True
        result = await Dispatcher(context).call({"operation": "get_order_analytics"})
        assert _payload(result)["metrics"]["totalOrders"] == 3


@pytest.mark.asyncio
class TestValidation:
    async def test_unknown_operation(self, dispatcher, auth_token):
        result = await dispatcher.call({"operation": "drop_tables", "authToken": auth_token})
        assert _error(result) == "Error: Unknown operation: drop_tables"

    async def test_missing_operation(self, dispatcher, auth_token):
        result = await dispatcher.call({"authToken": auth_token})
        assert _error(result) == "Error: Invalid request: Missing required fields: operation"

    async def test_non_object_arguments(self, dispatcher, auth_token):
        result = await dispatcher.call(["get_sales_performance"], meta={"authToken": auth_token})
        assert _error(result) == "Error: Request arguments must be an object"

    async def test_missing_parameters(self, dispatcher, auth_token):
        result = await dispatcher.call(
            {"operation": "create_sales_opportunity", "parameters": {"customerId": "C1"}, "authToken": auth_token}
        )
        assert _error(result) == (
            "Error: Invalid parameters for create_sales_opportunity: "
            "Missing required fields: productId, quantity, estimatedValue"
        )

    async def test_bad_filter_key(self, dispatcher, auth_token):
        result = await dispatcher.call(
            {"operation": "get_customer_analytics", "filters": {"ssn": "x"}, "authToken": auth_token}
        )
        assert _error(result) == "Error: Invalid filter key: ssn"

    async def test_inverted_date_range(self, dispatcher, auth_token):
        result = await dispatcher.call(
            {
                "operation": "get_sales_performance",
                "dateRange": {"start": "2024-05-01", "end": "2024-04-01"},
                "authToken": auth_token,
            }
        )
        assert _error(result) == "Error: Start date cannot be after end date"

    async def test_unsupported_format(self, dispatcher, auth_token):
        result = await dispatcher.call({"operation": "export_data", "format": "xml", "authToken": auth_token})
        assert _error(result).startswith("Error: Invalid request: format")


@pytest.mark.asyncio
class TestRouting:
    async def test_filters_reach_analytics(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {"operation": "get_customer_analytics", "filters": {"customerTier": "gold"}, "authToken": auth_token}
        )
        payload = _payload(result)
        assert set(payload) == {"data", "insights", "recommendations", "metrics", "trends"}
        assert payload["metrics"]["avgCLV"] == 25000

    async def test_record_operation(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {"operation": "get_customer_details", "parameters": {"customerId": "C3"}, "authToken": auth_token}
        )
        payload = _payload(result)
        assert payload["customer"]["name"] == "Initech"
        assert isinstance(payload["customer"]["acquisition_date"], str)

    async def test_not_found_is_reported(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {"operation": "get_customer_details", "parameters": {"customerId": "C404"}, "authToken": auth_token}
        )
        assert _error(result) == "Error: Customer with ID C404 not found"

    async def test_export_csv(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {
                "operation": "export_data",
                "parameters": {"dataType": "inventory"},
                "format": "csv",
                "authToken": auth_token,
            }
        )
        text = result["content"][0]["text"]
        assert text.splitlines()[0] == "name,sku,category,warehouse,quantity,reorder_level,stock_status"
        assert len(text.splitlines()) == 4

    async def test_export_filters_inside_parameters(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {
                "operation": "export_data",
                "parameters": {"dataType": "orders", "filters": {"region": ["East"]}},
                "authToken": auth_token,
            }
        )
        rows = _payload(result)
        assert len(rows) == 1
        assert rows[0]["region"] == "East"

    async def test_export_parameter_filters_are_checked(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {
                "operation": "export_data",
                "parameters": {"dataType": "orders", "filters": {"region; DROP": "East"}},
                "authToken": auth_token,
            }
        )
        assert _error(result) == "Error: Invalid filter key: region; DROP"

    async def test_export_parameter_date_range(self, dispatcher, auth_token, seeded_db, now):
        start = (now - timedelta(days=30)).date().isoformat()
        result = await dispatcher.call(
            {
                "operation": "export_data",
                "parameters": {"dataType": "orders", "dateRange": {"start": start}},
                "filters": {"region": ["West"]},
                "authToken": auth_token,
            }
        )
        rows = _payload(result)
        # top-level filters still apply when parameters carry only a date range
        assert [row["id"] for row in rows] == ["O1"]

    async def test_report_pdf(self, dispatcher, auth_token, seeded_db):
        result = await dispatcher.call(
            {"operation": "generate_business_report", "format": "pdf", "authToken": auth_token}
        )
        payload = _payload(result)
        assert payload["format"] == "pdf"
        assert payload["metadata"]["sections"][0] == "metadata"
        assert payload["content"]["executiveSummary"]["keyMetrics"]["total_orders"] == 3


ANALYTIC_OPERATIONS = [
    op
    for op in Operation
    if op
    not in {
        Operation.SEARCH_CUSTOMERS,
        Operation.GET_CUSTOMER_DETAILS,
        Operation.UPDATE_CUSTOMER_INFO,
        Operation.CHECK_INVENTORY_LEVELS,
        Operation.UPDATE_INVENTORY_LEVELS,
        Operation.CREATE_SALES_OPPORTUNITY,
        Operation.GENERATE_BUSINESS_REPORT,
        Operation.EXPORT_DATA,
    }
]


@pytest.mark.asyncio
class TestEmptyStore:
    @pytest.mark.parametrize("operation", ANALYTIC_OPERATIONS, ids=lambda op: op.value)
    async def test_every_analytic_operation_returns_full_result(self, dispatcher, auth_token, operation):
        result = await dispatcher.call({"operation": operation.value, "authToken": auth_token})
        payload = _payload(result)
        assert set(payload) == {"data", "insights", "recommendations", "metrics", "trends"}
        assert payload["insights"]
        assert payload["recommendations"]
        assert all(value == value for value in payload["metrics"].values())

    async def test_report_on_empty_store(self, dispatcher, auth_token):
        result = await dispatcher.call({"operation": "generate_business_report", "authToken": auth_token})
        payload = _payload(result)
        assert payload["executiveSummary"]["summary"] == "0 active customers generated $0.00 in revenue."
        assert payload["executiveSummary"]["topProducts"] == []


@pytest.mark.asyncio
class TestFailureHandling:
    async def test_unexpected_error_is_masked(self, context, auth_token):
        async def explode(db, call):
            raise RuntimeError("secret connection string in here")

        dispatcher = Dispatcher(context, routes={**ROUTES, Operation.GET_SALES_PERFORMANCE: explode})
        trace = CallTrace()
        result = await dispatcher.call({"operation": "get_sales_performance", "authToken": auth_token}, trace=trace)
        assert _error(result) == f"Error: {INTERNAL_ERROR_MESSAGE}"
        assert trace.state is CallState.FAILED
        assert trace.states[:-1] == [
            CallState.RECEIVED,
            CallState.AUTHENTICATED,
            CallState.SCHEMA_VALIDATED,
            CallState.ROUTED,
        ]

    async def test_known_error_keeps_message(self, context, auth_token):
        async def missing(db, call):
            raise NotFoundError("Product", "P0")

        dispatcher = Dispatcher(context, routes={**ROUTES, Operation.IDENTIFY_TOP_PRODUCTS: missing})
        result = await dispatcher.call({"operation": "identify_top_products", "authToken": auth_token})
        assert _error(result) == "Error: Product with ID P0 not found"

    async def test_successful_trace(self, dispatcher, auth_token, seeded_db):
        trace = CallTrace()
        await dispatcher.call({"operation": "get_inventory_insights", "authToken": auth_token}, trace=trace)
        assert trace.state is CallState.COMPLETED
        assert trace.operation == "get_inventory_insights"
        assert trace.error is None

    async def test_auth_failure_stops_before_validation(self, dispatcher):
        trace = CallTrace()
        await dispatcher.call({"operation": "nope"}, trace=trace)
        assert trace.states == [CallState.RECEIVED, CallState.FAILED]


@pytest.mark.asyncio
class TestRateLimit:
    async def test_limit_per_caller(self, context, auth_token, seeded_db):
        context.limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60)
        dispatcher = Dispatcher(context)
        args = {"operation": "get_order_analytics", "authToken": auth_token}

        assert "isError" not in await dispatcher.call(args, caller="10.0.0.1")
        assert "isError" not in await dispatcher.call(args, caller="10.0.0.1")
        limited = await dispatcher.call(args, caller="10.0.0.1")
        assert _error(limited).startswith("Error: Rate limit exceeded")
        assert "isError" not in await dispatcher.call(args, caller="10.0.0.2")

    async def test_window_resets(self):
        clock = [0.0]
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=10, clock=lambda: clock[0])
        assert limiter.check("a") is None
        assert limiter.check("a") == pytest.approx(10)
        clock[0] = 4.0
        assert limiter.check("a") == pytest.approx(6)
        clock[0] = 10.0
        assert limiter.check("a") is None
        limiter.reset()
        assert limiter.check("a") is None

    async def test_expired_windows_are_dropped(self):
        clock = [0.0]
        limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=10, clock=lambda: clock[0])
        for caller in ("a", "b", "c"):
            limiter.check(caller)
        assert len(limiter) == 3
        clock[0] = 5.0
        limiter.check("d")
        assert len(limiter) == 4
        clock[0] = 12.0
        limiter.check("e")
        # a, b, c expired; d still inside its window
        assert len(limiter) == 2
