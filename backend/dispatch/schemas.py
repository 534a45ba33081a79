"""
Dispatch Schemas: the multiplexed request and per-operation parameters.

The outer request is validated first; its `parameters` bag is then
validated against the model registered for the named operation, so every
handler receives a concrete, typed value.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from db.models import CUSTOMER_STATUSES, CUSTOMER_TIERS


class Operation(str, Enum):
    # Customer analytics
    GET_CUSTOMER_ANALYTICS = "get_customer_analytics"
    ANALYZE_CUSTOMER_BEHAVIOR = "analyze_customer_behavior"
    ANALYZE_MARKET_SEGMENTS = "analyze_market_segments"
    GET_CUSTOMER_CHURN_RISK = "get_customer_churn_risk"
    GET_CUSTOMER_SEGMENTS = "get_customer_segments"
    GET_CUSTOMER_LIFECYCLE = "get_customer_lifecycle"
    # Sales analytics
    GET_SALES_PERFORMANCE = "get_sales_performance"
    PREDICT_SALES_TRENDS = "predict_sales_trends"
    GET_REVENUE_FORECAST = "get_revenue_forecast"
    GET_ORDER_ANALYTICS = "get_order_analytics"
    GET_OPERATIONAL_METRICS = "get_operational_metrics"
    ANALYZE_GEOGRAPHIC_SALES = "analyze_geographic_sales"
    GET_SALES_REP_PERFORMANCE = "get_sales_rep_performance"
    GET_SALES_FORECAST = "get_sales_forecast"
    GET_CUSTOMER_ACQUISITION_METRICS = "get_customer_acquisition_metrics"
    GET_SALES_PIPELINE = "get_sales_pipeline"
    # Inventory & product analytics
    GET_INVENTORY_INSIGHTS = "get_inventory_insights"
    IDENTIFY_TOP_PRODUCTS = "identify_top_products"
    GET_PRODUCT_PERFORMANCE = "get_product_performance"
    GET_INVENTORY_TURNOVER = "get_inventory_turnover"
    GET_WAREHOUSE_ANALYSIS = "get_warehouse_analysis"
    GET_REORDER_RECOMMENDATIONS = "get_reorder_recommendations"
    # Financial
    GET_FINANCIAL_SUMMARY = "get_financial_summary"
    # Records
    SEARCH_CUSTOMERS = "search_customers"
    GET_CUSTOMER_DETAILS = "get_customer_details"
    UPDATE_CUSTOMER_INFO = "update_customer_info"
    CHECK_INVENTORY_LEVELS = "check_inventory_levels"
    UPDATE_INVENTORY_LEVELS = "update_inventory_levels"
    CREATE_SALES_OPPORTUNITY = "create_sales_opportunity"
    # Reports
    GENERATE_BUSINESS_REPORT = "generate_business_report"
    EXPORT_DATA = "export_data"


OutputFormat = Literal["json", "csv", "pdf"]


# ─── Outer request ─────────────────────────────────────────────────────────


class OperationRequest(BaseModel):
    """The multiplexed call. `filters` and `dateRange` are compiled separately."""

    operation: str = Field(..., min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    filters: Any = None
    date_range: Any = Field(None, alias="dateRange")
    format: OutputFormat = "json"
    auth_token: str | None = Field(None, alias="authToken")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ─── Parameters ────────────────────────────────────────────────────────────


class OperationParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NoParams(OperationParams):
    """Analytic operations take only filters and a date range."""


class SearchCustomersParams(OperationParams):
    query: str | None = None
    customer_tier: str | None = Field(None, alias="customerTier")
    industry: str | None = None
    location: str | None = None
    status: str | None = None
    limit: int = Field(50, ge=1, le=500)


class CustomerDetailsParams(OperationParams):
    customer_id: str = Field(..., alias="customerId", min_length=1)


class UpdateCustomerParams(CustomerDetailsParams):
    data: dict[str, Any]


class CheckInventoryParams(OperationParams):
    category: str | None = None
    warehouse: str | None = None
    low_stock_only: bool = Field(False, alias="lowStockOnly")
    sort_by: Literal["quantity", "name"] = Field("quantity", alias="sortBy")


class InventoryUpdate(OperationParams):
    product_id: str = Field(..., alias="productId", min_length=1)
    warehouse: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)
    reorder_level: int = Field(..., alias="reorderLevel", ge=0)


class UpdateInventoryParams(OperationParams):
    updates: list[InventoryUpdate] = Field(..., min_length=1)


class CreateOpportunityParams(OperationParams):
    customer_id: str = Field(..., alias="customerId", min_length=1)
    product_id: str = Field(..., alias="productId", min_length=1)
    quantity: int = Field(..., gt=0)
    estimated_value: float = Field(..., alias="estimatedValue", gt=0)
    sales_rep_id: str | None = Field(None, alias="salesRepId")
    notes: str | None = None
    priority: Literal["low", "medium", "high"] = "medium"


class ExportDataParams(OperationParams):
    """`filters` and `dateRange` may also be sent inside `parameters`; when present they replace the top-level ones."""

    data_type: Literal["customers", "orders", "products", "inventory"] = Field(..., alias="dataType")
    filters: Any = None
    date_range: Any = Field(None, alias="dateRange")


PARAMETER_MODELS: dict[Operation, type[OperationParams]] = {
    Operation.SEARCH_CUSTOMERS: SearchCustomersParams,
    Operation.GET_CUSTOMER_DETAILS: CustomerDetailsParams,
    Operation.UPDATE_CUSTOMER_INFO: UpdateCustomerParams,
    Operation.CHECK_INVENTORY_LEVELS: CheckInventoryParams,
    Operation.UPDATE_INVENTORY_LEVELS: UpdateInventoryParams,
    Operation.CREATE_SALES_OPPORTUNITY: CreateOpportunityParams,
    Operation.EXPORT_DATA: ExportDataParams,
}

CUSTOMER_UPDATE_FIELDS = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "company": "company",
    "industry": "industry",
    "location": "location",
    "customer_tier": "customer_tier",
    "customerTier": "customer_tier",
    "status": "status",
    "notes": "notes",
}
CUSTOMER_FIELD_CHOICES = {"customer_tier": CUSTOMER_TIERS, "status": CUSTOMER_STATUSES}


def parse_operation(name: str) -> Operation:
    try:
        return Operation(name)
    except ValueError:
        raise ValidationError(f"Unknown operation: {name}") from None


def required_parameters(operation: Operation) -> list[str]:
    """Wire names of the parameters an operation cannot run without."""
    model = PARAMETER_MODELS.get(operation, NoParams)
    return [field.alias or name for name, field in model.model_fields.items() if field.is_required()]


def _describe_errors(errors: list[dict]) -> str:
    missing = [".".join(str(p) for p in err["loc"]) for err in errors if err["type"] == "missing"]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    parts = []
    for err in errors:
        location = ".".join(str(p) for p in err["loc"]) or "parameters"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def validate_parameters(operation: Operation, raw: dict[str, Any] | None) -> OperationParams:
    model = PARAMETER_MODELS.get(operation, NoParams)
    try:
        return model.model_validate(raw or {})
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid parameters for {operation.value}: {_describe_errors(exc.errors())}"
        ) from None


def validate_request(arguments: Any) -> OperationRequest:
    if not isinstance(arguments, dict):
        raise ValidationError("Request arguments must be an object")
    try:
        return OperationRequest.model_validate(arguments)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid request: {_describe_errors(exc.errors())}") from None
