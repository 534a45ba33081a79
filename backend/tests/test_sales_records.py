"""Tests for opening sales opportunities."""

import pytest
from sqlalchemy import func, select

from core.errors import NotFoundError
from db.models import SalesOpportunity
from dispatch.schemas import CreateOpportunityParams
from services.sales import create_sales_opportunity


def _params(**overrides) -> CreateOpportunityParams:
    values = {"customerId": "C1", "productId": "P2", "quantity": 5, "estimatedValue": 2500.0}
    values.update(overrides)
    return CreateOpportunityParams(**values)


@pytest.mark.asyncio
class TestCreateSalesOpportunity:
    async def test_created_open_with_defaults(self, test_db, seeded_db):
        result = await create_sales_opportunity(test_db, _params(salesRepId="R1", notes="Renewal"))
        opportunity = result["opportunity"]
        assert opportunity["status"] == "open"
        assert opportunity["priority"] == "medium"
        assert opportunity["sales_rep_id"] == "R1"
        assert opportunity["customer"]["name"] == "Acme Corp"
        assert opportunity["product"]["sku"] == "SW-001"
        assert result["message"] == "Sales opportunity created successfully"
        assert len(result["nextSteps"]) == 3

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"customerId": "C404"}, "Customer with ID C404 not found"),
            ({"productId": "P404"}, "Product with ID P404 not found"),
            ({"salesRepId": "R404"}, "Sales rep with ID R404 not found"),
        ],
    )
    async def test_unknown_references_write_nothing(self, test_db, seeded_db, context, overrides, message):
        with pytest.raises(NotFoundError, match=message):
            await create_sales_opportunity(test_db, _params(**overrides))
        async with context.session_factory() as fresh:
            assert await fresh.scalar(select(func.count(SalesOpportunity.id))) == 0
