"""
Tests for customer records: search, details and updates.
"""

import pytest
from sqlalchemy import select

from core.errors import DomainError, NotFoundError, ValidationError
from db.models import Customer
from dispatch.schemas import CustomerDetailsParams, SearchCustomersParams, UpdateCustomerParams
from services.customers import get_customer_details, search_customers, update_customer_info


@pytest.mark.asyncio
class TestSearchCustomers:
    async def test_query_matches_name_email_or_company(self, test_db, seeded_db):
        result = await search_customers(test_db, SearchCustomersParams(query="ACME"))
        assert result["total"] == 1
        customer = result["customers"][0]
        assert customer["id"] == "C1"
        assert customer["order_count"] == 1
        assert customer["lifetime_value"] == 50000

    async def test_results_ordered_by_spend(self, test_db, seeded_db):
        result = await search_customers(test_db, SearchCustomersParams())
        assert [c["name"] for c in result["customers"]] == ["Acme Corp", "Globex", "Initech"]

    async def test_structured_filters_and_limit(self, test_db, seeded_db):
        result = await search_customers(test_db, SearchCustomersParams(industry="Technology", location="austin", limit=1))
        assert result["total"] == 1
        assert result["searchParams"] == {"industry": "Technology", "location": "austin", "limit": 1}

    async def test_wildcards_are_literal(self, test_db, seeded_db):
        result = await search_customers(test_db, SearchCustomersParams(query="%"))
        assert result["total"] == 0


@pytest.mark.asyncio
class TestCustomerDetails:
    async def test_details(self, test_db, seeded_db):
        details = await get_customer_details(test_db, CustomerDetailsParams(customerId="C1"))
        assert details["customer"]["name"] == "Acme Corp"
        assert [o["sales_rep_name"] for o in details["orders"]] == ["Dana Reyes"]
        assert {i["product_name"] for i in details["orderItems"]} == {"Server Rack", "Analytics Suite"}
        assert details["summary"]["totalOrders"] == 1
        assert details["summary"]["totalSpent"] == 50000

    async def test_unknown_customer(self, test_db, seeded_db):
        with pytest.raises(NotFoundError, match="Customer with ID nope not found"):
            await get_customer_details(test_db, CustomerDetailsParams(customerId="nope"))


@pytest.mark.asyncio
class TestUpdateCustomer:
    async def test_allow_listed_fields_updated(self, test_db, seeded_db, context):
        params = UpdateCustomerParams(customerId="C2", data={"customerTier": "platinum", "phone": "555-0100", "total_spent": 1})
        details = await update_customer_info(test_db, params)
        assert details["customer"]["customer_tier"] == "platinum"
        assert details["customer"]["phone"] == "555-0100"

        async with context.session_factory() as fresh:
            stored = await fresh.get(Customer, "C2")
            assert stored.customer_tier == "platinum"
            assert stored.total_spent == 25000

    async def test_no_valid_fields(self, test_db, seeded_db):
        with pytest.raises(ValidationError, match="No valid fields to update"):
            await update_customer_info(test_db, UpdateCustomerParams(customerId="C1", data={"id": "X", "total_spent": 0}))

    async def test_invalid_tier(self, test_db, seeded_db):
        with pytest.raises(ValidationError, match="Invalid customerTier: diamond"):
            await update_customer_info(test_db, UpdateCustomerParams(customerId="C1", data={"customerTier": "diamond"}))

    async def test_unknown_customer(self, test_db, seeded_db):
        with pytest.raises(NotFoundError):
            await update_customer_info(test_db, UpdateCustomerParams(customerId="C404", data={"name": "Nobody"}))

    async def test_duplicate_email_rejected(self, test_db, seeded_db, context):
        with pytest.raises(DomainError, match="already in use"):
            await update_customer_info(
                test_db, UpdateCustomerParams(customerId="C2", data={"email": "buyer@acme.example"})
            )
        async with context.session_factory() as fresh:
            email = await fresh.scalar(select(Customer.email).where(Customer.id == "C2"))
            assert email == "orders@globex.example"
