"""
Tests for inventory and product analytics against the seeded store.
"""

import pytest

from analytics.filters import compile_filters
from analytics.inventory import (
    get_inventory_insights,
    get_inventory_turnover,
    get_product_performance,
    get_reorder_recommendations,
    get_warehouse_analysis,
    identify_top_products,
)
from db.models import InventoryRecord, Product


@pytest.mark.asyncio
class TestInventoryInsights:
    async def test_stock_status_and_value(self, test_db, seeded_db):
        result = await get_inventory_insights(test_db, compile_filters())
        assert result.metrics == {"totalProducts": 3, "lowStockCount": 1, "totalValue": 11700}
        statuses = {row["product_id"]: row["stock_status"] for row in result.data["inventoryStatus"]}
        assert statuses == {"P1": "Low Stock", "P2": "Medium Stock", "P3": "High Stock"}
        assert [row["name"] for row in result.data["lowStockItems"]] == ["Server Rack"]

    async def test_category_filter(self, test_db, seeded_db):
        result = await get_inventory_insights(test_db, compile_filters({"productCategory": ["Software"]}))
        assert result.metrics["totalProducts"] == 1
        assert result.metrics["totalValue"] == 900

    async def test_discontinued_products_excluded(self, test_db, seeded_db):
        test_db.add(Product(id="P9", name="Old Switch", category="Hardware", price=10, cost=5, sku="HW-009", status="discontinued"))
        test_db.add(InventoryRecord(product_id="P9", warehouse="Main", quantity=0, reorder_level=1))
        await test_db.commit()
        result = await get_inventory_insights(test_db, compile_filters())
        assert result.metrics["totalProducts"] == 3


@pytest.mark.asyncio
class TestProducts:
    async def test_top_products(self, test_db, seeded_db):
        result = await identify_top_products(test_db, compile_filters())
        assert result.insights[0] == "Top product: Server Rack"
        assert result.metrics["topProductRevenue"] == 50000
        assert result.metrics["totalProductsSold"] == 96
        assert result.metrics["categoryCount"] == 3

    async def test_top_products_by_region(self, test_db, seeded_db):
        result = await identify_top_products(test_db, compile_filters({"region": "East"}))
        assert [p["name"] for p in result.data["topProducts"]] == ["Server Rack"]
        assert result.metrics["totalProductsSold"] == 10

    async def test_product_performance_margins(self, test_db, seeded_db):
        result = await get_product_performance(test_db, compile_filters())
        by_name = {p["name"]: p for p in result.data["productPerformance"]}
        assert by_name["Analytics Suite"]["profit"] == 20000
        assert by_name["Analytics Suite"]["profit_margin"] == pytest.approx(80.0)
        assert by_name["Consulting Day"]["profit_margin"] == pytest.approx(40.0)
        assert result.metrics["totalProfit"] == 45200
        assert result.metrics["totalUnitsSold"] == 96


@pytest.mark.asyncio
class TestTurnoverAndWarehouses:
    async def test_turnover_classes(self, test_db, seeded_db, now):
        result = await get_inventory_turnover(test_db, compile_filters(), now=now)
        classes = {t["product_id"]: t["turnover_category"] for t in result.data["turnoverData"]}
        assert classes == {"P1": "Fast Moving", "P2": "Fast Moving", "P3": "No Sales"}
        assert result.metrics["fastMoving"] == 2
        assert result.metrics["slowMoving"] == 0

    async def test_average_days_ignores_unsold_rows(self, test_db, seeded_db, now):
        result = await get_inventory_turnover(test_db, compile_filters(), now=now)
        # P1: 5 / (10 / 30) = 15 days, P2: 9 / (50 / 30) = 5.4 days, P3 unsold
        assert result.metrics["avgDaysOfInventory"] == pytest.approx(10.2)
        assert result.insights[2] == "Average inventory days: 10.2"

    async def test_warehouse_analysis(self, test_db, seeded_db):
        result = await get_warehouse_analysis(test_db, compile_filters())
        assert result.insights[0] == "Most valuable warehouse: Main"
        assert result.insights[1] == "Most efficient warehouse: East"
        assert result.metrics["warehouseCount"] == 2
        assert result.metrics["totalInventoryValue"] == 11700
        assert result.metrics["topEfficiencyScore"] == 100.0
        main = result.data["warehouseData"][0]
        assert (main["warehouse"], main["total_value"], main["low_stock_items"]) == ("Main", 8400, 1)


@pytest.mark.asyncio
class TestReorderRecommendations:
    async def test_low_stock_row_recommended(self, test_db, seeded_db, now):
        result = await get_reorder_recommendations(test_db, compile_filters(), now=now)
        (rec,) = result.data["recommendations"]
        assert rec["product_id"] == "P1"
        # 20 units over 90 days → 30 days of demand rounds up to 7
        assert rec["recommended_order_quantity"] == 7
        assert rec["estimated_cost"] == 10500
        assert result.metrics == {"urgentReorders": 0, "totalRecommendations": 1, "estimatedReorderValue": 10500}

    async def test_no_sales_uses_twice_reorder_level(self, test_db, seeded_db, now):
        test_db.add(InventoryRecord(product_id="P3", warehouse="Main", quantity=1, reorder_level=4))
        await test_db.commit()
        result = await get_reorder_recommendations(test_db, compile_filters(), now=now)
        rec = next(r for r in result.data["recommendations"] if r["product_id"] == "P3")
        assert rec["recommended_order_quantity"] == 8
        assert rec["urgent_reorder_needed"] == 3
        assert result.metrics["urgentReorders"] == 1
        assert result.data["recommendations"][0]["product_id"] == "P3"
