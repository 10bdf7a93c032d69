"""
看板服务编排测试：时间范围、费用降级、采购单、库存估值
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from conftest import SHOP, FakeExpenseStore, FakeShopifyClient, make_order

from profit_dashboard.schemas.profit import Expense
from profit_dashboard.schemas.shopify import (
    InventoryLevel,
    Location,
    Product,
    ProductImage,
    PurchaseOrder,
    Variant,
)
from profit_dashboard.services.dashboard_service import DashboardService

TZ = timezone(timedelta(hours=5, minutes=45))
NOW = datetime(2026, 10, 17, 14, 0, tzinfo=TZ)


class BrokenExpenseStore:
    async def list_expenses(self, shop, date_from=None, date_to=None):
        raise RuntimeError("relation \"expenses\" does not exist")


class TestProfit:

    async def test_orders_requested_for_resolved_window(self, settings):
        client = FakeShopifyClient()
        await DashboardService(client, settings=settings).profit("yesterday", now=NOW)
        _, created_min, created_max = client.calls[0]
        assert created_min == "2026-10-16T00:00:00.000+05:45"
        assert created_max == "2026-10-16T23:59:59.999+05:45"

    async def test_expenses_filtered_by_local_dates(self, settings):
        store = FakeExpenseStore([
            Expense(id=1, shop=SHOP, location_name="A", amount=Decimal("10"), expense_date=date(2026, 10, 10)),
            Expense(id=2, shop=SHOP, location_name="A", amount=Decimal("20"), expense_date=date(2026, 10, 9)),
        ])
        client = FakeShopifyClient(orders=[make_order(1, "100.00", [])])
        data = await DashboardService(client, expense_store=store, settings=settings).profit("last7days", now=NOW)
        assert data["expenses"] == "10.00"
        assert data["net_profit"] == "90.00"
        assert data["date_range"] == "last7days"

    async def test_expense_store_failure_counts_zero(self, settings):
        client = FakeShopifyClient(orders=[make_order(1, "100.00", [])])
        service = DashboardService(client, expense_store=BrokenExpenseStore(), settings=settings)
        data = await service.profit("today", now=NOW)
        assert data["expenses"] == "0.00"
        assert "expenses_error" in data

    async def test_currency_falls_back_to_default(self, settings):
        data = await DashboardService(FakeShopifyClient(), settings=settings).profit("today", now=NOW)
        assert data["currency"] == "NPR"
        assert data["orders_count"] == 0


class TestAnalytics:

    async def test_store_filter(self, settings):
        client = FakeShopifyClient(orders=[make_order(1, "40.00", []), make_order(2, "60.00", [])])
        service = DashboardService(client, settings=settings)

        data = await service.order_analytics("today", now=NOW)
        assert data["total_orders"] == 2
        assert data["total_amount"] == "100.00"
        assert data["store_breakdown"] == [{"store": SHOP, "orders": 2, "amount": "100.00"}]

        filtered = await service.order_analytics("today", store_filter="elsewhere", now=NOW)
        assert filtered["store_breakdown"] == []


class TestPurchaseOrders:

    async def test_count_and_amount_with_line_item_fallback(self, settings):
        client = FakeShopifyClient(purchase_orders=[
            PurchaseOrder(id=1, total_price=Decimal("250.00"), currency="USD"),
            PurchaseOrder.model_validate({
                "id": 2,
                "total_price": "",
                "line_items": [{"price": "12.50", "quantity": 4}, {"price": "3.00", "quantity": 1}],
            }),
        ])
        data = await DashboardService(client, settings=settings).purchase_order_analytics("thismonth", now=NOW)

        assert data["total_purchase_orders"] == 2
        assert data["total_amount"] == "303.00"
        assert data["currency"] == "USD"
        assert data["date_range"] == "thismonth"
        assert "fetch_error" not in data
        _, created_min, created_max = client.calls[0]
        assert created_min == "2026-10-01T00:00:00.000+05:45"
        assert created_max == "2026-10-17T14:00:00.000+05:45"

    async def test_yesterday_window_is_closed(self, settings):
        client = FakeShopifyClient()
        await DashboardService(client, settings=settings).purchase_order_analytics("yesterday", now=NOW)
        _, created_min, created_max = client.calls[0]
        assert created_min == "2026-10-16T00:00:00.000+05:45"
        assert created_max == "2026-10-16T23:59:59.999+05:45"

    async def test_fetch_failure_counts_as_no_purchase_orders(self, settings):
        client = FakeShopifyClient()
        client.fail_purchase_orders = True
        data = await DashboardService(client, settings=settings).purchase_order_analytics("today", now=NOW)

        assert data["total_purchase_orders"] == 0
        assert data["total_amount"] == "0.00"
        assert data["currency"] == "NPR"
        assert data["fetch_error"]


class TestInventoryValue:

    async def test_value_sorted_descending(self, settings):
        client = FakeShopifyClient(
            products=[
                Product(id=1, title="Tee", image=ProductImage(src="tee.png"), variants=[
                    Variant(id=11, price=Decimal("10"), sku="TEE", inventory_item_id=111),
                    Variant(id=12, price=Decimal("99"), inventory_item_id=112),
                ]),
                Product(id=2, title="Cap", variants=[Variant(id=21, price=Decimal("50"), inventory_item_id=211)]),
            ],
            locations=[Location(id=1, name="Kathmandu"), Location(id=2, name="Closed", active=False)],
            levels=[
                InventoryLevel(inventory_item_id=111, location_id=1, available=3),
                InventoryLevel(inventory_item_id=112, location_id=1, available=0),
                InventoryLevel(inventory_item_id=211, location_id=1, available=2),
                InventoryLevel(inventory_item_id=211, location_id=2, available=100),
            ],
        )
        data = await DashboardService(client, settings=settings).inventory_value()

        assert data["total_value"] == "130.00"
        assert data["total_units"] == 5
        assert [p["variant_id"] for p in data["products"]] == [21, 11]
        assert data["products"][1]["product_image"] == "tee.png"
        assert data["products"][0]["location_breakdown"] == [
            {"location_id": 1, "location_name": "Kathmandu", "quantity": 2}
        ]
        assert data["locations"] == [{"id": 1, "name": "Kathmandu"}]
