"""
Shopify REST 客户端测试（httpx.MockTransport，不访问网络）
"""
from decimal import Decimal

import httpx
import pytest
from conftest import SHOP

from profit_dashboard.core.config import normalize_shop_domain
from profit_dashboard.core.exceptions import NotAuthenticatedError
from profit_dashboard.services.shopify_service import ShopifyClient, exchange_code_for_session

BASE = f"https://{SHOP}/admin/api/2024-10"


def make_client(handler, settings) -> ShopifyClient:
    return ShopifyClient(SHOP, "shpat_test", settings=settings, transport=httpx.MockTransport(handler))


class TestShopifyClient:

    def test_requires_access_token(self, settings):
        with pytest.raises(NotAuthenticatedError):
            ShopifyClient(SHOP, "", settings=settings)

    async def test_orders_follow_link_header(self, settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
            if "page_info" not in request.url.params:
                assert request.url.params["created_at_min"] == "2026-10-16T18:15:00Z"
                link = f'<{BASE}/orders.json?limit=250&page_info=abc>; rel="next"'
                return httpx.Response(
                    200,
                    json={"orders": [{"id": 1, "name": "#1001", "total_price": "10.00", "line_items": []}]},
                    headers={"Link": link},
                )
            # 带 page_info 的请求不能再带时间过滤
            assert "created_at_min" not in request.url.params
            assert request.url.params["page_info"] == "abc"
            return httpx.Response(200, json={"orders": [{"id": 2, "name": "#1002", "total_price": ""}]})

        client = make_client(handler, settings)
        orders = await client.list_orders(created_at_min="2026-10-16T18:15:00Z")

        assert [o.id for o in orders] == [1, 2]
        assert orders[1].total_price == Decimal("0")
        assert len(seen) == 2

    async def test_products_page_returns_next_cursor(self, settings):
        def handler(request):
            link = f'<{BASE}/products.json?page_info=p2>; rel="next", <{BASE}/products.json?page_info=p0>; rel="previous"'
            return httpx.Response(200, json={"products": [{"id": 7, "handle": "tee"}]}, headers={"Link": link})

        products, next_info = await make_client(handler, settings).list_products_page()
        assert products[0].handle == "tee"
        assert next_info == "p2"

    async def test_last_page_has_no_cursor(self, settings):
        def handler(request):
            return httpx.Response(200, json={"products": []})

        products, next_info = await make_client(handler, settings).list_products_page(page_info="p9")
        assert products == []
        assert next_info is None

    async def test_inventory_items_are_batched(self, settings):
        batches = []

        def handler(request):
            ids = request.url.params["ids"].split(",")
            batches.append(len(ids))
            return httpx.Response(200, json={"inventory_items": [{"id": int(i), "cost": "1.50"} for i in ids]})

        items = await make_client(handler, settings).get_inventory_items(list(range(1, 121)))
        assert batches == [50, 50, 20]
        assert len(items) == 120

    async def test_inventory_item_without_cost(self, settings):
        def handler(request):
            return httpx.Response(200, json={"inventory_item": {"id": 5, "cost": None}})

        assert await make_client(handler, settings).get_inventory_item_cost(5) is None

    async def test_purchase_orders_amount_falls_back_to_line_items(self, settings):
        def handler(request):
            assert request.url.path.endswith("/purchase_orders.json")
            assert request.url.params["status"] == "any"
            return httpx.Response(200, json={"purchase_orders": [
                {"id": 1, "total_price": "250.00", "currency": "NPR"},
                {"id": 2, "total_price": None, "line_items": [
                    {"price": "12.50", "quantity": 4},
                    {"price": "", "quantity": 3},
                ]},
            ]})

        client = make_client(handler, settings)
        pos = await client.list_purchase_orders(created_at_min="2026-10-01T00:00:00.000+05:45")
        assert [po.amount for po in pos] == [Decimal("250.00"), Decimal("50.00")]

    async def test_retries_rate_limit_then_succeeds(self, settings):
        settings.HTTP_MAX_RETRIES = 3
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(429, json={"errors": "Exceeded 2 calls per second"})
            return httpx.Response(200, json={"locations": [{"id": 1, "name": "Kathmandu"}]})

        locations = await make_client(handler, settings).list_locations()
        assert [loc.name for loc in locations] == ["Kathmandu"]
        assert len(calls) == 3

    async def test_client_errors_are_not_retried(self, settings):
        settings.HTTP_MAX_RETRIES = 3
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"errors": "Not Found"})

        with pytest.raises(httpx.HTTPStatusError):
            await make_client(handler, settings).get_variant(42)
        assert len(calls) == 1


class TestOAuth:

    async def test_code_exchange_builds_offline_session(self, settings):
        def handler(request):
            assert request.url.path == "/admin/oauth/access_token"
            return httpx.Response(200, json={"access_token": "shpat_new", "scope": "read_orders"})

        session = await exchange_code_for_session(
            "demo", "code123", settings=settings, transport=httpx.MockTransport(handler)
        )
        assert session.id == f"offline_{SHOP}"
        assert session.access_token == "shpat_new"
        assert session.is_online is False

    async def test_missing_token_in_response(self, settings):
        def handler(request):
            return httpx.Response(200, json={"error": "invalid_request"})

        with pytest.raises(NotAuthenticatedError):
            await exchange_code_for_session(
                SHOP, "bad", settings=settings, transport=httpx.MockTransport(handler)
            )


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("demo", "demo.myshopify.com"),
        ("https://demo.myshopify.com/", "demo.myshopify.com"),
        (" demo.myshopify.com ", "demo.myshopify.com"),
    ],
)
def test_normalize_shop_domain(raw, expected):
    assert normalize_shop_domain(raw) == expected
