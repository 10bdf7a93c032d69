"""
测试用的内存替身：session、Shopify 客户端、价格缓存表、费用表。
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import httpx
import pytest

from profit_dashboard.core.config import Settings
from profit_dashboard.schemas.pricing import CachedProduct, CachedVariant, PricingStats
from profit_dashboard.schemas.profit import Expense, ExpenseCreate
from profit_dashboard.schemas.shopify import (
    InventoryItem,
    InventoryLevel,
    Location,
    Order,
    Product,
    PurchaseOrder,
    ShopSession,
    Variant,
)

SHOP = "demo.myshopify.com"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL=None,
        HTTP_MAX_RETRIES=1,
        HTTP_RETRY_MIN_SECONDS=0,
        HTTP_RETRY_MAX_SECONDS=0,
        SYNC_PAGE_DELAY_MS=0,
        SYNC_VARIANT_DELAY_MS=0,
        SYNC_PRODUCT_DELAY_MS=0,
        DEFAULT_CURRENCY="NPR",
    )


class FakeSessionProvider:
    def __init__(self, sessions: Optional[dict[str, ShopSession]] = None):
        self.sessions = sessions or {}

    async def get_session(self, shop: str) -> Optional[ShopSession]:
        return self.sessions.get(ShopSession.offline_id(shop))

    async def store_session(self, session: ShopSession) -> None:
        self.sessions[session.id] = session


def make_session(shop: str = SHOP, token: str = "shpat_test") -> ShopSession:
    return ShopSession(id=ShopSession.offline_id(shop), shop=shop, access_token=token, scope="read_orders")


class FakeShopifyClient:
    """按字典回答的 Shopify 客户端；failing_* 中的 id 调用时抛 HTTP 错误"""

    def __init__(
        self,
        shop: str = SHOP,
        orders: Optional[list[Order]] = None,
        products: Optional[list[Product]] = None,
        variants: Optional[dict[int, Variant]] = None,
        inventory_costs: Optional[dict[int, Optional[Decimal]]] = None,
        locations: Optional[list[Location]] = None,
        levels: Optional[list[InventoryLevel]] = None,
        purchase_orders: Optional[list[PurchaseOrder]] = None,
        page_size: int = 250,
    ):
        self.shop = shop
        self.orders = orders or []
        self.products = products or []
        self.variants = variants or {}
        self.inventory_costs = inventory_costs or {}
        self.locations = locations or []
        self.levels = levels or []
        self.purchase_orders = purchase_orders or []
        self.page_size = page_size
        self.failing_variant_ids: set[int] = set()
        self.failing_inventory_items: set[int] = set()
        self.fail_batches = False
        self.fail_orders = False
        self.fail_purchase_orders = False
        self.calls: list[tuple] = []

    @staticmethod
    def _error(path: str) -> httpx.HTTPStatusError:
        request = httpx.Request("GET", f"https://{SHOP}/admin/api/2024-10/{path}")
        response = httpx.Response(500, request=request)
        return httpx.HTTPStatusError("boom", request=request, response=response)

    async def list_orders(self, created_at_min=None, created_at_max=None, status="any", fields=None):
        self.calls.append(("list_orders", created_at_min, created_at_max))
        if self.fail_orders:
            raise self._error("orders.json")
        return list(self.orders)

    async def list_recent_orders(self, limit=250, fields=None):
        self.calls.append(("list_recent_orders",))
        if self.fail_orders:
            raise self._error("orders.json")
        return list(self.orders)

    async def list_purchase_orders(self, created_at_min=None, created_at_max=None, status="any"):
        self.calls.append(("list_purchase_orders", created_at_min, created_at_max))
        if self.fail_purchase_orders:
            raise self._error("purchase_orders.json")
        return list(self.purchase_orders)

    async def list_products_page(self, page_info=None, limit=250, fields=None):
        start = int(page_info or 0)
        end = start + self.page_size
        self.calls.append(("list_products_page", start))
        next_info = str(end) if end < len(self.products) else None
        return self.products[start:end], next_info

    async def list_all_products(self, fields=None):
        return list(self.products)

    async def count_products(self):
        return len(self.products)

    async def get_product(self, product_id: int) -> Product:
        for product in self.products:
            if product.id == product_id:
                return product
        raise self._error(f"products/{product_id}.json")

    async def get_variant(self, variant_id: int) -> Variant:
        self.calls.append(("get_variant", variant_id))
        if variant_id in self.failing_variant_ids or variant_id not in self.variants:
            raise self._error(f"variants/{variant_id}.json")
        return self.variants[variant_id]

    async def get_variants(self, variant_ids: list[int]) -> list[Variant]:
        self.calls.append(("get_variants", tuple(variant_ids)))
        if self.fail_batches:
            raise self._error("variants.json")
        return [self.variants[v] for v in variant_ids if v in self.variants]

    async def get_inventory_item_cost(self, inventory_item_id: int) -> Optional[Decimal]:
        self.calls.append(("get_inventory_item_cost", inventory_item_id))
        if inventory_item_id in self.failing_inventory_items:
            raise self._error(f"inventory_items/{inventory_item_id}.json")
        return self.inventory_costs.get(inventory_item_id)

    async def get_inventory_items(self, inventory_item_ids: list[int]) -> list[InventoryItem]:
        self.calls.append(("get_inventory_items", tuple(inventory_item_ids)))
        if self.fail_batches:
            raise self._error("inventory_items.json")
        return [
            InventoryItem(id=i, cost=self.inventory_costs.get(i))
            for i in inventory_item_ids
            if i not in self.failing_inventory_items
        ]

    async def list_inventory_levels(self, inventory_item_ids, location_ids):
        return [
            lv for lv in self.levels
            if lv.inventory_item_id in inventory_item_ids and lv.location_id in location_ids
        ]

    async def list_locations(self) -> list[Location]:
        return list(self.locations)


def _next_id(rows) -> int:
    """自增主键：取现有最大 id + 1，不与预置行的固定 id 撞车"""
    return max((r.id for r in rows), default=0) + 1


class FakePricingStore:
    """价格缓存表的内存实现；updates 记录每次写入"""

    def __init__(self, products=None, variants=None):
        self.products: list[CachedProduct] = list(products or [])
        self.variants: list[CachedVariant] = list(variants or [])
        self.product_updates: list[tuple[str, dict]] = []
        self.variant_updates: list[tuple[int, dict]] = []
        self.failing_variant_rows: set[int] = set()
        self.fail_lookup = False

    async def get_variants_by_shopify_ids(self, variant_ids):
        if self.fail_lookup:
            raise RuntimeError("database unavailable")
        ids = set(variant_ids)
        return [v for v in self.variants if v.shopify_variant_id in ids]

    async def list_products(self):
        return list(self.products)

    async def get_product(self, product_id):
        return next((p for p in self.products if p.id == product_id), None)

    async def list_variants_by_handle(self, handle):
        return [v for v in self.variants if v.handle == handle]

    async def list_variants_by_product(self, product_id):
        return [v for v in self.variants if v.product_id == product_id]

    async def update_product(self, handle, fields):
        self.product_updates.append((handle, fields))
        self.products = [
            p.model_copy(update=fields) if p.handle == handle else p for p in self.products
        ]

    async def update_variant(self, variant_row_id, fields):
        if variant_row_id in self.failing_variant_rows:
            raise RuntimeError("write failed")
        self.variant_updates.append((variant_row_id, fields))
        self.variants = [
            v.model_copy(update=fields) if v.id == variant_row_id else v for v in self.variants
        ]

    async def mark_needs_sync(self, variant_row_ids):
        ids = set(variant_row_ids)
        self.variants = [
            v.model_copy(update={"needs_sync": True}) if v.id in ids else v for v in self.variants
        ]

    async def upsert_product(self, fields):
        existing = next(
            (
                p for p in self.products
                if p.shopify_product_id == fields["shopify_product_id"]
                or (p.shopify_product_id is None and p.handle == fields["handle"])
            ),
            None,
        )
        if existing:
            updated = existing.model_copy(update=fields)
            self.products = [updated if p.id == existing.id else p for p in self.products]
            return updated
        created = CachedProduct(id=_next_id(self.products), **fields)
        self.products.append(created)
        return created

    async def upsert_variant(self, fields):
        existing = next(
            (v for v in self.variants if v.shopify_variant_id == fields["shopify_variant_id"]), None
        )
        if existing:
            updated = existing.model_copy(update=fields)
            self.variants = [updated if v.id == existing.id else v for v in self.variants]
        else:
            self.variants.append(CachedVariant(id=_next_id(self.variants), **fields))

    async def get_stats(self):
        return PricingStats(
            total_products=len(self.products),
            total_variants=len(self.variants),
            synced_products=sum(1 for p in self.products if p.shopify_product_id),
            synced_variants=sum(1 for v in self.variants if v.shopify_variant_id),
            variants_needing_sync=sum(1 for v in self.variants if v.needs_sync),
        )


class FakeExpenseStore:
    def __init__(self, expenses=None):
        self.expenses: list[Expense] = list(expenses or [])

    async def list_expenses(self, shop, date_from=None, date_to=None):
        rows = [
            e for e in self.expenses
            if e.shop == shop
            and (date_from is None or e.expense_date >= date_from)
            and (date_to is None or e.expense_date <= date_to)
        ]
        return sorted(rows, key=lambda e: e.expense_date, reverse=True)

    async def create_expense(self, payload: ExpenseCreate) -> Expense:
        expense = Expense(
            id=_next_id(self.expenses),
            shop=payload.shop,
            location_name=payload.location_name,
            amount=payload.amount,
            description=payload.description,
            expense_date=payload.expense_date,
            expense_type=payload.expense_type,
            category=payload.category or "general",
            created_at=datetime.now(timezone.utc),
        )
        self.expenses.append(expense)
        return expense

    async def delete_expense(self, expense_id: int) -> bool:
        before = len(self.expenses)
        self.expenses = [e for e in self.expenses if e.id != expense_id]
        return len(self.expenses) != before


def make_order(
    order_id: int,
    total: str,
    lines: list[tuple[Optional[int], int]],
    location_id: Optional[int] = None,
    currency: str = "NPR",
) -> Order:
    """lines: [(variant_id, quantity)]"""
    return Order.model_validate({
        "id": order_id,
        "name": f"#{1000 + order_id}",
        "created_at": "2026-10-17T09:30:00+05:45",
        "total_price": total,
        "currency": currency,
        "financial_status": "paid",
        "fulfillment_status": None,
        "location_id": location_id,
        "line_items": [
            {"id": order_id * 100 + i, "name": f"Item {i}", "variant_id": vid, "quantity": qty, "price": "10.00"}
            for i, (vid, qty) in enumerate(lines)
        ],
    })
