"""
看板服务：接口层调用的编排逻辑。

一次请求内的流程：时间范围 → 拉订单 → 解析成本 → 汇总。
订单 / 门店列表这类顶层远程调用失败时抛 RemoteFetchError（整个请求失败）；
成本解析的单条失败在 CostResolver 内部降级。
"""
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional

from loguru import logger

from profit_dashboard.core.config import Settings, get_settings
from profit_dashboard.core.exceptions import RemoteFetchError
from profit_dashboard.date_ranges import (
    expense_window,
    month_ago_midnight,
    resolve_date_range,
    to_shopify_ts,
)
from profit_dashboard.schemas.shopify import Location, Order
from profit_dashboard.services import profit_service
from profit_dashboard.services.cost_resolver import CostResolver
from profit_dashboard.services.inventory_service import inventory_value
from profit_dashboard.services.shopify_service import ShopifyClient

ORDER_LIST_FIELDS = (
    "id,name,created_at,total_price,currency,financial_status,"
    "fulfillment_status,line_items,location_id"
)


class DashboardService:
    """单个店铺的看板数据"""

    def __init__(
        self,
        client: ShopifyClient,
        pricing_store=None,
        expense_store=None,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.pricing_store = pricing_store
        self.expense_store = expense_store
        self.settings = settings or get_settings()
        self.cost_resolver = CostResolver(
            client,
            store=pricing_store,
            batch_size=self.settings.COST_BATCH_SIZE,
            concurrency=self.settings.COST_FETCH_CONCURRENCY,
        )

    @property
    def shop(self) -> str:
        return self.client.shop

    def _currency(self, orders: list[Order]) -> str:
        return (orders[0].currency if orders else None) or self.settings.DEFAULT_CURRENCY

    async def fetch_orders(self, since: datetime, until: Optional[datetime] = None) -> list[Order]:
        try:
            return await self.client.list_orders(
                created_at_min=to_shopify_ts(since),
                created_at_max=to_shopify_ts(until) if until else None,
            )
        except Exception as e:
            logger.exception(f"获取订单失败: shop={self.shop}")
            raise RemoteFetchError("Failed to fetch orders from Shopify", details=str(e)) from e

    async def fetch_locations(self, active_only: bool = False) -> list[Location]:
        try:
            locations = await self.client.list_locations()
        except Exception as e:
            logger.exception(f"获取门店失败: shop={self.shop}")
            raise RemoteFetchError("Failed to fetch locations", details=str(e)) from e
        return [loc for loc in locations if loc.active] if active_only else locations

    async def profit(
        self,
        date_range: str = "today",
        by_location: bool = False,
        now: Optional[datetime] = None,
    ) -> dict:
        """利润汇总；by_location=True 时附带按门店拆分"""
        start, end = resolve_date_range(date_range, now=now, week_start=self.settings.WEEK_START)
        start_date, end_date = expense_window(start, end)

        if by_location:
            orders, locations = await asyncio.gather(self.fetch_orders(start, end), self.fetch_locations())
        else:
            orders, locations = await self.fetch_orders(start, end), None

        costs = await self.cost_resolver.resolve(profit_service.collect_variant_ids(orders))

        expenses = []
        expenses_error = None
        if self.expense_store is not None:
            try:
                expenses = await self.expense_store.list_expenses(self.shop, start_date, end_date)
            except Exception as e:
                logger.error(f"获取费用失败，按 0 计: {e!r}")
                expenses_error = str(e)

        summary = profit_service.compute_profit(
            orders,
            costs,
            expenses,
            start_date,
            end_date,
            currency=self._currency(orders),
            locations=locations,
        )
        payload = profit_service.profit_payload(summary)
        payload["date_range"] = date_range
        if expenses_error:
            payload["expenses_error"] = expenses_error
        return payload

    async def order_stats(self, now: Optional[datetime] = None) -> dict:
        """今日 / 近 7 天 / 近一个月订单数，三个请求并发"""
        today_start, _ = resolve_date_range("today", now=now)
        week_start, _ = resolve_date_range("last7days", now=now)
        month_start = month_ago_midnight(now)

        today_orders, week_orders, month_orders = await asyncio.gather(
            self.fetch_orders(today_start),
            self.fetch_orders(week_start),
            self.fetch_orders(month_start),
        )
        return {
            "today_orders": len(today_orders),
            "today_revenue": profit_service.to_money(profit_service.order_revenue(today_orders)),
            "currency": self._currency(today_orders),
            "week_orders": len(week_orders),
            "month_orders": len(month_orders),
        }

    async def order_analytics(
        self,
        date_range: str = "today",
        store_filter: str = "all",
        now: Optional[datetime] = None,
    ) -> dict:
        start, end = resolve_date_range(date_range, now=now, week_start=self.settings.WEEK_START)
        orders = await self.fetch_orders(start, end)
        total = profit_service.order_revenue(orders)
        breakdown = [{
            "store": self.shop,
            "orders": len(orders),
            "amount": profit_service.to_money(total),
        }]
        if store_filter != "all":
            breakdown = [b for b in breakdown if b["store"] == store_filter]
        return {
            "shop": self.shop,
            "date_range": date_range,
            "total_orders": len(orders),
            "total_amount": profit_service.to_money(total),
            "currency": self._currency(orders),
            "store_breakdown": breakdown,
        }

    async def purchase_order_analytics(
        self,
        date_range: str = "thismonth",
        now: Optional[datetime] = None,
    ) -> dict:
        """采购单数量与金额；采购单接口取不到时按 0 单统计，原因放在 fetch_error"""
        start, end = resolve_date_range(date_range, now=now, week_start=self.settings.WEEK_START)
        fetch_error = None
        try:
            purchase_orders = await self.client.list_purchase_orders(
                created_at_min=to_shopify_ts(start),
                created_at_max=to_shopify_ts(end),
            )
        except Exception as e:
            logger.warning(f"⚠️ 获取采购单失败，按 0 单统计: shop={self.shop}, {e!r}")
            purchase_orders = []
            fetch_error = str(e)

        total = sum((po.amount for po in purchase_orders), Decimal("0"))
        currency = (purchase_orders[0].currency if purchase_orders else None) or self.settings.DEFAULT_CURRENCY
        data = {
            "shop": self.shop,
            "date_range": date_range,
            "total_purchase_orders": len(purchase_orders),
            "total_amount": profit_service.to_money(total),
            "currency": currency,
        }
        if fetch_error:
            data["fetch_error"] = fetch_error
        return data

    async def orders_list(self, location: str = "all") -> dict:
        """最近订单 + 每单成本；location 为门店 id 或 all"""
        locations = await self.fetch_locations()
        try:
            orders = await self.client.list_recent_orders(fields=ORDER_LIST_FIELDS)
        except Exception as e:
            logger.exception(f"获取订单失败: shop={self.shop}")
            raise RemoteFetchError("Failed to fetch orders", details=str(e)) from e

        if location != "all":
            try:
                location_id = int(location)
            except ValueError:
                location_id = None
            orders = [o for o in orders if o.location_id == location_id]

        costs = await self.cost_resolver.resolve(profit_service.collect_variant_ids(orders))
        rows = profit_service.order_cost_rows(orders, costs, locations)
        return {
            "orders": [
                {
                    **row.model_dump(mode="json"),
                    "total_price": profit_service.to_money(row.total_price),
                    "total_cost": profit_service.to_money(row.total_cost),
                }
                for row in rows
            ],
            "currency": self._currency(orders),
        }

    async def locations(self) -> list[dict]:
        return [
            {"id": loc.id, "name": loc.name, "address": loc.short_address, "active": loc.active}
            for loc in await self.fetch_locations(active_only=True)
        ]

    async def variant_cost(self, variant_id: int) -> dict:
        resolved, method = await self.cost_resolver.lookup_remote_cost(variant_id)
        data = {
            "variant_id": variant_id,
            "cost": profit_service.to_money(resolved.cost),
            "cost_set": resolved.cost_set,
            "method": method,
        }
        if resolved.error:
            data["error"] = resolved.error
        return data

    async def inventory_value(self) -> dict:
        try:
            return await inventory_value(self.client, self.settings.DEFAULT_CURRENCY)
        except Exception as e:
            logger.exception(f"库存估值失败: shop={self.shop}")
            raise RemoteFetchError("Failed to calculate inventory value", details=str(e)) from e
