"""
规格成本解析：订单行项目 → 单位成本。

顺序：
  1. 价格缓存表（product_variants）按 shopify_variant_id 批量查一次；
  2. 缓存里没有的规格走 Shopify：variant → inventory_item → cost，每批最多 50 个；
  3. 仍取不到的记为 0 并标记 cost_set=False。

解析过程从不向调用方抛异常：最坏情况是全部成本为 0，
在结果里表现为 COGS 偏低 + 一批 "NOT SET" 标记，而不是请求失败。
"""
import asyncio
from typing import Iterable, Optional

from loguru import logger

from profit_dashboard.schemas.profit import CostSource, ResolvedCost
from profit_dashboard.services.shopify_service import ShopifyClient

METHOD_DIRECT = "direct"
METHOD_VIA_PRODUCT = "via_product"
METHOD_FAILED = "failed"


def _unresolved(variant_id: int, error: str) -> ResolvedCost:
    return ResolvedCost(variant_id=variant_id, source=CostSource.UNRESOLVED, cost_set=False, error=error)


class CostResolver:
    """按规格解析单位成本；store 为空时（未配置数据库）直接走远程"""

    def __init__(
        self,
        client: ShopifyClient,
        store=None,
        batch_size: int = 50,
        concurrency: int = 2,
        retry_delay: float = 0.5,
    ):
        self.client = client
        self.store = store
        self.batch_size = max(1, batch_size)
        self.concurrency = max(1, concurrency)
        self.retry_delay = retry_delay

    async def resolve(self, variant_ids: Iterable[Optional[int]]) -> dict[int, ResolvedCost]:
        """返回 {variant_id: ResolvedCost}，每个请求的 id 都有一项"""
        ids = sorted({int(v) for v in variant_ids if v is not None})
        if not ids:
            return {}

        resolved = await self._from_cache(ids)
        missing = [v for v in ids if v not in resolved]
        if missing:
            logger.info(f"缓存未命中 {len(missing)}/{len(ids)} 个规格，改从 Shopify 获取成本")
            resolved.update(await self._from_remote(missing))

        for vid in ids:
            if vid not in resolved:
                resolved[vid] = _unresolved(vid, "未取得成本")

        unresolved = [vid for vid, c in resolved.items() if not c.cost_set]
        if unresolved:
            logger.warning(f"{len(unresolved)} 个规格成本未设置，按 0 计入 COGS: {unresolved[:20]}")
        return resolved

    async def _from_cache(self, ids: list[int]) -> dict[int, ResolvedCost]:
        if self.store is None:
            return {}
        try:
            rows = await self.store.get_variants_by_shopify_ids(ids)
        except Exception as e:
            logger.warning(f"价格缓存查询失败，全部改走远程: {e!r}")
            return {}
        result: dict[int, ResolvedCost] = {}
        for row in rows:
            if row.shopify_variant_id is None:
                continue
            result[row.shopify_variant_id] = ResolvedCost(
                variant_id=row.shopify_variant_id,
                cost=row.cost if row.cost is not None else 0,
                source=CostSource.CACHE,
                cost_set=row.cost is not None,
            )
        return result

    async def _from_remote(self, ids: list[int]) -> dict[int, ResolvedCost]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(batch: list[int]) -> dict[int, ResolvedCost]:
            async with semaphore:
                return await self._resolve_batch(batch)

        batches = [ids[i:i + self.batch_size] for i in range(0, len(ids), self.batch_size)]
        results = await asyncio.gather(*(run(b) for b in batches))
        merged: dict[int, ResolvedCost] = {}
        for part in results:
            merged.update(part)
        return merged

    async def _resolve_batch(self, batch: list[int]) -> dict[int, ResolvedCost]:
        """批量：variants.json?ids= → inventory_items.json?ids=；整批失败时逐个重试"""
        try:
            variants = await self.client.get_variants(batch)
            item_ids = [v.inventory_item_id for v in variants if v.inventory_item_id]
            items = await self.client.get_inventory_items(item_ids) if item_ids else []
        except Exception as e:
            logger.warning(f"批量获取成本失败（{len(batch)} 个规格），逐个重试: {e!r}")
            result = {}
            for vid in batch:
                result[vid], _ = await self.lookup_remote_cost(vid)
            return result

        cost_by_item = {item.id: item.cost for item in items}
        result: dict[int, ResolvedCost] = {}
        for variant in variants:
            if variant.id not in batch:
                continue
            if not variant.inventory_item_id:
                result[variant.id] = _unresolved(variant.id, "No inventory_item_id")
                continue
            cost = cost_by_item.get(variant.inventory_item_id)
            if cost is None:
                result[variant.id] = ResolvedCost(
                    variant_id=variant.id, source=CostSource.REMOTE, cost_set=False,
                    error="inventory item has no cost",
                )
            else:
                result[variant.id] = ResolvedCost(
                    variant_id=variant.id, cost=cost, source=CostSource.REMOTE, cost_set=True
                )
        for vid in batch:
            if vid not in result:
                result[vid] = _unresolved(vid, "variant not found")
        return result

    async def lookup_remote_cost(self, variant_id: int) -> tuple[ResolvedCost, str]:
        """
        单个规格远程取成本，返回 (成本, 方法)。
          方法一：variant → inventory_item
          方法二：variant → product → 对应 variant → inventory_item
        两种都失败时返回 0 成本、方法 "failed"，不抛异常。
        """
        try:
            return await self._cost_direct(variant_id), METHOD_DIRECT
        except Exception as e1:
            logger.warning(f"[方法一失败] 规格 {variant_id}: {e1!r}")
            if self.retry_delay:
                await asyncio.sleep(self.retry_delay)
            try:
                return await self._cost_via_product(variant_id), METHOD_VIA_PRODUCT
            except Exception as e2:
                logger.error(f"[全部方法失败] 规格 {variant_id}: 方法一 {e1!r}; 方法二 {e2!r}")
                return _unresolved(variant_id, "All fetch methods failed"), METHOD_FAILED

    async def _cost_direct(self, variant_id: int) -> ResolvedCost:
        variant = await self.client.get_variant(variant_id)
        if not variant.inventory_item_id:
            raise ValueError("No inventory_item_id")
        cost = await self.client.get_inventory_item_cost(variant.inventory_item_id)
        return self._remote_cost(variant_id, cost)

    async def _cost_via_product(self, variant_id: int) -> ResolvedCost:
        variant = await self.client.get_variant(variant_id)
        if not variant.product_id:
            raise ValueError("No product_id")
        product = await self.client.get_product(variant.product_id)
        match = next((v for v in product.variants if v.id == variant_id), None)
        if match is None or not match.inventory_item_id:
            raise ValueError("Variant not found in product")
        cost = await self.client.get_inventory_item_cost(match.inventory_item_id)
        return self._remote_cost(variant_id, cost)

    @staticmethod
    def _remote_cost(variant_id: int, cost) -> ResolvedCost:
        if cost is None:
            return ResolvedCost(
                variant_id=variant_id, source=CostSource.REMOTE, cost_set=False,
                error="inventory item has no cost",
            )
        return ResolvedCost(variant_id=variant_id, cost=cost, source=CostSource.REMOTE, cost_set=True)
