"""
价格缓存同步（Shopify 为准）。

全量同步流程（run）：
  1. 翻页拉取 Shopify 全部商品（每页 250，页间延时）；
  2. 按 handle 对应本地 products，本地没有的只计数为「新商品」，不自动导入
     （导入走 sync_all / sync_product）；
  3. 商品字段有差异才写回；
  4. 规格先按 SKU 匹配，再按 (option1, option2, option3) 匹配；
     价格 / 成本差值 > 0.01 才算变化，写回时打上 last_price_change / last_cost_change。

单条失败只记录到 stats.errors，不中断整体同步；写库是 upsert / 按行 update，
中途失败后重跑是幂等的。
"""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from loguru import logger

from profit_dashboard.core.config import Settings, get_settings
from profit_dashboard.schemas.pricing import (
    CachedProduct,
    CachedVariant,
    SyncAllResult,
    SyncProductResult,
    SyncStats,
)
from profit_dashboard.schemas.shopify import Product, Variant
from profit_dashboard.services.shopify_service import ShopifyClient

PRICE_TOLERANCE = Decimal("0.01")

SleepFunc = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def amount_changed(remote: Optional[Decimal], cached: Optional[Decimal]) -> bool:
    """金额差值超过 0.01 才算变化，避免浮点舍入导致反复写库"""
    return abs(Decimal(remote or 0) - Decimal(cached or 0)) > PRICE_TOLERANCE


def product_needs_update(remote: Product, cached: CachedProduct) -> bool:
    return (
        cached.title != remote.title
        or cached.vendor != remote.vendor
        or cached.product_type != remote.product_type
        or cached.status != remote.status
        or cached.image_url != remote.image_url
        or not cached.shopify_product_id
    )


def match_variant(remote: Variant, cached_variants: list[CachedVariant]) -> Optional[CachedVariant]:
    """先按 SKU（两边都非空且相等），再按三个选项值完全相等；取第一个命中的"""
    sku = (remote.sku or "").strip()
    if sku:
        for row in cached_variants:
            if row.sku and row.sku.strip() == sku:
                return row
    options = (remote.option1, remote.option2, remote.option3)
    for row in cached_variants:
        if (row.option1_value, row.option2_value, row.option3_value) == options:
            return row
    return None


class SyncReconciler:
    """单个店铺的价格缓存同步"""

    def __init__(
        self,
        client: ShopifyClient,
        store,
        settings: Optional[Settings] = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.store = store
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._clock = clock

    async def _throttle(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def fetch_all_products(self, stats: SyncStats) -> list[Product]:
        """翻页拉取全部商品；某页失败时记录错误并用已拉到的部分继续"""
        products: list[Product] = []
        page_info: Optional[str] = None
        page = 0
        while True:
            page += 1
            try:
                batch, page_info = await self.client.list_products_page(page_info=page_info)
            except Exception as e:
                logger.error(f"[SMART SYNC] 第 {page} 页商品拉取失败: {e!r}")
                stats.errors.append(f"Products page {page}: {e}")
                break
            products.extend(batch)
            await self._throttle(self.settings.SYNC_PAGE_DELAY_MS)
            if not page_info:
                break
        logger.info(f"[SMART SYNC] 从 Shopify 拉取到 {len(products)} 个商品")
        return products

    async def run(self) -> SyncStats:
        """全量同步，返回统计；超过 SYNC_TIMEOUT_SECONDS 时提前结束并标记 timed_out"""
        stats = SyncStats()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.SYNC_TIMEOUT_SECONDS
        logger.info(f"🔄 [SMART SYNC] 开始同步: shop={self.client.shop}")

        remote_products = await self.fetch_all_products(stats)
        cached_products = await self.store.list_products()
        cached_by_handle = {p.handle: p for p in cached_products}
        logger.info(f"[SMART SYNC] 本地共有 {len(cached_products)} 个商品")

        for product in remote_products:
            if loop.time() > deadline:
                stats.timed_out = True
                stats.errors.append(
                    f"Sync stopped after {self.settings.SYNC_TIMEOUT_SECONDS}s; "
                    f"{stats.products_checked}/{len(remote_products)} products checked"
                )
                logger.warning("[SMART SYNC] 超过最长执行时间，提前结束")
                break
            stats.products_checked += 1
            cached = cached_by_handle.get(product.handle)
            if cached is None:
                logger.info(f"🆕 [SMART SYNC] 本地还没有该商品: {product.handle}")
                stats.new_products_found += 1
                stats.new_product_handles.append(product.handle)
                continue
            await self._reconcile_product(product, cached, stats)
            await self._throttle(self.settings.SYNC_PRODUCT_DELAY_MS)

        logger.info(f"✅ [SMART SYNC] 同步完成: {stats.model_dump(exclude={'errors', 'new_product_handles'})}")
        return stats

    async def _reconcile_product(self, product: Product, cached: CachedProduct, stats: SyncStats) -> None:
        if product_needs_update(product, cached):
            try:
                await self.store.update_product(product.handle, {
                    "shopify_product_id": product.id,
                    "title": product.title,
                    "vendor": product.vendor,
                    "product_type": product.product_type,
                    "status": product.status,
                    "image_url": product.image_url,
                    "last_synced_at": self._clock(),
                })
                stats.products_updated += 1
                logger.info(f"✅ [SMART SYNC] 已更新商品: {product.handle}")
            except Exception as e:
                logger.error(f"❌ [SMART SYNC] 更新商品失败 {product.handle}: {e!r}")
                stats.errors.append(f"Product {product.handle}: {e}")

        try:
            cached_variants = await self.store.list_variants_by_handle(product.handle)
        except Exception as e:
            logger.error(f"❌ [SMART SYNC] 读取本地规格失败 {product.handle}: {e!r}")
            stats.errors.append(f"Variants of {product.handle}: {e}")
            return

        for variant in product.variants:
            stats.variants_checked += 1
            row = match_variant(variant, cached_variants)
            if row is None:
                stats.variants_unmatched += 1
                logger.warning(f"⚠️ [SMART SYNC] 本地没有对应规格: {variant.sku or variant.title}")
                continue
            await self._reconcile_variant(product, variant, row, stats)

    async def _fetch_cost(self, variant: Variant, stats: SyncStats) -> tuple[Optional[Decimal], bool]:
        """返回 (成本, 是否取到)；Shopify 上未填成本视为 0"""
        if not variant.inventory_item_id:
            return None, False
        try:
            cost = await self.client.get_inventory_item_cost(variant.inventory_item_id)
        except Exception as e:
            logger.warning(f"⚠️ [SMART SYNC] 规格 {variant.id} 成本获取失败: {e!r}")
            stats.errors.append(f"Cost for variant {variant.sku or variant.id}: {e}")
            return None, False
        finally:
            await self._throttle(self.settings.SYNC_VARIANT_DELAY_MS)
        return (cost if cost is not None else Decimal("0")), True

    async def _reconcile_variant(
        self,
        product: Product,
        variant: Variant,
        row: CachedVariant,
        stats: SyncStats,
    ) -> None:
        remote_cost, cost_known = await self._fetch_cost(variant, stats)
        if variant.inventory_item_id and not cost_known:
            try:
                await self.store.mark_needs_sync([row.id])
            except Exception as e:
                stats.errors.append(f"Variant {variant.sku or variant.id}: {e}")

        price_changed = amount_changed(variant.price, row.price)
        cost_changed = cost_known and amount_changed(remote_cost, row.cost)
        clears_flag = cost_known and row.needs_sync

        if not (price_changed or cost_changed or clears_flag or row.shopify_variant_id is None):
            return

        now = self._clock()
        update: dict = {
            "shopify_variant_id": variant.id,
            "shopify_product_id": product.id,
            "inventory_item_id": variant.inventory_item_id,
            "last_synced_at": now,
        }
        if cost_known:
            update["needs_sync"] = False
        if price_changed:
            update["price"] = variant.price
            update["last_price_change"] = now
            logger.info(f"💰 [PRICE CHANGE] {product.handle} - {variant.sku}: {row.price} → {variant.price}")
        if cost_changed:
            update["cost"] = remote_cost
            update["last_cost_change"] = now
            logger.info(f"💵 [COST CHANGE] {product.handle} - {variant.sku}: {row.cost} → {remote_cost}")

        try:
            await self.store.update_variant(row.id, update)
        except Exception as e:
            logger.error(f"❌ [SMART SYNC] 更新规格失败 {variant.sku or variant.id}: {e!r}")
            stats.errors.append(f"Variant {variant.sku or variant.id}: {e}")
            return
        stats.variants_updated += 1
        if price_changed:
            stats.price_changes += 1
        if cost_changed:
            stats.cost_changes += 1

    async def _fetch_costs(self, product: Product, errors: list[str]) -> dict[int, Decimal]:
        """一次批量取该商品全部规格的成本；失败时返回空表，成本按 0 写入"""
        item_ids = [v.inventory_item_id for v in product.variants if v.inventory_item_id]
        if not item_ids:
            return {}
        try:
            items = await self.client.get_inventory_items(item_ids)
        except Exception as e:
            logger.warning(f"⚠️ [SYNC PRODUCT] {product.handle} 批量获取成本失败，成本按 0 写入: {e!r}")
            errors.append(f"Inventory items of {product.handle}: {e}")
            return {}
        return {i.id: i.cost for i in items if i.cost is not None}

    async def _import_product(self, product: Product, errors: list[str]) -> tuple[CachedProduct, int]:
        """
        商品按 shopify_product_id upsert；规格先找同 handle、尚未关联的预置行
        （match_variant 匹配）补上 shopify_variant_id，找不到再按 shopify_variant_id upsert。
        返回 (本地商品, 写入的规格数)。
        """
        cost_map = await self._fetch_costs(product, errors)
        now = self._clock()
        cached = await self.store.upsert_product({
            "shopify_product_id": product.id,
            "handle": product.handle,
            "title": product.title,
            "vendor": product.vendor,
            "product_type": product.product_type,
            "status": product.status,
            "tags": product.tags,
            "image_url": product.image_url,
            "last_synced_at": now,
        })

        rows = await self.store.list_variants_by_handle(product.handle)
        linked = {r.shopify_variant_id for r in rows if r.shopify_variant_id is not None}
        unlinked = [r for r in rows if r.shopify_variant_id is None]

        synced = 0
        for variant in product.variants:
            fields = {
                "product_id": cached.id,
                "shopify_product_id": product.id,
                "shopify_variant_id": variant.id,
                "inventory_item_id": variant.inventory_item_id,
                "title": variant.title,
                "sku": variant.sku or None,
                "option1_value": variant.option1,
                "option2_value": variant.option2,
                "option3_value": variant.option3,
                "price": variant.price,
                "cost": cost_map.get(variant.inventory_item_id, Decimal("0")),
                "compare_at_price": variant.compare_at_price,
                "position": variant.position,
                "last_synced_at": now,
            }
            row = None if variant.id in linked else match_variant(variant, unlinked)
            try:
                if row is not None:
                    await self.store.update_variant(row.id, {**fields, "needs_sync": False})
                    unlinked = [r for r in unlinked if r.id != row.id]
                    logger.info(f"🔗 [SYNC PRODUCT] 预置规格 {row.id} 关联到 Shopify 规格 {variant.id}")
                else:
                    await self.store.upsert_variant({**fields, "handle": product.handle})
                synced += 1
            except Exception as e:
                logger.error(f"❌ [SYNC PRODUCT] 规格 {variant.id} 写入失败: {e!r}")
                errors.append(f"Variant {variant.id}: {e}")
        return cached, synced

    async def sync_product(self, product_id: int) -> SyncProductResult:
        """单商品导入，成本一次批量取 inventory_items"""
        product = await self.client.get_product(product_id)
        logger.info(f"🔄 [SYNC PRODUCT] 同步商品 {product.id} {product.title}")
        errors: list[str] = []
        cached, synced = await self._import_product(product, errors)
        logger.info(f"✅ [SYNC PRODUCT] {product.title}: {synced} 个规格已同步")
        return SyncProductResult(product_id=cached.id, title=cached.title, variants_synced=synced, errors=errors)

    async def sync_all(self) -> SyncAllResult:
        """
        批量导入：把 Shopify 全部商品及其规格写入本地缓存。
        智能同步只统计、不导入的「新商品」靠这里补进来；单个商品失败只记入 errors，
        超过 SYNC_TIMEOUT_SECONDS 时提前结束并标记 timed_out。重跑是幂等的。
        """
        result = SyncAllResult()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.SYNC_TIMEOUT_SECONDS
        logger.info(f"🔄 [SYNC ALL] 开始导入全部商品: shop={self.client.shop}")

        fetch_stats = SyncStats()
        remote_products = await self.fetch_all_products(fetch_stats)
        result.errors.extend(fetch_stats.errors)

        cached_products = await self.store.list_products()
        known_ids = {p.shopify_product_id for p in cached_products if p.shopify_product_id}
        known_handles = {p.handle for p in cached_products}

        for product in remote_products:
            if loop.time() > deadline:
                result.timed_out = True
                result.errors.append(
                    f"Sync stopped after {self.settings.SYNC_TIMEOUT_SECONDS}s; "
                    f"{result.products_processed}/{len(remote_products)} products processed"
                )
                logger.warning("[SYNC ALL] 超过最长执行时间，提前结束")
                break
            result.products_processed += 1
            try:
                _, synced = await self._import_product(product, result.errors)
            except Exception as e:
                logger.error(f"❌ [SYNC ALL] 商品 {product.id} 导入失败: {e!r}")
                result.errors.append(f"Product {product.handle}: {e}")
                continue
            if product.id in known_ids or product.handle in known_handles:
                result.products_updated += 1
            else:
                result.products_added += 1
            result.variants_synced += synced
            await self._throttle(self.settings.SYNC_PRODUCT_DELAY_MS)

        logger.info(
            f"✅ [SYNC ALL] 完成: 处理 {result.products_processed} 个，新增 {result.products_added} 个，"
            f"更新 {result.products_updated} 个，规格 {result.variants_synced} 个"
        )
        return result
