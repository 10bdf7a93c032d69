"""
products / product_variants 表（价格缓存）相关数据库操作。

shopify_variant_id 唯一：upsert 以它为冲突键，并发同步时按行 last-write-wins。
"""
from decimal import Decimal
from typing import Any, Iterable, Optional

from profit_dashboard.schemas.pricing import CachedProduct, CachedVariant, PricingStats

_PRODUCT_COLUMNS = (
    "id, handle, shopify_product_id, title, vendor, product_type, status, tags, "
    "image_url, last_synced_at"
)
_VARIANT_COLUMNS = (
    "id, product_id, handle, shopify_product_id, shopify_variant_id, inventory_item_id, "
    "title, sku, option1_value, option2_value, option3_value, price, cost, "
    "compare_at_price, position, last_synced_at, last_price_change, last_cost_change, needs_sync"
)

# update_product / update_variant 允许写回的列
PRODUCT_UPDATABLE = {
    "shopify_product_id", "title", "vendor", "product_type", "status", "tags",
    "image_url", "last_synced_at",
}
VARIANT_UPDATABLE = {
    "product_id", "shopify_product_id", "shopify_variant_id", "inventory_item_id",
    "title", "sku", "option1_value", "option2_value", "option3_value",
    "price", "cost", "compare_at_price", "position",
    "last_synced_at", "last_price_change", "last_cost_change", "needs_sync",
}


def _set_clause(fields: dict, allowed: set[str], start: int) -> tuple[str, list]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"不允许更新的列: {sorted(unknown)}")
    names = sorted(fields)
    clause = ", ".join(f"{name} = ${i}" for i, name in enumerate(names, start))
    return clause, [fields[n] for n in names]


class PricingCacheStore:
    """价格缓存表读写；conn 为 asyncpg 连接"""

    def __init__(self, conn: Any):
        self.conn = conn

    async def get_variants_by_shopify_ids(self, variant_ids: Iterable[int]) -> list[CachedVariant]:
        """一次查询取出 shopify_variant_id ∈ ids 的缓存行"""
        ids = sorted({int(v) for v in variant_ids})
        if not ids:
            return []
        rows = await self.conn.fetch(
            f"""
            SELECT {_VARIANT_COLUMNS}
            FROM product_variants
            WHERE shopify_variant_id = ANY($1::bigint[])
            """,
            ids,
        )
        return [CachedVariant.model_validate(dict(r)) for r in rows]

    async def list_products(self) -> list[CachedProduct]:
        rows = await self.conn.fetch(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY title")
        return [CachedProduct.model_validate(dict(r)) for r in rows]

    async def get_product(self, product_id: int) -> Optional[CachedProduct]:
        row = await self.conn.fetchrow(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = $1", product_id
        )
        return CachedProduct.model_validate(dict(row)) if row else None

    async def list_variants_by_handle(self, handle: str) -> list[CachedVariant]:
        rows = await self.conn.fetch(
            f"SELECT {_VARIANT_COLUMNS} FROM product_variants WHERE handle = $1 ORDER BY position, id",
            handle,
        )
        return [CachedVariant.model_validate(dict(r)) for r in rows]

    async def list_variants_by_product(self, product_id: int) -> list[CachedVariant]:
        rows = await self.conn.fetch(
            f"SELECT {_VARIANT_COLUMNS} FROM product_variants WHERE product_id = $1 ORDER BY position, id",
            product_id,
        )
        return [CachedVariant.model_validate(dict(r)) for r in rows]

    async def update_product(self, handle: str, fields: dict) -> None:
        """按 handle 更新商品的指定列"""
        clause, values = _set_clause(fields, PRODUCT_UPDATABLE, 2)
        await self.conn.execute(
            f"UPDATE products SET {clause}, updated_at = NOW() WHERE handle = $1",
            handle,
            *values,
        )

    async def update_variant(self, variant_row_id: int, fields: dict) -> None:
        """按本地主键更新规格的指定列"""
        clause, values = _set_clause(fields, VARIANT_UPDATABLE, 2)
        await self.conn.execute(
            f"UPDATE product_variants SET {clause}, updated_at = NOW() WHERE id = $1",
            variant_row_id,
            *values,
        )

    async def upsert_product(self, fields: dict) -> CachedProduct:
        """
        插入或更新 products，冲突键 shopify_product_id。
        fields 需含 shopify_product_id、handle。
        预先导入、尚未关联 Shopify 的同 handle 商品先补上 shopify_product_id，再走冲突更新。
        """
        await self.conn.execute(
            "UPDATE products SET shopify_product_id = $1 WHERE handle = $2 AND shopify_product_id IS NULL",
            fields["shopify_product_id"],
            fields["handle"],
        )
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO products (
                shopify_product_id, handle, title, vendor, product_type, status, tags,
                image_url, last_synced_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW())
            ON CONFLICT (shopify_product_id)
            DO UPDATE SET
              handle = EXCLUDED.handle,
              title = EXCLUDED.title,
              vendor = EXCLUDED.vendor,
              product_type = EXCLUDED.product_type,
              status = EXCLUDED.status,
              tags = EXCLUDED.tags,
              image_url = EXCLUDED.image_url,
              last_synced_at = EXCLUDED.last_synced_at,
              updated_at = NOW()
            RETURNING {_PRODUCT_COLUMNS}
            """,
            fields["shopify_product_id"],
            fields["handle"],
            fields.get("title"),
            fields.get("vendor"),
            fields.get("product_type"),
            fields.get("status"),
            fields.get("tags"),
            fields.get("image_url"),
            fields.get("last_synced_at"),
        )
        return CachedProduct.model_validate(dict(row))

    async def upsert_variant(self, fields: dict) -> None:
        """插入或更新 product_variants，冲突键 shopify_variant_id"""
        await self.conn.execute(
            """
            INSERT INTO product_variants (
                product_id, handle, shopify_product_id, shopify_variant_id, inventory_item_id,
                title, sku, option1_value, option2_value, option3_value,
                price, cost, compare_at_price, position, last_synced_at, needs_sync, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, FALSE, NOW())
            ON CONFLICT (shopify_variant_id)
            DO UPDATE SET
              product_id = EXCLUDED.product_id,
              handle = EXCLUDED.handle,
              shopify_product_id = EXCLUDED.shopify_product_id,
              inventory_item_id = EXCLUDED.inventory_item_id,
              title = EXCLUDED.title,
              sku = EXCLUDED.sku,
              option1_value = EXCLUDED.option1_value,
              option2_value = EXCLUDED.option2_value,
              option3_value = EXCLUDED.option3_value,
              price = EXCLUDED.price,
              cost = EXCLUDED.cost,
              compare_at_price = EXCLUDED.compare_at_price,
              position = EXCLUDED.position,
              last_synced_at = EXCLUDED.last_synced_at,
              needs_sync = FALSE,
              updated_at = NOW()
            """,
            fields.get("product_id"),
            fields.get("handle"),
            fields.get("shopify_product_id"),
            fields["shopify_variant_id"],
            fields.get("inventory_item_id"),
            fields.get("title"),
            fields.get("sku"),
            fields.get("option1_value"),
            fields.get("option2_value"),
            fields.get("option3_value"),
            fields.get("price", Decimal("0")),
            fields.get("cost", Decimal("0")),
            fields.get("compare_at_price"),
            fields.get("position"),
            fields.get("last_synced_at"),
        )

    async def get_stats(self) -> PricingStats:
        """缓存同步状况统计"""
        row = await self.conn.fetchrow(
            """
            SELECT
              (SELECT COUNT(*) FROM products) AS total_products,
              (SELECT COUNT(*) FROM product_variants) AS total_variants,
              (SELECT COUNT(*) FROM products WHERE shopify_product_id IS NOT NULL) AS synced_products,
              (SELECT COUNT(*) FROM product_variants WHERE shopify_variant_id IS NOT NULL) AS synced_variants,
              (SELECT COUNT(*) FROM product_variants WHERE needs_sync) AS variants_needing_sync,
              (SELECT MAX(last_synced_at) FROM product_variants) AS last_sync_time
            """
        )
        return PricingStats.model_validate(dict(row)) if row else PricingStats()

    async def mark_needs_sync(self, variant_row_ids: Iterable[int]) -> None:
        """同步时单条取成本失败的规格打上 needs_sync，下次同步重点关注"""
        ids = sorted(set(variant_row_ids))
        if not ids:
            return
        await self.conn.execute(
            "UPDATE product_variants SET needs_sync = TRUE, updated_at = NOW() WHERE id = ANY($1::bigint[])",
            ids,
        )
