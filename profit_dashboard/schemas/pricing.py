"""
价格缓存表（products / product_variants）相关 Schema
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CachedProduct(BaseModel):
    """products 表一行；handle 是与 Shopify 对齐的匹配键"""
    id: int
    handle: str
    shopify_product_id: Optional[int] = None
    title: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[str] = None
    image_url: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CachedVariant(BaseModel):
    """product_variants 表一行；shopify_variant_id 首次同步前为空"""
    id: int
    product_id: Optional[int] = None
    handle: Optional[str] = None
    shopify_product_id: Optional[int] = None
    shopify_variant_id: Optional[int] = None
    inventory_item_id: Optional[int] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    option1_value: Optional[str] = None
    option2_value: Optional[str] = None
    option3_value: Optional[str] = None
    price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    position: Optional[int] = None
    last_synced_at: Optional[datetime] = None
    last_price_change: Optional[datetime] = None
    last_cost_change: Optional[datetime] = None
    needs_sync: bool = False

    model_config = ConfigDict(from_attributes=True)


class PricingStats(BaseModel):
    """本地缓存统计（countWhere 汇总）"""
    total_products: int = 0
    total_variants: int = 0
    synced_products: int = 0
    synced_variants: int = 0
    variants_needing_sync: int = 0
    last_sync_time: Optional[datetime] = None


class SyncStats(BaseModel):
    """全量同步结果；errors 中每条为单个商品/规格的失败说明"""
    products_checked: int = 0
    products_updated: int = 0
    variants_checked: int = 0
    variants_updated: int = 0
    variants_unmatched: int = 0
    price_changes: int = 0
    cost_changes: int = 0
    new_products_found: int = 0
    new_product_handles: list[str] = []
    errors: list[str] = Field(default_factory=list)
    timed_out: bool = False

    def summary(self, max_errors: int = 10) -> dict:
        """接口返回用：错误只回前 max_errors 条"""
        data = self.model_dump(exclude={"errors"})
        data["errors"] = len(self.errors)
        data["error_details"] = self.errors[:max_errors]
        return data


class SyncProductResult(BaseModel):
    """单商品导入结果"""
    product_id: int
    title: Optional[str] = None
    variants_synced: int = 0
    errors: list[str] = Field(default_factory=list)


class SyncAllResult(BaseModel):
    """批量导入结果：products_added 为本地原先没有的商品数"""
    products_processed: int = 0
    products_added: int = 0
    products_updated: int = 0
    variants_synced: int = 0
    errors: list[str] = Field(default_factory=list)
    timed_out: bool = False

    def summary(self, max_errors: int = 10) -> dict:
        data = self.model_dump(exclude={"errors"})
        data["errors"] = len(self.errors)
        data["error_details"] = self.errors[:max_errors]
        return data
