"""
Shopify 相关 Schema

Admin REST 返回的 JSON 在进入业务层前统一转成这里的模型；
未声明的字段一律忽略（extra="ignore"），可能缺失的字段显式声明为 Optional。

字段对照（REST orders.json）:
  订单号: name（如 #1001），order_number 为数字部分
  总价: total_price（店铺币种字符串，解析为 Decimal）
  币种: currency
  支付状态: financial_status（pending / paid / partially_refunded / refunded ...）
  配送状态: fulfillment_status（null / partial / fulfilled）
  门店: location_id（POS 订单才有）
  行项目: line_items[].variant_id 可能为空（自定义商品 / 已删除商品）
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ShopifyRecord(BaseModel):
    """Shopify 远程记录基类：忽略未知字段"""
    model_config = ConfigDict(extra="ignore", from_attributes=True)


class LineItem(ShopifyRecord):
    """订单行项目；成本不在源数据中，由 CostResolver 另行解析"""
    id: Optional[int] = None
    name: Optional[str] = None
    title: Optional[str] = None
    variant_id: Optional[int] = None
    variant_title: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = Field(default=0, ge=0)
    price: Decimal = Decimal("0")

    @field_validator("price", mode="before")
    @classmethod
    def _blank_price(cls, v):
        return v if v not in (None, "") else "0"

    @property
    def product_name(self) -> str:
        return self.name or self.title or ""


class Order(ShopifyRecord):
    """订单快照，业务层只读"""
    id: int
    name: str = ""
    order_number: Optional[int] = None
    created_at: Optional[datetime] = None
    total_price: Decimal = Decimal("0")
    currency: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    location_id: Optional[int] = None
    line_items: list[LineItem] = []

    @field_validator("total_price", mode="before")
    @classmethod
    def _blank_total(cls, v):
        return v if v not in (None, "") else "0"

    @field_validator("line_items", mode="before")
    @classmethod
    def _null_items(cls, v):
        return v or []


class PurchaseOrder(ShopifyRecord):
    """采购单；total_price 缺失时金额按行项目 price × quantity 合计"""
    id: int
    name: str = ""
    created_at: Optional[datetime] = None
    total_price: Optional[Decimal] = None
    currency: Optional[str] = None
    line_items: list[LineItem] = []

    @field_validator("total_price", mode="before")
    @classmethod
    def _blank_total(cls, v):
        return None if v in (None, "") else v

    @field_validator("line_items", mode="before")
    @classmethod
    def _null_items(cls, v):
        return v or []

    @property
    def amount(self) -> Decimal:
        if self.total_price is not None:
            return self.total_price
        return sum((li.price * li.quantity for li in self.line_items), Decimal("0"))


class ProductImage(ShopifyRecord):
    id: Optional[int] = None
    src: Optional[str] = None


class Variant(ShopifyRecord):
    """商品规格（REST variants / products[].variants）"""
    id: int
    product_id: Optional[int] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    price: Decimal = Decimal("0")
    compare_at_price: Optional[Decimal] = None
    position: Optional[int] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    inventory_item_id: Optional[int] = None
    image_id: Optional[int] = None

    @field_validator("price", mode="before")
    @classmethod
    def _blank_price(cls, v):
        return v if v not in (None, "") else "0"

    @field_validator("compare_at_price", mode="before")
    @classmethod
    def _blank_compare(cls, v):
        return v if v not in ("",) else None


class Product(ShopifyRecord):
    id: int
    title: str = ""
    handle: str = ""
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[str] = None
    image: Optional[ProductImage] = None
    variants: list[Variant] = []

    @field_validator("variants", mode="before")
    @classmethod
    def _null_variants(cls, v):
        return v or []

    @property
    def image_url(self) -> Optional[str]:
        return self.image.src if self.image else None


class InventoryItem(ShopifyRecord):
    """承载成本的库存项；cost 为空表示商家未设置成本"""
    id: int
    sku: Optional[str] = None
    cost: Optional[Decimal] = None

    @field_validator("cost", mode="before")
    @classmethod
    def _blank_cost(cls, v):
        return v if v not in ("",) else None


class InventoryLevel(ShopifyRecord):
    inventory_item_id: int
    location_id: int
    available: Optional[int] = None


class Location(ShopifyRecord):
    id: int
    name: str = ""
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    active: bool = True

    @property
    def short_address(self) -> str:
        return f"{self.address1 or ''}, {self.city or ''}".strip()


class ShopSession(BaseModel):
    """店铺 ↔ access token 绑定（offline_<shop>）"""
    id: str
    shop: str
    access_token: str
    scope: Optional[str] = None
    state: Optional[str] = None
    is_online: bool = False
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @staticmethod
    def offline_id(shop: str) -> str:
        return f"offline_{shop}"
