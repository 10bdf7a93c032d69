"""
利润、费用、成本解析相关 Schema
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExpenseType(str, Enum):
    ONE_OFF = "one-off"
    RECURRING = "recurring"


class Expense(BaseModel):
    """expenses 表一行；location_name 为自由文本，与门店名按字符串匹配"""
    id: Optional[int] = None
    shop: str
    location_name: str
    amount: Decimal = Field(ge=0)
    description: str = ""
    expense_date: date
    expense_type: ExpenseType = ExpenseType.ONE_OFF
    category: str = "general"
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExpenseCreate(BaseModel):
    """新建费用请求体"""
    shop: str
    location_name: str
    amount: Decimal = Field(gt=0)
    description: str
    expense_date: date
    expense_type: ExpenseType
    category: Optional[str] = None

    @field_validator("shop", "location_name", "description")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class CostSource(str, Enum):
    CACHE = "cache"
    REMOTE = "remote"
    UNRESOLVED = "unresolved"


class ResolvedCost(BaseModel):
    """
    单个规格的单位成本。
    cost_set=False 表示成本未能取得（远程失败 / 商家未填成本），cost 按 0 计，
    前端据此显示 "NOT SET"，不能当作免费商品。
    """
    variant_id: int
    cost: Decimal = Decimal("0")
    source: CostSource = CostSource.UNRESOLVED
    cost_set: bool = False
    error: Optional[str] = None


class LocationProfit(BaseModel):
    location_id: Optional[int] = None
    location_name: str
    orders_count: int = 0
    revenue: Decimal = Decimal("0")
    cost_of_goods: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")


class ProfitSummary(BaseModel):
    """利润汇总：revenue → cogs → gross → expenses → net"""
    start_date: date
    end_date: date
    currency: str
    revenue: Decimal = Decimal("0")
    cost_of_goods: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")
    orders_count: int = 0
    expenses_count: int = 0
    unresolved_variant_ids: list[int] = []
    locations: Optional[list[LocationProfit]] = None


class OrderLineCost(BaseModel):
    name: str
    variant_id: Optional[int] = None
    variant_title: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    price: Decimal
    unit_cost: Decimal
    cost_set: bool


class OrderCostRow(BaseModel):
    """订单列表一行（带成本）"""
    id: int
    order_number: str
    created_at: Optional[datetime] = None
    total_price: Decimal
    total_cost: Decimal
    currency: Optional[str] = None
    payment_status: str
    fulfillment_status: str
    item_count: int
    location_id: Optional[int] = None
    location_name: str
    line_items: list[OrderLineCost] = []
