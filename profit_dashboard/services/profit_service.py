"""
利润汇总（纯计算，不做任何 IO）。

  revenue        = Σ order.total_price
  cost_of_goods  = Σ 行项目 单位成本 × 数量（取不到成本的按 0）
  gross_profit   = revenue - cost_of_goods
  expenses       = Σ expense.amount，expense_date ∈ [start_date, end_date]（两端都含）
  net_profit     = gross_profit - expenses

门店拆分：订单按 location_id 分组；费用按 location_name 与门店名精确匹配归属，
匹配不上的费用不进入任何门店，但仍计入总额。
"""
from collections import OrderedDict
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional, Union

from profit_dashboard.schemas.profit import (
    Expense,
    LocationProfit,
    OrderCostRow,
    OrderLineCost,
    ProfitSummary,
    ResolvedCost,
)
from profit_dashboard.schemas.shopify import Location, Order

ZERO = Decimal("0")
CENT = Decimal("0.01")
UNKNOWN_LOCATION = "Unknown"

CostMap = Mapping[int, Union[ResolvedCost, Decimal]]


def to_money(value: Union[Decimal, int, float, str, None]) -> str:
    """金额统一保留两位小数输出"""
    return str(Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP))


def cost_of(costs: CostMap, variant_id: Optional[int]) -> Decimal:
    """规格单位成本；没有规格 id 或没解析到的都按 0"""
    if variant_id is None:
        return ZERO
    entry = costs.get(variant_id)
    if entry is None:
        return ZERO
    if isinstance(entry, ResolvedCost):
        return entry.cost
    return Decimal(entry)


def _is_cost_set(costs: CostMap, variant_id: Optional[int]) -> bool:
    entry = costs.get(variant_id) if variant_id is not None else None
    if entry is None:
        return False
    return entry.cost_set if isinstance(entry, ResolvedCost) else True


def order_revenue(orders: Iterable[Order]) -> Decimal:
    return sum((o.total_price for o in orders), ZERO)


def order_cogs(order: Order, costs: CostMap) -> Decimal:
    return sum((cost_of(costs, li.variant_id) * li.quantity for li in order.line_items), ZERO)


def expenses_in_window(expenses: Iterable[Expense], start_date: date, end_date: date) -> list[Expense]:
    return [e for e in expenses if start_date <= e.expense_date <= end_date]


def collect_variant_ids(orders: Iterable[Order]) -> set[int]:
    """订单中出现过的全部规格 id（自定义商品没有 variant_id，不参与成本解析）"""
    return {li.variant_id for o in orders for li in o.line_items if li.variant_id is not None}


def compute_profit(
    orders: list[Order],
    costs: CostMap,
    expenses: Iterable[Expense],
    start_date: date,
    end_date: date,
    currency: str,
    locations: Optional[list[Location]] = None,
) -> ProfitSummary:
    """
    汇总利润。传入 locations 时额外给出按门店的拆分。
    """
    window_expenses = expenses_in_window(expenses, start_date, end_date)
    revenue = order_revenue(orders)
    cogs = sum((order_cogs(o, costs) for o in orders), ZERO)
    gross = revenue - cogs
    total_expenses = sum((e.amount for e in window_expenses), ZERO)

    unresolved = sorted(
        vid for vid in collect_variant_ids(orders) if not _is_cost_set(costs, vid)
    )

    summary = ProfitSummary(
        start_date=start_date,
        end_date=end_date,
        currency=currency,
        revenue=revenue,
        cost_of_goods=cogs,
        gross_profit=gross,
        expenses=total_expenses,
        net_profit=gross - total_expenses,
        orders_count=len(orders),
        expenses_count=len(window_expenses),
        unresolved_variant_ids=unresolved,
    )
    if locations is not None:
        summary.locations = location_breakdown(orders, costs, window_expenses, locations)
    return summary


def location_breakdown(
    orders: list[Order],
    costs: CostMap,
    expenses: list[Expense],
    locations: list[Location],
) -> list[LocationProfit]:
    """
    按门店拆分。已知门店即使没有订单也会出现；
    订单的 location_id 不在门店列表中（含线上订单 location_id 为空）归到 Unknown。
    """
    names = {loc.id: loc.name for loc in locations}
    groups: "OrderedDict[Optional[int], LocationProfit]" = OrderedDict(
        (loc.id, LocationProfit(location_id=loc.id, location_name=loc.name)) for loc in locations
    )

    for order in orders:
        key = order.location_id if order.location_id in names else None
        group = groups.get(key)
        if group is None:
            group = LocationProfit(location_id=None, location_name=UNKNOWN_LOCATION)
            groups[key] = group
        group.orders_count += 1
        group.revenue += order.total_price
        group.cost_of_goods += order_cogs(order, costs)

    by_name = {g.location_name: g for k, g in groups.items() if k is not None}
    for expense in expenses:
        group = by_name.get(expense.location_name)
        if group is not None:
            group.expenses += expense.amount

    for group in groups.values():
        group.gross_profit = group.revenue - group.cost_of_goods
        group.net_profit = group.gross_profit - group.expenses
    return list(groups.values())


def order_cost_rows(
    orders: list[Order],
    costs: CostMap,
    locations: list[Location],
) -> list[OrderCostRow]:
    """订单列表：每单的总成本、件数、门店名，以及逐行成本（未设置成本的行 cost_set=False）"""
    names = {loc.id: loc.name for loc in locations}
    rows: list[OrderCostRow] = []
    for order in orders:
        lines = [
            OrderLineCost(
                name=li.product_name,
                variant_id=li.variant_id,
                variant_title=li.variant_title,
                sku=li.sku,
                quantity=li.quantity,
                price=li.price,
                unit_cost=cost_of(costs, li.variant_id),
                cost_set=_is_cost_set(costs, li.variant_id),
            )
            for li in order.line_items
        ]
        rows.append(OrderCostRow(
            id=order.id,
            order_number=order.name,
            created_at=order.created_at,
            total_price=order.total_price,
            total_cost=order_cogs(order, costs),
            currency=order.currency,
            payment_status=order.financial_status or "pending",
            fulfillment_status=order.fulfillment_status or "unfulfilled",
            item_count=sum(li.quantity for li in order.line_items),
            location_id=order.location_id,
            location_name=names.get(order.location_id, UNKNOWN_LOCATION),
            line_items=lines,
        ))
    return rows


def profit_payload(summary: ProfitSummary) -> dict:
    """接口输出：金额转两位小数字符串"""
    money_fields = ("revenue", "cost_of_goods", "gross_profit", "expenses", "net_profit")
    data = summary.model_dump(mode="json")
    for key in money_fields:
        data[key] = to_money(getattr(summary, key))
    if summary.locations is not None:
        data["locations"] = [
            {**loc.model_dump(mode="json"), **{k: to_money(getattr(loc, k)) for k in money_fields}}
            for loc in summary.locations
        ]
    return data
