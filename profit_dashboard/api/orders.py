"""
订单相关接口：统计、分析、带成本的订单列表、单规格成本
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from profit_dashboard.api.deps import get_dashboard_service
from profit_dashboard.core.exceptions import MissingParameterError
from profit_dashboard.date_ranges import resolve_date_range
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.services.dashboard_service import DashboardService
from profit_dashboard.services.profit_service import order_revenue, to_money

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("/today")
async def orders_today(service: DashboardService = Depends(get_dashboard_service)):
    """今日订单数"""
    start, _ = resolve_date_range("today")
    orders = await service.fetch_orders(start)
    return BaseResponse[dict](data={
        "count": len(orders),
        "revenue": to_money(order_revenue(orders)),
    })


@router.get("/stats")
async def orders_stats(service: DashboardService = Depends(get_dashboard_service)):
    return BaseResponse[dict](data=await service.order_stats())


@router.get("/analytics")
async def orders_analytics(
    date_range: str = Query("today", alias="dateRange"),
    store: str = Query("all"),
    service: DashboardService = Depends(get_dashboard_service),
):
    return BaseResponse[dict](data=await service.order_analytics(date_range, store_filter=store))


@router.get("/list")
async def orders_list(
    location: str = Query("all"),
    service: DashboardService = Depends(get_dashboard_service),
):
    """最近订单及成本；cost_set=false 的行在页面上显示 NOT SET"""
    return BaseResponse[dict](data=await service.orders_list(location=location))


@router.get("/variant-cost")
async def variant_cost(
    variant_id: Optional[int] = Query(None, alias="variantId"),
    service: DashboardService = Depends(get_dashboard_service),
):
    """单规格成本；所有方法都失败时仍返回 success，cost=0、method=failed"""
    if variant_id is None:
        raise MissingParameterError("Missing shop or variantId parameter")
    return BaseResponse[dict](data=await service.variant_cost(variant_id))
