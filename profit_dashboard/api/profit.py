"""
利润接口
"""
from fastapi import APIRouter, Depends, Query

from profit_dashboard.api.deps import get_dashboard_service
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/profit", tags=["profit"])


@router.get("")
async def get_profit(
    date_range: str = Query("today", alias="dateRange"),
    by_location: bool = Query(False, alias="byLocation"),
    service: DashboardService = Depends(get_dashboard_service),
):
    """
    revenue / cost_of_goods / gross_profit / expenses / net_profit，金额为两位小数字符串。
    unresolved_variant_ids 列出成本未设置（按 0 计）的规格。
    """
    data = await service.profit(date_range, by_location=by_location)
    return BaseResponse[dict](data=data)
