"""
采购单接口
"""
from fastapi import APIRouter, Depends, Query

from profit_dashboard.api.deps import get_dashboard_service
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/purchase-orders", tags=["purchase-orders"])


@router.get("/analytics")
async def purchase_orders_analytics(
    date_range: str = Query("thismonth", alias="dateRange"),
    service: DashboardService = Depends(get_dashboard_service),
):
    """时间范围内采购单数量与总金额"""
    return BaseResponse[dict](data=await service.purchase_order_analytics(date_range))
