"""
门店与库存估值接口
"""
from fastapi import APIRouter, Depends

from profit_dashboard.api.deps import get_dashboard_service
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.services.dashboard_service import DashboardService

router = APIRouter(tags=["locations"])


@router.get("/api/locations")
async def list_locations(service: DashboardService = Depends(get_dashboard_service)):
    """启用中的门店"""
    return BaseResponse[dict](data={"locations": await service.locations()})


@router.get("/api/inventory/value")
async def get_inventory_value(service: DashboardService = Depends(get_dashboard_service)):
    return BaseResponse[dict](data=await service.inventory_value())
