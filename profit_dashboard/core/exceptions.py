"""
业务异常。

接口层统一捕获 DashboardError 并转成 {"success": false, "error": ...}；
成本解析、全量同步中的单条远程失败不走这里，而是在服务内部降级。
"""
from typing import Any, Optional


class DashboardError(Exception):
    """看板业务异常基类"""
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class MissingParameterError(DashboardError):
    """缺少必填参数（shop、variantId 等）"""
    status_code = 400


class NotAuthenticatedError(DashboardError):
    """店铺没有可用的 offline session，需要重新走授权"""
    status_code = 401

    def __init__(self, message: str = "Not authenticated", details: Optional[Any] = None):
        super().__init__(message, details)


class NotFoundError(DashboardError):
    status_code = 404


class RemoteFetchError(DashboardError):
    """订单列表 / 门店列表这类顶层远程调用失败，整个请求失败"""
    status_code = 502


class StoreError(DashboardError):
    """本地数据库读写失败"""
    status_code = 500
