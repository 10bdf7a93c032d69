"""
基础 Schema 模块
"""
from typing import Any, Generic, TypeVar, Optional
from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseResponse(BaseModel, Generic[T]):
    """统一响应格式"""
    success: bool = True
    code: int = 200
    data: Optional[T] = None
    message: str = "操作成功"

    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseModel):
    """失败响应格式（异常处理器使用）"""
    success: bool = False
    code: int
    error: str
    details: Optional[Any] = None
