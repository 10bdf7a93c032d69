"""
费用管理接口
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger

from profit_dashboard.api.deps import get_expense_store, require_shop
from profit_dashboard.core.config import normalize_shop_domain
from profit_dashboard.core.exceptions import MissingParameterError, NotFoundError, StoreError
from profit_dashboard.models import ExpenseStore
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.schemas.profit import ExpenseCreate

router = APIRouter(prefix="/api/expenses", tags=["expenses"])


@router.get("")
async def list_expenses(
    shop: str = Depends(require_shop),
    store: ExpenseStore = Depends(get_expense_store),
):
    try:
        expenses = await store.list_expenses(shop)
    except Exception as e:
        logger.exception("获取费用失败")
        raise StoreError("Failed to fetch expenses", details=str(e)) from e
    return BaseResponse[dict](data={"expenses": [e.model_dump(mode="json") for e in expenses]})


@router.post("")
async def create_expense(
    payload: ExpenseCreate,
    store: ExpenseStore = Depends(get_expense_store),
):
    payload.shop = normalize_shop_domain(payload.shop)
    try:
        expense = await store.create_expense(payload)
    except Exception as e:
        logger.exception("新建费用失败")
        raise StoreError("Failed to create expense", details=str(e)) from e
    logger.info(f"新建费用: shop={expense.shop} {expense.location_name} {expense.amount}")
    return BaseResponse[dict](data={"expense": expense.model_dump(mode="json")})


@router.delete("")
async def delete_expense(
    expense_id: Optional[int] = Query(None, alias="id"),
    store: ExpenseStore = Depends(get_expense_store),
):
    if expense_id is None:
        raise MissingParameterError("Missing expense ID")
    try:
        deleted = await store.delete_expense(expense_id)
    except Exception as e:
        logger.exception("删除费用失败")
        raise StoreError("Failed to delete expense", details=str(e)) from e
    if not deleted:
        raise NotFoundError(f"Expense {expense_id} not found")
    return BaseResponse[dict](data={"id": expense_id}, message="Expense deleted")
