"""
expenses 表相关数据库操作。
"""
from datetime import date
from typing import Any, Optional

from profit_dashboard.schemas.profit import Expense, ExpenseCreate

_EXPENSE_COLUMNS = (
    "id, shop, location_name, amount, description, expense_date, expense_type, category, created_at"
)


class ExpenseStore:
    """费用表读写；conn 为 asyncpg 连接"""

    def __init__(self, conn: Any):
        self.conn = conn

    async def list_expenses(
        self,
        shop: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        """
        按店铺查询费用，按 expense_date 倒序。
        date_from / date_to 都包含在内（按自然日比较）。
        """
        rows = await self.conn.fetch(
            f"""
            SELECT {_EXPENSE_COLUMNS}
            FROM expenses
            WHERE shop = $1
              AND ($2::date IS NULL OR expense_date >= $2)
              AND ($3::date IS NULL OR expense_date <= $3)
            ORDER BY expense_date DESC, id DESC
            """,
            shop,
            date_from,
            date_to,
        )
        return [Expense.model_validate(dict(r)) for r in rows]

    async def create_expense(self, payload: ExpenseCreate) -> Expense:
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO expenses (shop, location_name, amount, description, expense_date, expense_type, category)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {_EXPENSE_COLUMNS}
            """,
            payload.shop,
            payload.location_name,
            payload.amount,
            payload.description,
            payload.expense_date,
            payload.expense_type.value,
            payload.category or "general",
        )
        return Expense.model_validate(dict(row))

    async def delete_expense(self, expense_id: int) -> bool:
        """删除费用，返回是否真的删掉了一行"""
        status = await self.conn.execute("DELETE FROM expenses WHERE id = $1", expense_id)
        # asyncpg 返回形如 "DELETE 1"
        return status.rsplit(" ", 1)[-1] != "0"
