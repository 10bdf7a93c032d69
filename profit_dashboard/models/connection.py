"""
数据库连接（asyncpg），供接口请求及离线同步脚本使用。
"""
from typing import Any

from profit_dashboard.core.config import get_settings
from profit_dashboard.core.exceptions import StoreError


async def get_connection() -> Any:
    """
    获取 asyncpg 连接。
    使用前需确保 DATABASE_URL 已配置（.env 或环境变量）。
    """
    import asyncpg

    settings = get_settings()
    dsn = settings.database_dsn
    if not dsn:
        raise StoreError("未设置 DATABASE_URL")
    return await asyncpg.connect(dsn)
