"""
数据库相关操作统一放在 models 目录。
"""
from profit_dashboard.models.connection import get_connection
from profit_dashboard.models.expenses import ExpenseStore
from profit_dashboard.models.pricing import PricingCacheStore
from profit_dashboard.models.sessions import DatabaseSessionProvider, SessionProvider

__all__ = [
    "get_connection",
    "ExpenseStore",
    "PricingCacheStore",
    "DatabaseSessionProvider",
    "SessionProvider",
]
