"""
FastAPI 依赖：数据库连接、session、Shopify 客户端、各类 store。
测试通过 app.dependency_overrides 替换这里的函数。
"""
from typing import Any, AsyncIterator, Callable, Optional

from fastapi import Depends, Query

from profit_dashboard.core.config import Settings, get_settings, normalize_shop_domain
from profit_dashboard.core.exceptions import MissingParameterError, NotAuthenticatedError
from profit_dashboard.models import (
    DatabaseSessionProvider,
    ExpenseStore,
    PricingCacheStore,
    SessionProvider,
    get_connection,
)
from profit_dashboard.schemas.shopify import ShopSession
from profit_dashboard.services.dashboard_service import DashboardService
from profit_dashboard.services.shopify_service import ShopifyClient

ClientFactory = Callable[[ShopSession], ShopifyClient]


async def get_db() -> AsyncIterator[Any]:
    """每个请求一条 asyncpg 连接，请求结束关闭"""
    conn = await get_connection()
    try:
        yield conn
    finally:
        await conn.close()


def get_session_provider(conn: Any = Depends(get_db)) -> SessionProvider:
    return DatabaseSessionProvider(conn)


def get_pricing_store(conn: Any = Depends(get_db)) -> PricingCacheStore:
    return PricingCacheStore(conn)


def get_expense_store(conn: Any = Depends(get_db)) -> ExpenseStore:
    return ExpenseStore(conn)


def get_client_factory(settings: Settings = Depends(get_settings)) -> ClientFactory:
    def factory(session: ShopSession) -> ShopifyClient:
        return ShopifyClient.from_session(session, settings=settings)
    return factory


def require_shop(shop: Optional[str] = Query(None)) -> str:
    if not shop or not shop.strip():
        raise MissingParameterError("Missing shop parameter")
    return normalize_shop_domain(shop)


async def load_session(shop: str, provider: SessionProvider) -> ShopSession:
    """取店铺 offline session，没有或 token 为空时要求重新授权"""
    session = await provider.get_session(shop)
    if session is None or not session.access_token:
        raise NotAuthenticatedError("Not authenticated. Please install the app first.")
    return session


async def get_shop_session(
    shop: str = Depends(require_shop),
    provider: SessionProvider = Depends(get_session_provider),
) -> ShopSession:
    return await load_session(shop, provider)


def get_shopify_client(
    session: ShopSession = Depends(get_shop_session),
    factory: ClientFactory = Depends(get_client_factory),
) -> ShopifyClient:
    return factory(session)


def get_dashboard_service(
    client: ShopifyClient = Depends(get_shopify_client),
    pricing_store: PricingCacheStore = Depends(get_pricing_store),
    expense_store: ExpenseStore = Depends(get_expense_store),
    settings: Settings = Depends(get_settings),
) -> DashboardService:
    return DashboardService(client, pricing_store=pricing_store, expense_store=expense_store, settings=settings)
