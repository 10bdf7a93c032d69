"""
Shopify OAuth 安装流程（authorization code，offline token）
"""
import secrets
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from loguru import logger

from profit_dashboard.api.deps import get_session_provider, require_shop
from profit_dashboard.core.config import Settings, get_settings, normalize_shop_domain
from profit_dashboard.core.exceptions import MissingParameterError
from profit_dashboard.models import SessionProvider
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.schemas.shopify import ShopSession
from profit_dashboard.services.shopify_service import exchange_code_for_session

router = APIRouter(prefix="/api/auth", tags=["auth"])

CodeExchanger = Callable[..., Awaitable[ShopSession]]


def get_code_exchanger() -> CodeExchanger:
    return exchange_code_for_session


@router.get("")
async def start_oauth(
    shop: str = Depends(require_shop),
    settings: Settings = Depends(get_settings),
):
    """跳转到 Shopify 授权页"""
    params = {
        "client_id": settings.SHOPIFY_API_KEY or "",
        "scope": settings.SHOPIFY_SCOPES,
        "redirect_uri": settings.oauth_redirect_uri,
        "state": secrets.token_urlsafe(16),
    }
    url = f"{settings.shopify_oauth_authorize_url(shop)}?{urlencode(params)}"
    logger.info(f"🔐 [AUTH] 开始授权: shop={shop}")
    return RedirectResponse(url)


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    shop: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    host: Optional[str] = Query(None),
    redirect: Optional[str] = Query(None),
    provider: SessionProvider = Depends(get_session_provider),
    exchanger: CodeExchanger = Depends(get_code_exchanger),
    settings: Settings = Depends(get_settings),
):
    """code 换 token，保存 offline_<shop> session 后跳回看板"""
    if not code or not shop:
        raise MissingParameterError("Missing required parameters")
    shop = normalize_shop_domain(shop)
    session = await exchanger(shop, code, state=state, settings=settings)
    await provider.store_session(session)

    redirect_url = redirect or f"/?shop={shop}"
    if "shop=" not in redirect_url:
        redirect_url += f"{'&' if '?' in redirect_url else '?'}shop={shop}"
    if host:
        redirect_url += f"&host={host}"
    logger.info(f"🔐 [AUTH] 授权完成，跳转: {redirect_url}")
    return RedirectResponse(redirect_url)


@router.get("/check")
async def check_auth(
    shop: str = Depends(require_shop),
    provider: SessionProvider = Depends(get_session_provider),
):
    session = await provider.get_session(shop)
    authenticated = bool(session and session.access_token)
    return BaseResponse[dict](data={
        "authenticated": authenticated,
        "shop": shop,
        "scope": session.scope if authenticated else None,
    })
