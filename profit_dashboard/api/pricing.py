"""
价格缓存接口：列表、统计、全量同步、批量导入、单商品导入
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from profit_dashboard.api.deps import (
    ClientFactory,
    get_client_factory,
    get_pricing_store,
    get_session_provider,
    load_session,
    require_shop,
)
from profit_dashboard.core.config import Settings, get_settings, normalize_shop_domain
from profit_dashboard.core.exceptions import NotFoundError, RemoteFetchError, StoreError
from profit_dashboard.models import PricingCacheStore, SessionProvider
from profit_dashboard.schemas.base import BaseResponse
from profit_dashboard.services.sync_service import SyncReconciler

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


class SyncRequest(BaseModel):
    shop: str


class SyncProductRequest(BaseModel):
    shop: str
    product_id: int = Field(alias="productId")

    model_config = ConfigDict(populate_by_name=True)


@router.get("/list")
async def pricing_list(
    product_id: Optional[int] = Query(None, alias="productId"),
    store: PricingCacheStore = Depends(get_pricing_store),
):
    """不带 productId 返回全部商品；带 productId 返回该商品及其规格"""
    try:
        if product_id is None:
            products = await store.list_products()
            return BaseResponse[dict](data={"products": [p.model_dump(mode="json") for p in products]})
        product = await store.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        variants = await store.list_variants_by_product(product_id)
    except NotFoundError:
        raise
    except Exception as e:
        logger.exception("❌ [PRICING LIST] 查询失败")
        raise StoreError("Failed to fetch pricing data", details=str(e)) from e
    return BaseResponse[dict](data={
        "product": {
            **product.model_dump(mode="json"),
            "variants": [v.model_dump(mode="json") for v in variants],
        }
    })


@router.get("/stats")
async def pricing_stats(
    shop: str = Depends(require_shop),
    store: PricingCacheStore = Depends(get_pricing_store),
    provider: SessionProvider = Depends(get_session_provider),
    factory: ClientFactory = Depends(get_client_factory),
):
    """本地缓存统计 + Shopify 商品 / 规格数；Shopify 取不到时只在 error 字段里说明"""
    shopify_stats = {"total_products": 0, "total_variants": 0, "error": None}
    session = await provider.get_session(shop)
    if session and session.access_token:
        client = factory(session)
        try:
            shopify_stats["total_products"] = await client.count_products()
            products, _ = await client.list_products_page(fields="variants")
            shopify_stats["total_variants"] = sum(len(p.variants) for p in products)
        except Exception as e:
            logger.warning(f"[PRICING STATS] Shopify 统计失败: {e!r}")
            shopify_stats["error"] = "Not authenticated or API error"
    else:
        shopify_stats["error"] = "Not authenticated"

    try:
        stats = await store.get_stats()
    except Exception as e:
        logger.exception("❌ [PRICING STATS] 本地统计失败")
        raise StoreError("Failed to fetch pricing stats", details=str(e)) from e

    return BaseResponse[dict](data={
        "shopify": shopify_stats,
        "cache": stats.model_dump(mode="json"),
        "sync_status": {
            "products_matched": stats.synced_products,
            "variants_matched": stats.synced_variants,
            "pending_sync": stats.variants_needing_sync,
        },
    })


@router.post("/smart-sync")
async def smart_sync(
    body: SyncRequest,
    store: PricingCacheStore = Depends(get_pricing_store),
    provider: SessionProvider = Depends(get_session_provider),
    factory: ClientFactory = Depends(get_client_factory),
    settings: Settings = Depends(get_settings),
):
    """全量同步；单条失败只记在 error_details（最多 10 条）"""
    session = await load_session(normalize_shop_domain(body.shop), provider)
    reconciler = SyncReconciler(factory(session), store, settings=settings)
    try:
        stats = await reconciler.run()
    except StoreError:
        raise
    except Exception as e:
        logger.exception("❌ [SMART SYNC] 同步失败")
        raise StoreError("Failed to sync products", details=str(e)) from e
    return BaseResponse[dict](data={"stats": stats.summary()}, message="Smart sync completed successfully")


@router.post("/sync-all")
async def sync_all(
    body: SyncRequest,
    store: PricingCacheStore = Depends(get_pricing_store),
    provider: SessionProvider = Depends(get_session_provider),
    factory: ClientFactory = Depends(get_client_factory),
    settings: Settings = Depends(get_settings),
):
    """导入 Shopify 全部商品及规格到本地缓存（含智能同步只统计的新商品）"""
    session = await load_session(normalize_shop_domain(body.shop), provider)
    reconciler = SyncReconciler(factory(session), store, settings=settings)
    try:
        result = await reconciler.sync_all()
    except Exception as e:
        logger.exception("❌ [SYNC ALL] 导入失败")
        raise StoreError("Sync failed", details=str(e)) from e
    return BaseResponse[dict](data=result.summary(), message="Product import completed")


@router.post("/sync-product")
async def sync_product(
    body: SyncProductRequest,
    store: PricingCacheStore = Depends(get_pricing_store),
    provider: SessionProvider = Depends(get_session_provider),
    factory: ClientFactory = Depends(get_client_factory),
    settings: Settings = Depends(get_settings),
):
    session = await load_session(normalize_shop_domain(body.shop), provider)
    reconciler = SyncReconciler(factory(session), store, settings=settings)
    try:
        result = await reconciler.sync_product(body.product_id)
    except Exception as e:
        logger.exception(f"❌ [SYNC PRODUCT] 商品 {body.product_id} 同步失败")
        raise RemoteFetchError("Sync failed", details=str(e)) from e
    return BaseResponse[dict](data=result.model_dump(mode="json"))
