"""
Shopify 服务层 - 使用 Admin REST API
参考: https://shopify.dev/docs/api/admin-rest
分页: https://shopify.dev/docs/api/usage/pagination-rest （Link 头 + page_info）
OAuth: https://shopify.dev/docs/apps/build/authentication-authorization/access-tokens/authorization-code-grant
"""
from decimal import Decimal
from typing import Any, Iterable, Optional

import httpx
from loguru import logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from profit_dashboard.core.config import Settings, get_settings, normalize_shop_domain
from profit_dashboard.core.exceptions import NotAuthenticatedError
from profit_dashboard.schemas.shopify import (
    InventoryItem,
    InventoryLevel,
    Location,
    Order,
    Product,
    PurchaseOrder,
    ShopSession,
    Variant,
)

# REST 单页上限
PAGE_LIMIT = 250
# ids= 批量查询上限
IDS_LIMIT = 50


def _is_retryable(exc: BaseException) -> bool:
    """网络错误、429 限流和 5xx 可以重试；其余 4xx 直接抛出"""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Shopify 请求第 {retry_state.attempt_number} 次失败，准备重试: {exc!r}")


def _next_page_info(response: httpx.Response) -> Optional[str]:
    """从 Link 头取下一页的 page_info，没有下一页返回 None"""
    next_link = response.links.get("next")
    if not next_link or not next_link.get("url"):
        return None
    return httpx.URL(next_link["url"]).params.get("page_info")


def _chunks(ids: list[int], size: int) -> Iterable[list[int]]:
    for i in range(0, len(ids), size):
        yield ids[i:i + size]


class ShopifyClient:
    """Shopify Admin REST 客户端（单个店铺 + offline token）"""

    def __init__(
        self,
        shop: str,
        access_token: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not access_token:
            raise NotAuthenticatedError(f"店铺 {shop} 缺少 access token")
        self.settings = settings or get_settings()
        self.shop = normalize_shop_domain(shop)
        self.access_token = access_token
        self.base_url = self.settings.shopify_api_url(self.shop)
        # 测试时注入 httpx.MockTransport
        self._transport = transport

    @classmethod
    def from_session(
        cls,
        session: ShopSession,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ShopifyClient":
        return cls(session.shop, session.access_token, settings=settings, transport=transport)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        发起 REST 请求，瞬时错误按指数退避重试（最多 HTTP_MAX_RETRIES 次）。
        GET https://{shop}/admin/api/{version}/{path}
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }
        logger.debug(f"请求 Shopify REST: {method} {url} params={params}")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.HTTP_MAX_RETRIES)),
            wait=wait_exponential(
                min=self.settings.HTTP_RETRY_MIN_SECONDS,
                max=self.settings.HTTP_RETRY_MAX_SECONDS,
            ),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                async with self._client() as client:
                    response = await client.request(method, url, headers=headers, params=params)
                    try:
                        response.raise_for_status()
                    except httpx.HTTPStatusError as e:
                        logger.error(
                            f"Shopify REST 请求失败: {e.response.status_code} - {e.response.text[:500]}"
                        )
                        raise
                    return response
        raise RuntimeError("unreachable")

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict:
        response = await self._request("GET", path, params)
        return response.json()

    async def _get_all_pages(self, path: str, key: str, params: dict[str, Any]) -> list[dict]:
        """按 Link 头翻页直到最后一页"""
        items: list[dict] = []
        page_params = dict(params)
        while True:
            response = await self._request("GET", path, page_params)
            items.extend(response.json().get(key) or [])
            page_info = _next_page_info(response)
            if not page_info:
                return items
            # 带 page_info 时 Shopify 只允许 limit / fields
            page_params = {"limit": params.get("limit", PAGE_LIMIT), "page_info": page_info}
            if "fields" in params:
                page_params["fields"] = params["fields"]

    # ---------- 订单 ----------

    async def list_orders(
        self,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        status: str = "any",
        fields: Optional[str] = None,
    ) -> list[Order]:
        """获取时间窗口内的全部订单（自动翻页）"""
        params: dict[str, Any] = {"status": status, "limit": PAGE_LIMIT}
        if created_at_min:
            params["created_at_min"] = created_at_min
        if created_at_max:
            params["created_at_max"] = created_at_max
        if fields:
            params["fields"] = fields
        logger.info(f"开始获取 Shopify 订单: shop={self.shop}, {created_at_min} ~ {created_at_max or 'now'}")
        raw = await self._get_all_pages("orders.json", "orders", params)
        orders = [Order.model_validate(o) for o in raw]
        logger.info(f"成功获取 {len(orders)} 条订单")
        return orders

    async def list_recent_orders(self, limit: int = PAGE_LIMIT, fields: Optional[str] = None) -> list[Order]:
        """最近的订单（单页，不翻页）"""
        params: dict[str, Any] = {"status": "any", "limit": min(limit, PAGE_LIMIT)}
        if fields:
            params["fields"] = fields
        data = await self._get("orders.json", params)
        return [Order.model_validate(o) for o in data.get("orders") or []]

    async def list_purchase_orders(
        self,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        status: str = "any",
    ) -> list[PurchaseOrder]:
        """时间窗口内的采购单（自动翻页）"""
        params: dict[str, Any] = {"status": status, "limit": PAGE_LIMIT}
        if created_at_min:
            params["created_at_min"] = created_at_min
        if created_at_max:
            params["created_at_max"] = created_at_max
        raw = await self._get_all_pages("purchase_orders.json", "purchase_orders", params)
        return [PurchaseOrder.model_validate(p) for p in raw]

    # ---------- 商品 / 规格 ----------

    async def list_products_page(
        self,
        page_info: Optional[str] = None,
        limit: int = PAGE_LIMIT,
        fields: Optional[str] = None,
    ) -> tuple[list[Product], Optional[str]]:
        """取一页商品，返回 (商品列表, 下一页 page_info)"""
        params: dict[str, Any] = {"limit": limit}
        if page_info:
            params["page_info"] = page_info
        if fields:
            params["fields"] = fields
        response = await self._request("GET", "products.json", params)
        products = [Product.model_validate(p) for p in response.json().get("products") or []]
        return products, _next_page_info(response)

    async def list_all_products(self, fields: Optional[str] = None) -> list[Product]:
        params: dict[str, Any] = {"limit": PAGE_LIMIT}
        if fields:
            params["fields"] = fields
        raw = await self._get_all_pages("products.json", "products", params)
        return [Product.model_validate(p) for p in raw]

    async def count_products(self) -> int:
        data = await self._get("products/count.json")
        return int(data.get("count") or 0)

    async def get_product(self, product_id: int) -> Product:
        data = await self._get(f"products/{product_id}.json")
        return Product.model_validate(data["product"])

    async def get_variant(self, variant_id: int) -> Variant:
        data = await self._get(f"variants/{variant_id}.json")
        return Variant.model_validate(data["variant"])

    async def get_variants(self, variant_ids: list[int]) -> list[Variant]:
        """批量取规格（每批最多 IDS_LIMIT 个）"""
        variants: list[Variant] = []
        for batch in _chunks(list(variant_ids), IDS_LIMIT):
            data = await self._get("variants.json", {"ids": ",".join(str(i) for i in batch)})
            variants.extend(Variant.model_validate(v) for v in data.get("variants") or [])
        return variants

    # ---------- 库存项 / 库存 ----------

    async def get_inventory_item(self, inventory_item_id: int) -> InventoryItem:
        data = await self._get(f"inventory_items/{inventory_item_id}.json")
        return InventoryItem.model_validate(data["inventory_item"])

    async def get_inventory_item_cost(self, inventory_item_id: int) -> Optional[Decimal]:
        """库存项成本；商家未填成本时返回 None"""
        item = await self.get_inventory_item(inventory_item_id)
        return item.cost

    async def get_inventory_items(self, inventory_item_ids: list[int]) -> list[InventoryItem]:
        items: list[InventoryItem] = []
        for batch in _chunks(list(inventory_item_ids), IDS_LIMIT):
            data = await self._get("inventory_items.json", {"ids": ",".join(str(i) for i in batch)})
            items.extend(InventoryItem.model_validate(i) for i in data.get("inventory_items") or [])
        return items

    async def list_inventory_levels(
        self,
        inventory_item_ids: list[int],
        location_ids: list[int],
    ) -> list[InventoryLevel]:
        levels: list[InventoryLevel] = []
        for batch in _chunks(list(inventory_item_ids), IDS_LIMIT):
            params = {
                "inventory_item_ids": ",".join(str(i) for i in batch),
                "location_ids": ",".join(str(i) for i in location_ids),
                "limit": PAGE_LIMIT,
            }
            raw = await self._get_all_pages("inventory_levels.json", "inventory_levels", params)
            levels.extend(InventoryLevel.model_validate(lv) for lv in raw)
        return levels

    # ---------- 门店 ----------

    async def list_locations(self) -> list[Location]:
        data = await self._get("locations.json")
        return [Location.model_validate(loc) for loc in data.get("locations") or []]


async def exchange_code_for_session(
    shop: str,
    code: str,
    state: Optional[str] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ShopSession:
    """
    OAuth 回调：用 authorization code 换取 offline access_token。
    POST https://{shop}/admin/oauth/access_token
    """
    settings = settings or get_settings()
    shop = normalize_shop_domain(shop)
    payload = {
        "client_id": settings.SHOPIFY_API_KEY,
        "client_secret": settings.SHOPIFY_API_SECRET,
        "code": code,
    }
    logger.info(f"使用 authorization code 换取 access_token: shop={shop}")
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport) as client:
        response = await client.post(settings.shopify_oauth_token_url(shop), json=payload)
        response.raise_for_status()
        body = response.json()
    token = body.get("access_token")
    if not token:
        raise NotAuthenticatedError("未获取到 access_token", details=body)
    logger.info(f"access_token 获取成功: shop={shop}, scope={body.get('scope')}")
    return ShopSession(
        id=ShopSession.offline_id(shop),
        shop=shop,
        access_token=token,
        scope=body.get("scope"),
        state=state or "",
        is_online=False,
    )
