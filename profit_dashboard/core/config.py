"""
配置管理模块
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

# 获取项目根目录
PROJECT_ROOT = Path(__file__).parent.parent.parent


def normalize_shop_domain(shop: str) -> str:
    """店铺域名规范化：去掉协议与斜杠，裸店铺名补全为 xxx.myshopify.com"""
    value = (shop or "").strip()
    for prefix in ("https://", "http://"):
        if value.lower().startswith(prefix):
            value = value[len(prefix):]
    value = value.strip().strip("/")
    if value and ".myshopify.com" not in value:
        value = f"{value}.myshopify.com"
    return value


class Settings(BaseSettings):
    """应用配置"""

    # 环境
    ENV: str = "dev"

    # 应用配置
    APP_NAME: str = "Profit Dashboard"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    # OAuth 回调地址的前缀，如 https://dashboard.example.com
    APP_URL: str = "http://localhost:8000"

    # 数据库配置（可选，测试时不需要）
    DATABASE_URL: Optional[str] = None

    # Shopify OAuth 应用（authorization code 流程）
    SHOPIFY_API_KEY: Optional[str] = None
    SHOPIFY_API_SECRET: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-10"
    SHOPIFY_SCOPES: str = (
        "read_orders,read_locations,read_products,read_inventory,"
        "read_price_rules,read_discounts"
    )

    # 订单无币种时的兜底币种
    DEFAULT_CURRENCY: str = "NPR"

    # HTTP 客户端
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_RETRY_MIN_SECONDS: float = 0.5
    HTTP_RETRY_MAX_SECONDS: float = 8.0

    # 成本解析：远程批量大小（Shopify ids 参数上限内）与并发批数
    COST_BATCH_SIZE: int = 50
    COST_FETCH_CONCURRENCY: int = 2

    # 全量同步节流（毫秒）
    SYNC_PAGE_DELAY_MS: int = 300
    SYNC_VARIANT_DELAY_MS: int = 200
    SYNC_PRODUCT_DELAY_MS: int = 100
    # 全量同步允许的最长执行时间（秒）
    SYNC_TIMEOUT_SECONDS: int = 300

    # thisweek 的一周起始日：sunday | monday
    WEEK_START: str = "sunday"

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def shopify_api_url(self, shop: str) -> str:
        """Shopify Admin REST API 基础 URL"""
        return f"https://{normalize_shop_domain(shop)}/admin/api/{self.SHOPIFY_API_VERSION}"

    def shopify_oauth_authorize_url(self, shop: str) -> str:
        """OAuth 授权页地址"""
        return f"https://{normalize_shop_domain(shop)}/admin/oauth/authorize"

    def shopify_oauth_token_url(self, shop: str) -> str:
        """OAuth access_token 端点（authorization code 换 token）"""
        return f"https://{normalize_shop_domain(shop)}/admin/oauth/access_token"

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.APP_URL.rstrip('/')}/api/auth/callback"

    @property
    def database_dsn(self) -> Optional[str]:
        """asyncpg 只接受 postgresql:// 前缀"""
        if not self.DATABASE_URL:
            return None
        return self.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://", 1)


@lru_cache
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()
