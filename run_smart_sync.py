"""
脚本：对指定店铺执行一次价格缓存全量同步（Shopify → products / product_variants）。
与 POST /api/pricing/smart-sync 相同逻辑，适合定时任务或大目录店铺在 Web 请求之外跑。

运行：python run_smart_sync.py --shop xxx.myshopify.com [--product-id ID | --all]
  --all 对应 POST /api/pricing/sync-all，把 Shopify 上全部商品导入本地缓存
依赖：.env 中配置 DATABASE_URL；店铺已完成授权（shopify_sessions 中有 offline session）；数据库已执行 schema.sql
"""
import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

load_dotenv(Path(__file__).resolve().parent / ".env")
sys.path.insert(0, str(Path(__file__).resolve().parent))


async def run_once(shop: str, product_id: int | None = None, import_all: bool = False) -> int:
    from profit_dashboard.core.config import get_settings, normalize_shop_domain
    from profit_dashboard.models import DatabaseSessionProvider, PricingCacheStore, get_connection
    from profit_dashboard.services.shopify_service import ShopifyClient
    from profit_dashboard.services.sync_service import SyncReconciler

    settings = get_settings()
    shop = normalize_shop_domain(shop)
    conn = await get_connection()
    try:
        session = await DatabaseSessionProvider(conn).get_session(shop)
        if session is None:
            logger.error(f"店铺 {shop} 没有 offline session，请先在看板完成授权")
            return 1
        client = ShopifyClient.from_session(session, settings=settings)
        reconciler = SyncReconciler(client, PricingCacheStore(conn), settings=settings)

        if product_id is not None:
            result = await reconciler.sync_product(product_id)
            logger.info(f"单商品同步完成: {result.model_dump()}")
            return 1 if result.errors else 0

        if import_all:
            result = await reconciler.sync_all()
            logger.info(f"批量导入结果: {result.summary()}")
            for err in result.errors:
                logger.warning(f"  {err}")
            return 1 if result.errors else 0

        stats = await reconciler.run()
        logger.info(f"同步结果: {stats.summary()}")
        for err in stats.errors:
            logger.warning(f"  {err}")
        return 1 if stats.errors else 0
    finally:
        await conn.close()


def parse_args():
    p = argparse.ArgumentParser(description="同步 Shopify 价格 / 成本到本地缓存表")
    p.add_argument("--shop", required=True, help="店铺域名，如 demo.myshopify.com 或 demo")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--product-id", type=int, default=None, help="只导入指定 Shopify 商品")
    group.add_argument("--all", dest="import_all", action="store_true", help="导入 Shopify 全部商品及规格")
    return p.parse_args()


if __name__ == "__main__":
    args = parse_args()
    sys.exit(asyncio.run(run_once(args.shop, product_id=args.product_id, import_all=args.import_all)))
