"""
shopify_sessions 表：店铺 offline session 的持久化。

业务层只依赖 SessionProvider 协议（get_session / store_session），
测试中用内存实现替换。
"""
from typing import Any, Optional, Protocol

from profit_dashboard.schemas.shopify import ShopSession


class SessionProvider(Protocol):
    async def get_session(self, shop: str) -> Optional[ShopSession]:
        ...

    async def store_session(self, session: ShopSession) -> None:
        ...


class DatabaseSessionProvider:
    """基于 asyncpg 的 session 存储，主键 offline_<shop>"""

    def __init__(self, conn: Any):
        self.conn = conn

    async def get_session(self, shop: str) -> Optional[ShopSession]:
        row = await self.conn.fetchrow(
            """
            SELECT id, shop, access_token, scope, state, is_online, expires_at
            FROM shopify_sessions
            WHERE id = $1
            """,
            ShopSession.offline_id(shop),
        )
        if row is None or not row["access_token"]:
            return None
        return ShopSession.model_validate(dict(row))

    async def store_session(self, session: ShopSession) -> None:
        """插入或更新 session；重新授权时覆盖旧 token"""
        await self.conn.execute(
            """
            INSERT INTO shopify_sessions (id, shop, access_token, scope, state, is_online, expires_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
            ON CONFLICT (id)
            DO UPDATE SET
              access_token = EXCLUDED.access_token,
              scope = EXCLUDED.scope,
              state = EXCLUDED.state,
              is_online = EXCLUDED.is_online,
              expires_at = EXCLUDED.expires_at,
              updated_at = NOW()
            """,
            session.id,
            session.shop,
            session.access_token,
            session.scope,
            session.state,
            session.is_online,
            session.expires_at,
        )
