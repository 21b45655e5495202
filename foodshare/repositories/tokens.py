"""一次性令牌兑换记录"""
from datetime import datetime, timezone

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.tables import UsedToken


class UsedTokenRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def consume(self, jti: str, user_id: str, token_type: str, expires_at: datetime) -> bool:
        """记录令牌已使用；若该 jti 已存在则返回 False"""
        async with self._session_factory() as session:
            session.add(UsedToken(jti=jti, user_id=user_id, token_type=token_type, expires_at=expires_at))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def release(self, jti: str) -> None:
        """删除使用记录，令牌重新可兑换"""
        async with self._session_factory() as session:
            await session.execute(delete(UsedToken).where(UsedToken.jti == jti))
            await session.commit()

    async def purge_expired(self, now: datetime | None = None) -> int:
        """清理已过期的记录，返回删除条数"""
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(delete(UsedToken).where(UsedToken.expires_at < now))
            await session.commit()
            return result.rowcount
