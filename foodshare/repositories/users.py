"""
用户数据访问层
"""
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..logging.config import get_structured_logger
from ..models.tables import User

logger = get_structured_logger(__name__)

_PROFILE_FIELDS = {"first_name", "last_name", "phone", "avatar"}


class DuplicateUserError(Exception):
    """邮箱或用户名违反唯一约束"""


class UserRepository:
    """用户仓储，每个操作使用独立的短会话"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_email_or_username(self, email: str, username: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(or_(User.email == email, User.username == username)).limit(1)
            )
            return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    async def create_user(self, **fields) -> User:
        """创建用户；唯一约束冲突时抛出 DuplicateUserError"""
        user = User(**fields)
        async with self._session_factory() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning("用户唯一约束冲突", extra={"username": fields.get("username")})
                raise DuplicateUserError(str(e.orig)) from e
        return user

    async def _update(self, user_id: str, **values) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(update(User).where(User.id == user_id).values(**values))
            await session.commit()
            return result.rowcount > 0

    async def update_password(self, user_id: str, password_hash: str) -> bool:
        return await self._update(user_id, password_hash=password_hash)

    async def update_verified(self, user_id: str, is_verified: bool = True) -> bool:
        return await self._update(user_id, is_verified=is_verified)

    async def update_active(self, user_id: str, is_active: bool) -> User | None:
        if not await self._update(user_id, is_active=is_active):
            return None
        return await self.find_by_id(user_id)

    async def update_profile(self, user_id: str, fields: dict) -> User | None:
        """更新个人资料，只允许修改资料类字段"""
        values = {k: v for k, v in fields.items() if k in _PROFILE_FIELDS}
        if values and not await self._update(user_id, **values):
            return None
        return await self.find_by_id(user_id)
