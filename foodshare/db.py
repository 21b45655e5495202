"""数据库引擎、会话工厂与初始化。"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy ORM 基类。"""


def build_engine(settings: Settings) -> AsyncEngine:
    """根据配置创建异步引擎。"""
    return create_async_engine(settings.database_url, echo=settings.db_echo, pool_pre_ping=True)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db(engine: AsyncEngine) -> None:
    """创建全部数据表（已存在的表保持不变）。"""
    # 确保模型已注册到 metadata
    from .models import tables  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception:
        logger.exception("数据库初始化失败")
        raise
    logger.info("数据库表已就绪")
