"""
数据库初始化脚本：建表并创建管理员账户（可重复执行）

使用方法:
    python -m foodshare.seed --password <管理员密码>
    SEED_ADMIN_PASSWORD=... python -m foodshare.seed
"""
import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv

from .config import get_settings
from .db import build_engine, build_session_factory, init_db
from .logging.config import StructuredLogger, get_structured_logger
from .models.tables import UserRole
from .repositories.users import DuplicateUserError, UserRepository
from .security.passwords import PasswordHasher

logger = get_structured_logger("foodshare.seed")

ADMIN_EMAIL = "admin@feest.com"
ADMIN_USERNAME = "admin"


async def seed(password: str) -> bool:
    """创建管理员账户；已存在时返回 False"""
    settings = get_settings()
    engine = build_engine(settings)
    try:
        await init_db(engine)
        users = UserRepository(build_session_factory(engine))
        if await users.find_by_email_or_username(ADMIN_EMAIL, ADMIN_USERNAME):
            logger.info("管理员账户已存在，跳过")
            return False

        hasher = PasswordHasher(settings.bcrypt_rounds)
        try:
            await users.create_user(
                email=ADMIN_EMAIL,
                username=ADMIN_USERNAME,
                password_hash=await hasher.hash(password),
                first_name="Admin",
                last_name="User",
                role=UserRole.ADMIN,
                is_verified=True,
                is_active=True,
            )
        except DuplicateUserError:
            logger.info("管理员账户已存在，跳过")
            return False
        logger.info("管理员账户已创建", extra={"email": ADMIN_EMAIL})
        return True
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="初始化 Feest 数据库")
    parser.add_argument(
        "--password",
        default=os.getenv("SEED_ADMIN_PASSWORD"),
        help="管理员密码（默认读取 SEED_ADMIN_PASSWORD）",
    )
    args = parser.parse_args(argv)

    if not args.password or len(args.password) < 6:
        parser.error("管理员密码至少 6 位，请通过 --password 或 SEED_ADMIN_PASSWORD 提供")

    StructuredLogger.setup_logging(enable_json=False)
    asyncio.run(seed(args.password))
    return 0


if __name__ == "__main__":
    sys.exit(main())
