"""
密码哈希：bcrypt 自适应哈希，计算放到线程池中执行
"""
import asyncio

import bcrypt

# bcrypt 只使用前 72 字节
MAX_PASSWORD_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


class PasswordHasher:
    """bcrypt 密码哈希器"""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        # 用于未知账户时的等时校验
        self._dummy_hash = bcrypt.hashpw(b"feest-dummy-password", bcrypt.gensalt(rounds))

    def hash_sync(self, password: str) -> str:
        return bcrypt.hashpw(_encode(password), bcrypt.gensalt(self.rounds)).decode("ascii")

    def verify_sync(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
        except (ValueError, TypeError, UnicodeEncodeError):
            # 存储的哈希格式损坏
            return False

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        """校验密码；不匹配或哈希损坏时返回 False，不抛异常"""
        return await asyncio.to_thread(self.verify_sync, password, password_hash)

    async def dummy_verify(self, password: str) -> None:
        await asyncio.to_thread(bcrypt.checkpw, _encode(password), self._dummy_hash)
