"""安全模块：密码哈希与令牌。"""

from .passwords import PasswordHasher
from .tokens import TokenClaims, TokenPair, TokenService, TokenType

__all__ = ["PasswordHasher", "TokenService", "TokenType", "TokenClaims", "TokenPair"]
