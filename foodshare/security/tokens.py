"""
JWT 令牌签发与校验

每种令牌用途使用独立的签名密钥，校验时同时检查签名、过期时间与 type 声明。
"""
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import jwt

from ..config import Settings
from ..exceptions import InvalidTokenError
from ..logging.config import get_structured_logger
from ..monitoring import metrics_collector

logger = get_structured_logger(__name__)

REQUIRED_CLAIMS = ["userId", "type", "iat", "exp", "jti"]


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    PASSWORD_RESET = "password-reset"
    EMAIL_VERIFICATION = "email-verification"


@dataclass(frozen=True)
class TokenClaims:
    """已校验的令牌声明"""
    user_id: str
    type: TokenType
    jti: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def derive_key(secret: str, purpose: str) -> str:
    """由主密钥按用途派生独立密钥（HMAC-SHA256）"""
    return hmac.new(secret.encode("utf-8"), purpose.encode("utf-8"), hashlib.sha256).hexdigest()


class TokenService:
    """令牌服务：签发与校验四类令牌"""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] | None = None):
        self.algorithm = settings.jwt_algorithm
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._keys = {
            TokenType.ACCESS: settings.jwt_secret,
            TokenType.REFRESH: settings.jwt_refresh_secret,
            TokenType.PASSWORD_RESET: settings.jwt_password_reset_secret
            or derive_key(settings.jwt_secret, TokenType.PASSWORD_RESET.value),
            TokenType.EMAIL_VERIFICATION: settings.jwt_email_verification_secret
            or derive_key(settings.jwt_secret, TokenType.EMAIL_VERIFICATION.value),
        }
        self._ttls = {
            TokenType.ACCESS: settings.access_token_ttl_seconds,
            TokenType.REFRESH: settings.refresh_token_ttl_seconds,
            TokenType.PASSWORD_RESET: settings.password_reset_ttl_seconds,
            TokenType.EMAIL_VERIFICATION: settings.email_verification_ttl_seconds,
        }

    def ttl_for(self, token_type: TokenType) -> int:
        return self._ttls[token_type]

    def issue(self, user_id: str, token_type: TokenType, ttl: int | None = None) -> str:
        """签发指定用途的令牌，ttl 单位为秒"""
        issued_at = int(self._clock().timestamp())
        payload = {
            "userId": user_id,
            "type": token_type.value,
            "iat": issued_at,
            "exp": issued_at + (ttl if ttl is not None else self._ttls[token_type]),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._keys[token_type], algorithm=self.algorithm)

    def issue_pair(self, user_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue(user_id, TokenType.ACCESS),
            refresh_token=self.issue(user_id, TokenType.REFRESH),
        )

    def verify(self, token: str, expected_type: TokenType) -> TokenClaims:
        """校验令牌；签名、过期、声明缺失或用途不符均抛出 InvalidTokenError"""
        started = time.perf_counter()
        try:
            payload = jwt.decode(
                token,
                self._keys[expected_type],
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired", "TOKEN_EXPIRED")
        except jwt.InvalidTokenError as e:
            logger.debug("令牌校验失败", extra={"token_type": expected_type.value, "reason": type(e).__name__})
            raise InvalidTokenError("Invalid or expired token", "INVALID_TOKEN")
        finally:
            metrics_collector.record_token_validation(expected_type.value, time.perf_counter() - started)

        if payload.get("type") != expected_type.value:
            raise InvalidTokenError("Invalid token type", "INVALID_TOKEN")
        user_id = payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidTokenError("Invalid or expired token", "INVALID_TOKEN")

        return TokenClaims(
            user_id=user_id,
            type=expected_type,
            jti=str(payload["jti"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
