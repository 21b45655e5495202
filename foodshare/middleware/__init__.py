"""中间件模块：认证、日志、安全头、限流与指标。"""

from .auth import CurrentUser, get_current_user, require_roles
from .logging import LoggingMiddleware, RequestSizeMiddleware
from .monitoring import MetricsMiddleware
from .rate_limit import RateLimitMiddleware, build_redis_client
from .security import SecurityHeadersMiddleware

__all__ = [
    "CurrentUser",
    "get_current_user",
    "require_roles",
    "LoggingMiddleware",
    "RequestSizeMiddleware",
    "MetricsMiddleware",
    "RateLimitMiddleware",
    "build_redis_client",
    "SecurityHeadersMiddleware",
]
