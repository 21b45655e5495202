"""限流中间件模块"""
import time
import uuid
from collections.abc import Callable

import redis.asyncio as aioredis
from fastapi import Request, Response
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import Settings
from ..exceptions.handlers import RateLimitError, app_error_response
from ..logging.config import get_structured_logger
from .logging import get_client_ip

logger = get_structured_logger(__name__)


def build_redis_client(settings: Settings) -> aioredis.Redis:
    """创建 Redis 异步客户端（连接在首次使用时建立）"""
    return aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """API限流中间件：基于 Redis 有序集合的滑动窗口"""

    def __init__(
        self,
        app,
        redis_client,
        api_prefix: str = "/api/v1",
        default_requests: int = 100,
        default_window: int = 900,
        trust_proxy_headers: bool = False,
    ):
        super().__init__(app)
        self.redis = redis_client
        self.default_requests = default_requests
        self.default_window = default_window
        self.trust_proxy_headers = trust_proxy_headers
        self._redis_available = True

        # 认证相关端点使用更严格的限制
        self.endpoint_limits = {
            f"{api_prefix}/auth/login": {"requests": 5, "window": 60},
            f"{api_prefix}/auth/register": {"requests": 3, "window": 60},
            f"{api_prefix}/auth/forgot-password": {"requests": 3, "window": 60},
        }

    def limit_for(self, path: str) -> dict:
        return self.endpoint_limits.get(path, {"requests": self.default_requests, "window": self.default_window})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        config = self.limit_for(path)
        client_id = f"ip:{get_client_ip(request, self.trust_proxy_headers)}"

        result = await self._check_rate_limit(client_id, path, config)
        if result is None:
            return await call_next(request)

        is_allowed, remaining, reset_time = result
        if not is_allowed:
            logger.warning(
                "请求被限流",
                extra={"client_id": client_id, "path": path, "limit": config["requests"]},
            )
            return app_error_response(
                RateLimitError("Too many requests, please try again later."),
                getattr(request.state, "request_id", None),
                headers={
                    "X-RateLimit-Limit": str(config["requests"]),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(config["window"]),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(config["requests"])
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)
        return response

    async def _check_rate_limit(self, client_id: str, path: str, config: dict) -> tuple[bool, int, int] | None:
        """返回 (是否允许, 剩余次数, 重置时间)；Redis 不可用时返回 None"""
        now = time.time()
        window = config["window"]
        limit = config["requests"]
        key = f"rate_limit:{client_id}:{path}"
        member = f"{now:.6f}:{uuid.uuid4().hex[:8]}"

        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zcard(key)
            pipe.zadd(key, {member: now})
            pipe.expire(key, window + 10)
            results = await pipe.execute()
            current_requests = results[1]

            reset_time = int(now) + window
            if current_requests >= limit:
                await self.redis.zrem(key, member)
                return False, 0, reset_time
        except (RedisError, OSError) as e:
            if self._redis_available:
                logger.warning("Redis 不可用，限流暂时关闭", extra={"error": str(e)})
            self._redis_available = False
            return None

        if not self._redis_available:
            logger.info("Redis 已恢复，限流重新启用")
            self._redis_available = True
        return True, limit - current_requests - 1, reset_time
