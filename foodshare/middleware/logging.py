"""日志中间件模块"""
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..exceptions.handlers import error_envelope
from ..logging.config import StructuredLogger, get_structured_logger

logger = get_structured_logger(__name__)


def get_client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """获取客户端IP地址；仅在部署于可信代理之后时读取代理头"""
    if trust_proxy_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

    if request.client:
        return request.client.host
    return "unknown"


class LoggingMiddleware(BaseHTTPMiddleware):
    """日志中间件 - 设置请求上下文并记录请求日志"""

    def __init__(self, app, trust_proxy_headers: bool = False):
        super().__init__(app)
        self.trust_proxy_headers = trust_proxy_headers

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        StructuredLogger.set_request_context(request_id)

        start_time = time.perf_counter()
        logger.info(
            "请求开始",
            extra={
                "event": "request_start",
                "method": request.method,
                "path": request.url.path,
                "client_ip": get_client_ip(request, self.trust_proxy_headers),
                "user_agent": request.headers.get("user-agent"),
            },
        )

        try:
            response = await call_next(request)
            logger.info(
                "请求完成",
                extra={
                    "event": "request_complete",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "process_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
            )
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as exc:
            logger.error(
                "请求异常",
                extra={
                    "event": "request_error",
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
                    "exception_type": type(exc).__name__,
                },
            )
            raise
        finally:
            StructuredLogger.clear_request_context()


class RequestSizeMiddleware(BaseHTTPMiddleware):
    """请求大小限制中间件"""

    def __init__(self, app, max_size: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                logger.warning("无效的Content-Length头", extra={"content_length_header": content_length})
                return JSONResponse(
                    status_code=400,
                    content=error_envelope("Invalid Content-Length header", "INVALID_CONTENT_LENGTH"),
                )
            if size > self.max_size:
                logger.warning(
                    "请求体过大",
                    extra={"content_length": size, "max_size": self.max_size, "path": request.url.path},
                )
                return JSONResponse(
                    status_code=413,
                    content=error_envelope("Request entity too large", "REQUEST_TOO_LARGE"),
                )
        return await call_next(request)
