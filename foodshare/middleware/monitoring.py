"""监控中间件 - 收集请求指标"""
import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from ..monitoring import metrics_collector


def route_template(request: Request) -> str:
    """使用路由模板作为指标标签，避免路径参数导致标签爆炸"""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """记录请求数、耗时与错误"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        endpoint = route_template(request)
        status_code = 500
        metrics_collector.increment_active_requests()
        try:
            response = await call_next(request)
            status_code = response.status_code
            if status_code >= 400:
                metrics_collector.record_error(f"http_{status_code}", endpoint)
            return response
        finally:
            metrics_collector.decrement_active_requests()
            metrics_collector.record_http_request(
                request.method, endpoint, status_code, time.perf_counter() - start_time
            )
