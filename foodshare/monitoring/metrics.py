"""Prometheus指标收集模块"""
from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# HTTP请求指标
http_requests_total = Counter(
    "http_requests_total",
    "HTTP请求总数",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP请求持续时间（秒）",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

active_requests = Gauge("http_active_requests", "处理中的请求数")

# 认证相关指标
auth_operations_total = Counter(
    "auth_operations_total",
    "认证操作总数",
    ["operation", "status"],
)

auth_token_validation_duration = Histogram(
    "auth_token_validation_duration_seconds",
    "Token验证持续时间（秒）",
    ["token_type"],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1),
)

# 邮件与实时消息
emails_sent_total = Counter(
    "emails_sent_total",
    "邮件发送总数",
    ["kind", "status"],
)

websocket_connections = Gauge("websocket_connections", "当前 WebSocket 连接数")

# 错误指标
error_count_total = Counter(
    "error_count_total",
    "错误总数",
    ["error_type", "endpoint"],
)


class MetricsCollector:
    """指标收集器"""

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        http_requests_total.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

    def record_auth_operation(self, operation: str, status: str):
        """记录认证操作（register、login、refresh 等）"""
        auth_operations_total.labels(operation=operation, status=status).inc()

    def record_token_validation(self, token_type: str, duration: float):
        auth_token_validation_duration.labels(token_type=token_type).observe(duration)

    def record_email(self, kind: str, status: str):
        emails_sent_total.labels(kind=kind, status=status).inc()

    def record_error(self, error_type: str, endpoint: str):
        error_count_total.labels(error_type=error_type, endpoint=endpoint).inc()

    def increment_active_requests(self):
        active_requests.inc()

    def decrement_active_requests(self):
        active_requests.dec()

    def set_websocket_connections(self, count: int):
        websocket_connections.set(count)

    def get_metrics(self) -> bytes:
        """获取所有指标的Prometheus格式输出"""
        return generate_latest()


# 指标注册在进程级 registry 上，收集器同样全进程共享
metrics_collector = MetricsCollector()


def get_metrics_response() -> Response:
    return Response(content=metrics_collector.get_metrics(), media_type=CONTENT_TYPE_LATEST)
