"""监控模块 - 指标收集与错误监控"""

from .metrics import get_metrics_response, metrics_collector
from .sentry_config import capture_unexpected_error, setup_sentry

__all__ = [
    "metrics_collector",
    "get_metrics_response",
    "setup_sentry",
    "capture_unexpected_error",
]
