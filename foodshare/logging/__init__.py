"""日志模块：结构化日志与请求上下文。"""

from .config import (
    JSONFormatter,
    SensitiveDataFilter,
    StructuredLogger,
    get_structured_logger,
    request_id_var,
    user_id_var,
)

__all__ = [
    "JSONFormatter",
    "SensitiveDataFilter",
    "StructuredLogger",
    "get_structured_logger",
    "request_id_var",
    "user_id_var",
]
