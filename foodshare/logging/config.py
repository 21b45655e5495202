"""结构化日志配置模块"""
import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

# 请求上下文
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

# LogRecord 自带的属性，其余均视为 extra 字段
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class SensitiveDataFilter:
    """敏感信息脱敏过滤器"""

    _SECRET_KEYS = (
        "password|currentPassword|newPassword|password_hash|passwordHash"
        "|accessToken|refreshToken|access_token|refresh_token"
    )

    SENSITIVE_PATTERNS = [
        # 密码与令牌整体隐藏
        (rf'"({_SECRET_KEYS})"\s*:\s*"[^"]*"', r'"\1": "***"'),
        # JWT 只保留前10位
        (r'"token"\s*:\s*"([^"]{10})[^"]*"', r'"token": "\1***"'),
        # 邮箱保留前3位和域名
        (r'"email"\s*:\s*"([^@"]{1,3})[^@"]*(@[^"]+)"', r'"email": "\1***\2"'),
        # 用户ID部分脱敏
        (r'"(user_id|userId)"\s*:\s*"([^"]{8})[^"]*"', r'"\1": "\2***"'),
        # 邮件链接中的一次性令牌
        (r'token=[^&\s"\\]+', "token=***"),
        # 收件人地址
        (r'"to"\s*:\s*"([^@"]{1,3})[^@"]*(@[^"]+)"', r'"to": "\1***\2"'),
    ]

    @classmethod
    def sanitize(cls, message: str) -> str:
        """脱敏敏感信息"""
        sanitized = message
        for pattern, replacement in cls.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized)
        return sanitized


class JSONFormatter(logging.Formatter):
    """JSON格式化器"""

    def __init__(self, *args, service_name: str = "feest-api", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "service": self.service_name,
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["request_id"] = request_id
            log_entry["correlation_id"] = request_id

        user_id = user_id_var.get()
        if user_id:
            log_entry["user_id"] = user_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_entry and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        json_str = json.dumps(log_entry, ensure_ascii=False, default=str)
        return SensitiveDataFilter.sanitize(json_str)


class StructuredLogger:
    """结构化日志器"""

    @staticmethod
    def setup_logging(log_level: str = "INFO", enable_json: bool = True) -> None:
        """设置日志配置"""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        level = getattr(logging, log_level.upper(), logging.INFO)
        root_logger.setLevel(level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        if enable_json:
            formatter = JSONFormatter()
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("aiosmtplib").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

        logging.info("结构化日志已配置", extra={
            "log_level": log_level,
            "json_format": enable_json,
        })

    @staticmethod
    def set_request_context(request_id: str, user_id: str | None = None) -> None:
        """设置请求上下文"""
        request_id_var.set(request_id)
        if user_id:
            user_id_var.set(user_id)

    @staticmethod
    def clear_request_context() -> None:
        request_id_var.set(None)
        user_id_var.set(None)

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        return logging.getLogger(name)


def get_structured_logger(name: str) -> logging.Logger:
    """获取结构化日志器的便捷函数"""
    return StructuredLogger.get_logger(name)
