"""Sentry错误监控配置"""
import logging
import re
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from ..config import Settings

logger = logging.getLogger(__name__)

_IGNORED_SUFFIXES = ("/health", "/metrics")
_SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")
_SENSITIVE_QUERY = re.compile(r"(token|password|secret)", re.IGNORECASE)
_SENSITIVE_MESSAGE = re.compile(r"(password|token|secret|bearer|eyJ[A-Za-z0-9_-]{10,})", re.IGNORECASE)


def setup_sentry(settings: Settings) -> bool:
    """初始化Sentry，未配置 DSN 时跳过"""
    if not settings.sentry_dsn:
        logger.info("未配置 Sentry DSN，错误监控已禁用")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment.value,
        release=settings.app_version,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
        integrations=[
            FastApiIntegration(),
            StarletteIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        before_send=before_send_filter,
        before_send_transaction=before_send_transaction_filter,
    )
    sentry_sdk.set_tag("service", "feest-api")
    logger.info("Sentry 已初始化", extra={"environment": settings.environment.value})
    return True


def before_send_filter(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """发送前过滤器：丢弃健康检查事件并清理敏感信息"""
    request_data = event.get("request") or {}
    if request_data.get("url", "").endswith(_IGNORED_SUFFIXES):
        return None

    headers = request_data.get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in _SENSITIVE_HEADERS:
                headers.pop(name)

    query_string = request_data.get("query_string")
    if isinstance(query_string, str) and _SENSITIVE_QUERY.search(query_string):
        request_data["query_string"] = "[Filtered]"

    for exception in (event.get("exception") or {}).get("values", []):
        value = exception.get("value")
        if value and _SENSITIVE_MESSAGE.search(value):
            exception["value"] = "[Sensitive information filtered]"

    return event


def before_send_transaction_filter(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    if event.get("transaction", "") in _IGNORED_SUFFIXES:
        return None
    return event


def capture_unexpected_error(error: Exception, path: str | None = None) -> None:
    """上报未处理异常；Sentry 未初始化时为空操作"""
    if path:
        sentry_sdk.set_tag("http.path", path)
    sentry_sdk.capture_exception(error)
