"""统一异常处理模块"""
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings
from ..monitoring import capture_unexpected_error, metrics_collector

logger = logging.getLogger(__name__)


class BaseAppException(Exception):
    """应用基础异常类，子类通过 status_code 决定 HTTP 状态码"""

    status_code = 500
    default_error_code = "APPLICATION_ERROR"

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)


class AppValidationError(BaseAppException):
    """数据验证异常"""
    status_code = 400
    default_error_code = "VALIDATION_ERROR"


class ConflictError(BaseAppException):
    """唯一性冲突（邮箱或用户名已存在）"""
    status_code = 400
    default_error_code = "CONFLICT"


class BusinessLogicError(BaseAppException):
    """业务逻辑异常"""
    status_code = 400
    default_error_code = "BUSINESS_RULE_VIOLATION"


class AlreadyVerifiedError(BaseAppException):
    status_code = 400
    default_error_code = "ALREADY_VERIFIED"


class AuthenticationError(BaseAppException):
    """认证失败异常"""
    status_code = 401
    default_error_code = "UNAUTHORIZED"


class InvalidTokenError(AuthenticationError):
    """令牌无效、过期或用途不符"""
    default_error_code = "INVALID_TOKEN"


class AuthorizationError(BaseAppException):
    """授权失败异常"""
    status_code = 403
    default_error_code = "FORBIDDEN"


class NotFoundError(BaseAppException):
    status_code = 404
    default_error_code = "NOT_FOUND"


class RateLimitError(BaseAppException):
    """限流异常"""
    status_code = 429
    default_error_code = "RATE_LIMIT_EXCEEDED"


class ExternalServiceError(BaseAppException):
    """外部服务异常"""
    status_code = 502
    default_error_code = "EXTERNAL_SERVICE_ERROR"


class ConfigurationError(BaseAppException):
    status_code = 500
    default_error_code = "CONFIGURATION_ERROR"


def error_envelope(message: str, error_code: str, request_id: str | None = None,
                   details: dict | None = None) -> dict:
    """构建统一错误响应体 {success, message, data}"""
    data: dict = {"errorCode": error_code}
    if request_id:
        data["requestId"] = request_id
    if details:
        data["details"] = details
    return {"success": False, "message": message, "data": data}


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def app_error_response(exc: BaseAppException, request_id: str | None = None,
                       headers: dict | None = None) -> JSONResponse:
    """将应用异常转换为统一错误响应（中间件中无法依赖异常处理器时使用）"""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.message, exc.error_code, request_id, exc.details),
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: BaseAppException) -> JSONResponse:
    """应用自定义异常处理器"""
    request_id = get_request_id(request)
    status_code = exc.status_code
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"应用异常: {exc.error_code}",
        extra={
            "error_code": exc.error_code,
            "error_message": exc.message,
            "status_code": status_code,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=status_code >= 500,
    )
    return app_error_response(exc, request_id)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTP异常处理器"""
    logger.warning(
        f"HTTP异常: {exc.status_code}",
        extra={
            "status_code": exc.status_code,
            "detail": exc.detail,
            "path": request.url.path,
            "method": request.method,
        },
    )
    message = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(message, f"HTTP_{exc.status_code}", get_request_id(request)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求验证异常处理器"""
    validation_errors = []
    for error in exc.errors():
        loc = [str(x) for x in error["loc"] if x != "body"]
        validation_errors.append({
            "field": ".".join(loc),
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        "请求验证失败",
        extra={
            "validation_errors": validation_errors,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            "Validation failed",
            "VALIDATION_ERROR",
            get_request_id(request),
            {"validationErrors": validation_errors},
        ),
    )


def make_general_exception_handler(settings: Settings):
    """通用异常处理器（兜底），生产环境隐藏内部错误信息"""

    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "未捕获的异常",
            extra={
                "exception_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
            },
            exc_info=exc,
        )
        metrics_collector.record_error(type(exc).__name__, request.url.path)
        capture_unexpected_error(exc, request.url.path)
        message = "An internal server error occurred" if settings.is_production else str(exc) or type(exc).__name__
        return JSONResponse(
            status_code=500,
            content=error_envelope(message, "INTERNAL_SERVER_ERROR", get_request_id(request)),
        )

    return general_exception_handler


def register_exception_handlers(app, settings: Settings) -> None:
    """注册所有异常处理器"""
    app.add_exception_handler(BaseAppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, make_general_exception_handler(settings))
    logger.info("异常处理器已注册")
