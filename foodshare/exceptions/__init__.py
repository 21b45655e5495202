"""异常模块：领域异常与统一异常处理。"""

from .handlers import (
    AlreadyVerifiedError,
    AppValidationError,
    AuthenticationError,
    AuthorizationError,
    BaseAppException,
    BusinessLogicError,
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    InvalidTokenError,
    NotFoundError,
    RateLimitError,
    register_exception_handlers,
)

__all__ = [
    "BaseAppException",
    "AppValidationError",
    "ConflictError",
    "BusinessLogicError",
    "AlreadyVerifiedError",
    "AuthenticationError",
    "InvalidTokenError",
    "AuthorizationError",
    "NotFoundError",
    "RateLimitError",
    "ExternalServiceError",
    "ConfigurationError",
    "register_exception_handlers",
]
