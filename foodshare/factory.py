"""应用工厂：组合根，负责创建依赖并装配 FastAPI 应用"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from .config import Environment, Settings
from .db import build_engine, build_session_factory, init_db
from .dependencies import ServiceContainer
from .exceptions import register_exception_handlers
from .logging.config import get_structured_logger
from .middleware import (
    LoggingMiddleware,
    MetricsMiddleware,
    RateLimitMiddleware,
    RequestSizeMiddleware,
    SecurityHeadersMiddleware,
    build_redis_client,
)
from .monitoring import get_metrics_response, setup_sentry
from .repositories import FoodRepository, UsedTokenRepository, UserRepository
from .routers import auth, foods, health, messages, users
from .security import PasswordHasher, TokenService
from .services import (
    AuthService,
    EmailDispatcher,
    FoodService,
    MessageHub,
    UserService,
    build_email_sender,
)
from .services.email import EmailSender

logger = get_structured_logger(__name__)


def build_services(settings: Settings, email_sender: EmailSender | None = None, redis_client=None) -> ServiceContainer:
    """按配置构建全部依赖，生命周期归应用所有"""
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)

    user_repo = UserRepository(session_factory)
    food_repo = FoodRepository(session_factory)
    used_tokens = UsedTokenRepository(session_factory)

    hasher = PasswordHasher(settings.bcrypt_rounds)
    tokens = TokenService(settings)
    dispatcher = EmailDispatcher(email_sender or build_email_sender(settings), settings)

    return ServiceContainer(
        settings=settings,
        engine=engine,
        users=user_repo,
        foods=food_repo,
        used_tokens=used_tokens,
        hasher=hasher,
        tokens=tokens,
        email=dispatcher,
        auth=AuthService(
            user_repo,
            hasher,
            tokens,
            dispatcher,
            used_tokens=used_tokens if settings.single_use_tokens else None,
        ),
        food=FoodService(food_repo),
        user_service=UserService(user_repo),
        hub=MessageHub(settings.websocket_max_connections_per_user),
        redis=redis_client,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: ServiceContainer = app.state.services
    settings = services.settings
    if settings.db_auto_create:
        await init_db(services.engine)
    if settings.single_use_tokens:
        try:
            purged = await services.used_tokens.purge_expired()
            logger.info("已清理过期的一次性令牌记录", extra={"purged": purged})
        except SQLAlchemyError as e:
            logger.warning("清理一次性令牌记录失败", extra={"error": str(e)})

    yield

    await services.email.drain()
    if services.redis is not None:
        await services.redis.aclose()
    await services.engine.dispose()
    logger.info("应用已关闭")


def create_app(settings: Settings, *, email_sender: EmailSender | None = None, redis_client=None) -> FastAPI:
    """创建并配置FastAPI应用实例"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    if setup_sentry(settings):
        logger.info("Sentry错误监控已启用")

    rate_limiting = settings.enable_rate_limiting and settings.environment != Environment.TESTING
    if rate_limiting and redis_client is None:
        redis_client = build_redis_client(settings)

    app.state.services = build_services(settings, email_sender, redis_client if rate_limiting else None)

    # 后添加的中间件先执行
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.is_production)
    if rate_limiting:
        app.add_middleware(
            RateLimitMiddleware,
            redis_client=redis_client,
            api_prefix=settings.api_prefix,
            default_requests=settings.rate_limit_max_requests,
            default_window=settings.rate_limit_window_seconds,
            trust_proxy_headers=settings.trust_proxy_headers,
        )
        logger.info("限流中间件已启用")
    app.add_middleware(RequestSizeMiddleware, max_size=settings.max_request_size)
    app.add_middleware(LoggingMiddleware, trust_proxy_headers=settings.trust_proxy_headers)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins if settings.is_production else ["*"],
        allow_credentials=settings.is_production,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app, settings)

    prefix = settings.api_prefix
    app.include_router(auth.router, prefix=prefix)
    app.include_router(foods.router, prefix=prefix)
    app.include_router(users.router, prefix=prefix)
    app.include_router(messages.router, prefix=prefix)
    app.include_router(health.router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus指标端点"""
        return get_metrics_response()

    logger.info(
        "应用已创建",
        extra={"environment": settings.environment.value, "debug": settings.debug},
    )
    return app
