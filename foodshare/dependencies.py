"""组合根持有的服务容器，以及路由使用的依赖函数。"""
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings
from .repositories import FoodRepository, UsedTokenRepository, UserRepository
from .security import PasswordHasher, TokenService
from .services import AuthService, EmailDispatcher, FoodService, MessageHub, UserService


@dataclass
class ServiceContainer:
    settings: Settings
    engine: AsyncEngine
    users: UserRepository
    foods: FoodRepository
    used_tokens: UsedTokenRepository
    hasher: PasswordHasher
    tokens: TokenService
    email: EmailDispatcher
    auth: AuthService
    food: FoodService
    user_service: UserService
    hub: MessageHub
    redis: object | None = None


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
