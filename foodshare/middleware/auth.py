"""
请求级认证与授权

get_current_user 校验 Bearer 访问令牌并加载用户；
require_roles 在此基础上按角色白名单授权。
"""
from dataclasses import dataclass

from fastapi import Depends, Request

from ..exceptions import AuthenticationError, AuthorizationError
from ..logging.config import user_id_var
from ..models.tables import UserRole
from ..security.tokens import TokenType
from ..services.auth import AuthService


@dataclass(frozen=True)
class CurrentUser:
    """附加到请求上下文的已认证用户"""
    id: str
    email: str
    role: UserRole


async def get_current_user(request: Request) -> CurrentUser:
    services = request.app.state.services
    token = AuthService.extract_token_from_header(request.headers.get("authorization"))
    if not token:
        raise AuthenticationError("Access token required", "MISSING_TOKEN")

    # 过期与无效令牌都以 401 返回
    claims = services.tokens.verify(token, TokenType.ACCESS)

    user = await services.users.find_by_id(claims.user_id)
    if user is None:
        raise AuthenticationError("User not found", "USER_NOT_FOUND")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated", "ACCOUNT_DEACTIVATED")

    current = CurrentUser(id=user.id, email=user.email, role=user.role)
    request.state.user = current
    user_id_var.set(user.id)
    return current


def require_roles(*roles: UserRole):
    """构建角色授权依赖；角色必须是 UserRole 成员"""
    for role in roles:
        if not isinstance(role, UserRole):
            raise ValueError(f"Unknown role: {role!r}")
    allowed = frozenset(roles)

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise AuthorizationError("Access denied. Insufficient permissions.", "INSUFFICIENT_PERMISSIONS")
        return user

    return dependency
