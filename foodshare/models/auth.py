"""
认证相关数据模型
"""
from pydantic import EmailStr, Field

from .common import CamelModel
from .user import UserPublic

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"


class RegisterRequest(CamelModel):
    """用户注册请求"""
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone: str | None = Field(default=None, max_length=20)


class LoginRequest(CamelModel):
    """用户登录请求"""
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    """令牌刷新请求"""
    refresh_token: str = Field(..., min_length=1)


class EmailRequest(CamelModel):
    """忘记密码 / 重发验证邮件请求"""
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    """修改密码请求"""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str


class AuthResponse(CamelModel):
    """注册 / 登录响应"""
    user: UserPublic
    access_token: str
    refresh_token: str
