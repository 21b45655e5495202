"""用户相关数据模型"""
from datetime import datetime

from pydantic import Field

from .common import CamelModel
from .tables import UserRole


class UserPublic(CamelModel):
    """对外暴露的用户信息（不含密码哈希）"""
    id: str
    email: str
    username: str
    first_name: str
    last_name: str
    phone: str | None = None
    avatar: str | None = None
    role: UserRole
    is_verified: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class OwnerSummary(CamelModel):
    id: str
    first_name: str
    last_name: str
    avatar: str | None = None


class ProfileUpdateRequest(CamelModel):
    """个人资料更新请求（部分字段）"""
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    phone: str | None = Field(default=None, max_length=20)
    avatar: str | None = Field(default=None, max_length=500)
