"""数据模型：ORM 实体与接口数据结构。"""

from .common import CamelModel, success_response
from .tables import Food, FoodCategory, FoodCondition, Location, UsedToken, User, UserRole

__all__ = [
    "CamelModel",
    "success_response",
    "User",
    "UserRole",
    "Food",
    "FoodCategory",
    "FoodCondition",
    "Location",
    "UsedToken",
]
