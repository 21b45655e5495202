"""路由模块。"""

from . import auth, foods, health, messages, users

__all__ = ["auth", "foods", "health", "messages", "users"]
