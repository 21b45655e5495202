"""数据访问层：基于 SQLAlchemy 异步会话的仓储。"""

from .foods import FoodRepository
from .tokens import UsedTokenRepository
from .users import DuplicateUserError, UserRepository

__all__ = ["UserRepository", "FoodRepository", "UsedTokenRepository", "DuplicateUserError"]
