"""用户资料与账户管理服务"""
from ..exceptions import NotFoundError
from ..logging.config import get_structured_logger
from ..models.user import ProfileUpdateRequest, UserPublic
from ..monitoring import metrics_collector
from ..repositories.users import UserRepository

logger = get_structured_logger(__name__)


class UserService:
    def __init__(self, users: UserRepository):
        self.users = users

    async def get_profile(self, user_id: str) -> UserPublic:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        return UserPublic.model_validate(user)

    async def update_profile(self, user_id: str, request: ProfileUpdateRequest) -> UserPublic:
        fields = request.model_dump(exclude_unset=True)
        # 姓名不可清空，phone 与 avatar 可以置空
        fields = {k: v for k, v in fields.items() if v is not None or k in ("phone", "avatar")}
        user = await self.users.update_profile(user_id, fields)
        if user is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        return UserPublic.model_validate(user)

    async def set_active(self, user_id: str, is_active: bool, actor_id: str) -> UserPublic:
        """管理员启用或停用账户"""
        user = await self.users.update_active(user_id, is_active)
        if user is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        operation = "activate" if is_active else "deactivate"
        metrics_collector.record_auth_operation(operation, "success")
        logger.info("账户状态已变更", extra={"user_id": user_id, "actor_id": actor_id, "operation": operation})
        return UserPublic.model_validate(user)
