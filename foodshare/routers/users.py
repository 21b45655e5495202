"""
用户路由：个人资料与管理员账户操作
"""
from fastapi import APIRouter, Depends

from ..dependencies import ServiceContainer, get_services
from ..middleware.auth import CurrentUser, get_current_user, require_roles
from ..models.common import success_response
from ..models.tables import UserRole
from ..models.user import ProfileUpdateRequest

router = APIRouter(prefix="/users", tags=["用户"])

require_admin = require_roles(UserRole.ADMIN)


@router.get("/profile")
async def get_profile(
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    profile = await services.user_service.get_profile(user.id)
    return success_response("Profile retrieved successfully", profile)


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    profile = await services.user_service.update_profile(user.id, payload)
    return success_response("Profile updated successfully", profile)


@router.post("/{user_id}/deactivate")
async def deactivate_user(
    user_id: str,
    admin: CurrentUser = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
):
    """停用账户（管理员）"""
    result = await services.user_service.set_active(user_id, False, admin.id)
    return success_response("User deactivated successfully", result)


@router.post("/{user_id}/activate")
async def activate_user(
    user_id: str,
    admin: CurrentUser = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
):
    result = await services.user_service.set_active(user_id, True, admin.id)
    return success_response("User activated successfully", result)
