"""
认证相关路由
"""
from fastapi import APIRouter, Depends, status

from ..dependencies import ServiceContainer, get_services
from ..middleware.auth import CurrentUser, get_current_user
from ..models.auth import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
)
from ..models.common import success_response

router = APIRouter(prefix="/auth", tags=["认证"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, services: ServiceContainer = Depends(get_services)):
    """用户注册"""
    result = await services.auth.register(payload)
    return success_response(
        "User registered successfully. Please check your email for verification.", result
    )


@router.post("/login")
async def login(payload: LoginRequest, services: ServiceContainer = Depends(get_services)):
    """用户登录"""
    result = await services.auth.login(payload)
    return success_response("Login successful", result)


@router.post("/refresh-token")
async def refresh_token(payload: RefreshRequest, services: ServiceContainer = Depends(get_services)):
    """刷新令牌对"""
    result = await services.auth.refresh(payload)
    return success_response("Tokens refreshed successfully", result)


@router.post("/forgot-password")
async def forgot_password(payload: EmailRequest, services: ServiceContainer = Depends(get_services)):
    message = await services.auth.forgot_password(str(payload.email))
    return success_response(message)


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, services: ServiceContainer = Depends(get_services)):
    await services.auth.reset_password(payload)
    return success_response("Password reset successfully")


@router.post("/verify-email")
async def verify_email(payload: VerifyEmailRequest, services: ServiceContainer = Depends(get_services)):
    await services.auth.verify_email(payload)
    return success_response("Email verified successfully")


@router.post("/resend-verification")
async def resend_verification(payload: EmailRequest, services: ServiceContainer = Depends(get_services)):
    await services.auth.resend_verification(str(payload.email))
    return success_response("Verification email sent successfully")


@router.post("/logout")
async def logout(
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """登出（无状态，客户端丢弃令牌即可）"""
    await services.auth.logout(user.id)
    return success_response("Logged out successfully")


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    await services.auth.change_password(user.id, payload)
    return success_response("Password changed successfully")
