"""
认证业务服务

注册、登录、令牌刷新、找回密码、邮箱验证与修改密码。
仓储、哈希器、令牌服务与邮件调度器均由组合根注入。
"""

from ..exceptions import (
    AlreadyVerifiedError,
    AuthenticationError,
    AuthorizationError,
    BaseAppException,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
)
from ..logging.config import get_structured_logger
from ..models.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPairResponse,
    VerifyEmailRequest,
)
from ..models.tables import User, UserRole
from ..models.user import UserPublic
from ..monitoring import metrics_collector
from ..repositories.tokens import UsedTokenRepository
from ..repositories.users import DuplicateUserError, UserRepository
from ..security.passwords import PasswordHasher
from ..security.tokens import TokenClaims, TokenPair, TokenService, TokenType
from .email import EmailDispatcher

logger = get_structured_logger(__name__)

USER_EXISTS_MESSAGE = "User with this email or username already exists"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent."


def _pair_response(pair: TokenPair) -> TokenPairResponse:
    return TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


class AuthService:
    """认证业务服务"""

    def __init__(
        self,
        users: UserRepository,
        hasher: PasswordHasher,
        tokens: TokenService,
        email: EmailDispatcher,
        used_tokens: UsedTokenRepository | None = None,
    ):
        self.users = users
        self.hasher = hasher
        self.tokens = tokens
        self.email = email
        # 为 None 时重置/验证令牌在过期前可重复使用
        self.used_tokens = used_tokens

    @staticmethod
    def extract_token_from_header(authorization: str | None) -> str | None:
        """从 Authorization 头中提取 Bearer token"""
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()

    @staticmethod
    def _record(operation: str, status: str) -> None:
        metrics_collector.record_auth_operation(operation, status)

    async def register(self, request: RegisterRequest) -> AuthResponse:
        """用户注册：创建未验证账户，签发令牌对并在后台发送验证邮件"""
        email = str(request.email)
        if await self.users.find_by_email_or_username(email, request.username):
            self._record("register", "conflict")
            raise ConflictError(USER_EXISTS_MESSAGE, "USER_EXISTS")

        password_hash = await self.hasher.hash(request.password)
        try:
            user = await self.users.create_user(
                email=email,
                username=request.username,
                password_hash=password_hash,
                first_name=request.first_name,
                last_name=request.last_name,
                phone=request.phone,
                role=UserRole.REGULAR,
                is_verified=False,
                is_active=True,
            )
        except DuplicateUserError:
            self._record("register", "conflict")
            raise ConflictError(USER_EXISTS_MESSAGE, "USER_EXISTS")

        pair = self.tokens.issue_pair(user.id)
        verification_token = self.tokens.issue(user.id, TokenType.EMAIL_VERIFICATION)
        self.email.dispatch_verification_email(user.email, user.first_name, verification_token)

        self._record("register", "success")
        logger.info("用户注册成功", extra={"user_id": user.id})
        return AuthResponse(
            user=UserPublic.model_validate(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    async def login(self, request: LoginRequest) -> AuthResponse:
        """用户登录；账号不存在与密码错误返回同样的错误"""
        user = await self.users.find_by_email(str(request.email))
        if user is None:
            await self.hasher.dummy_verify(request.password)
            self._record("login", "failure")
            logger.warning("登录失败：凭据无效")
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, "INVALID_CREDENTIALS")

        if not await self.hasher.verify(request.password, user.password_hash):
            self._record("login", "failure")
            logger.warning("登录失败：凭据无效", extra={"user_id": user.id})
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, "INVALID_CREDENTIALS")

        if not user.is_active:
            self._record("login", "deactivated")
            logger.warning("登录失败：账户已停用", extra={"user_id": user.id})
            raise AuthorizationError("Account is deactivated", "ACCOUNT_DEACTIVATED")

        pair = self.tokens.issue_pair(user.id)
        self._record("login", "success")
        logger.info("用户登录成功", extra={"user_id": user.id})
        return AuthResponse(
            user=UserPublic.model_validate(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    async def refresh(self, request: RefreshRequest) -> TokenPairResponse:
        """刷新令牌：校验刷新令牌并签发全新的令牌对"""
        try:
            claims = self.tokens.verify(request.refresh_token, TokenType.REFRESH)
        except InvalidTokenError:
            self._record("refresh", "failure")
            raise

        user = await self.users.find_by_id(claims.user_id)
        if user is None or not user.is_active:
            self._record("refresh", "failure")
            logger.warning("刷新令牌失败：用户不存在或已停用", extra={"user_id": claims.user_id})
            raise AuthenticationError("Invalid refresh token", "INVALID_REFRESH_TOKEN")

        self._record("refresh", "success")
        return _pair_response(self.tokens.issue_pair(user.id))

    async def logout(self, user_id: str) -> None:
        """登出为无状态操作，服务端不作废令牌"""
        self._record("logout", "success")
        logger.info("用户登出", extra={"user_id": user_id})

    async def forgot_password(self, email: str) -> str:
        """无论邮箱是否存在都返回相同的消息"""
        user = await self.users.find_by_email(email)
        if user is not None:
            token = self.tokens.issue(user.id, TokenType.PASSWORD_RESET)
            self.email.dispatch_reset_password_email(user.email, user.first_name, token)
            logger.info("已生成重置密码令牌", extra={"user_id": user.id})
        self._record("forgot_password", "success")
        return FORGOT_PASSWORD_MESSAGE

    async def _redeem(self, token: str, token_type: TokenType) -> tuple[TokenClaims, User]:
        """校验一次性令牌并登记使用记录"""
        claims = self.tokens.verify(token, token_type)
        user = await self.users.find_by_id(claims.user_id)
        if user is None:
            raise InvalidTokenError("Invalid or expired token", "INVALID_TOKEN")
        if self.used_tokens is not None:
            consumed = await self.used_tokens.consume(
                claims.jti, claims.user_id, token_type.value, claims.expires_at
            )
            if not consumed:
                logger.warning("一次性令牌被重复使用", extra={"user_id": claims.user_id, "token_type": token_type.value})
                raise InvalidTokenError("Token has already been used", "TOKEN_ALREADY_USED")
        return claims, user

    async def _release(self, claims: TokenClaims) -> None:
        """后续写入失败时撤销使用记录，令牌可再次兑换"""
        if self.used_tokens is not None:
            await self.used_tokens.release(claims.jti)

    async def reset_password(self, request: ResetPasswordRequest) -> None:
        try:
            claims, user = await self._redeem(request.token, TokenType.PASSWORD_RESET)
        except InvalidTokenError:
            self._record("reset_password", "failure")
            raise

        try:
            password_hash = await self.hasher.hash(request.new_password)
            await self.users.update_password(user.id, password_hash)
        except Exception:
            await self._release(claims)
            self._record("reset_password", "failure")
            logger.error("重置密码写入失败，令牌已恢复可用", extra={"user_id": user.id})
            raise
        self._record("reset_password", "success")
        logger.info("密码已重置", extra={"user_id": user.id})

    async def verify_email(self, request: VerifyEmailRequest) -> None:
        """完成邮箱验证；已验证账户重复验证视为成功"""
        try:
            claims, user = await self._redeem(request.token, TokenType.EMAIL_VERIFICATION)
        except InvalidTokenError:
            self._record("verify_email", "failure")
            raise

        if not user.is_verified:
            try:
                await self.users.update_verified(user.id, True)
            except Exception:
                await self._release(claims)
                self._record("verify_email", "failure")
                logger.error("邮箱验证写入失败，令牌已恢复可用", extra={"user_id": user.id})
                raise
        self._record("verify_email", "success")
        logger.info("邮箱验证成功", extra={"user_id": user.id})

    async def resend_verification(self, email: str) -> None:
        user = await self.users.find_by_email(email)
        if user is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        if user.is_verified:
            raise AlreadyVerifiedError("Email is already verified", "ALREADY_VERIFIED")

        token = self.tokens.issue(user.id, TokenType.EMAIL_VERIFICATION)
        try:
            await self.email.send_verification_email(user.email, user.first_name, token)
        except BaseAppException:
            self._record("resend_verification", "failure")
            raise
        self._record("resend_verification", "success")

    async def change_password(self, user_id: str, request: ChangePasswordRequest) -> None:
        """修改密码，需要提供当前密码"""
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")

        if not await self.hasher.verify(request.current_password, user.password_hash):
            self._record("change_password", "failure")
            logger.warning("修改密码失败：当前密码错误", extra={"user_id": user_id})
            raise AuthenticationError("Current password is incorrect", "INVALID_CURRENT_PASSWORD")

        password_hash = await self.hasher.hash(request.new_password)
        await self.users.update_password(user_id, password_hash)
        self._record("change_password", "success")
        logger.info("密码修改成功", extra={"user_id": user_id})
