"""认证服务单元测试（内存仓储 + 记录型邮件发送器）"""
import asyncio

import pytest

from foodshare.exceptions import (
    AlreadyVerifiedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    InvalidTokenError,
    NotFoundError,
)
from foodshare.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
)
from foodshare.security.tokens import TokenService, TokenType
from foodshare.services import AuthService, EmailDispatcher

from conftest import RecordingEmailSender, make_settings


def settings_with_other_secret():
    return make_settings(jwt_secret="forger-secret-0123456789abcdef0123456789ab")


async def _register(auth_service, data):
    return await auth_service.register(RegisterRequest.model_validate(data))


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_creates_unverified_user(self, auth_service, user_repo, sample_user_data):
        result = await _register(auth_service, sample_user_data)

        assert result.user.email == "a@x.com"
        assert result.user.is_verified is False
        assert result.user.role.value == "regular"
        stored = await user_repo.find_by_email("a@x.com")
        assert stored.password_hash != "secret1"
        assert "passwordHash" not in result.to_wire()["user"]

    @pytest.mark.asyncio
    async def test_register_issues_token_pair(self, auth_service, token_service, sample_user_data):
        result = await _register(auth_service, sample_user_data)
        assert token_service.verify(result.access_token, TokenType.ACCESS).user_id == result.user.id
        assert token_service.verify(result.refresh_token, TokenType.REFRESH).user_id == result.user.id

    @pytest.mark.asyncio
    async def test_register_sends_verification_email_for_new_user(
        self, auth_service, email_dispatcher, email_sender, token_service, sample_user_data
    ):
        result = await _register(auth_service, sample_user_data)
        await email_dispatcher.drain()

        assert len(email_sender.messages) == 1
        message = email_sender.messages[0]
        assert message.to == "a@x.com"
        assert "/verify-email?token=" in message.text
        token = message.text.split("token=")[1].split()[0]
        claims = token_service.verify(token, TokenType.EMAIL_VERIFICATION)
        assert claims.user_id == result.user.id

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_registration(
        self, user_repo, hasher, token_service, settings, sample_user_data
    ):
        dispatcher = EmailDispatcher(RecordingEmailSender(fail=True), settings)
        service = AuthService(user_repo, hasher, token_service, dispatcher)

        result = await _register(service, sample_user_data)
        await dispatcher.drain()
        assert result.user.email == "a@x.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field, value", [("email", "a@x.com"), ("username", "alice")])
    async def test_duplicate_email_or_username_conflicts(self, auth_service, sample_user_data, field, value):
        await _register(auth_service, sample_user_data)
        other = {**sample_user_data, "email": "b@x.com", "username": "bob", field: value}

        with pytest.raises(ConflictError) as exc_info:
            await _register(auth_service, other)
        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "USER_EXISTS"

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_registration_creates_one_user(
        self, auth_service, user_repo, sample_user_data
    ):
        results = await asyncio.gather(
            _register(auth_service, sample_user_data),
            _register(auth_service, sample_user_data),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], ConflictError)
        assert len(user_repo.by_id) == 1


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_success_returns_fresh_tokens(self, auth_service, token_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        result = await auth_service.login(LoginRequest(email="a@x.com", password="secret1"))

        assert result.access_token != registered.access_token
        assert token_service.verify(result.access_token, TokenType.ACCESS).user_id == registered.user.id
        assert token_service.verify(result.refresh_token, TokenType.REFRESH).user_id == registered.user.id

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_fail_identically(self, auth_service, sample_user_data):
        await _register(auth_service, sample_user_data)

        with pytest.raises(AuthenticationError) as wrong_password:
            await auth_service.login(LoginRequest(email="a@x.com", password="wrong-password"))
        with pytest.raises(AuthenticationError) as unknown_email:
            await auth_service.login(LoginRequest(email="nobody@x.com", password="secret1"))

        assert wrong_password.value.message == unknown_email.value.message == "Invalid email or password"
        assert wrong_password.value.error_code == unknown_email.value.error_code
        assert wrong_password.value.status_code == unknown_email.value.status_code == 401

    @pytest.mark.asyncio
    async def test_deactivated_account_rejected(self, auth_service, user_repo, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        await user_repo.update_active(registered.user.id, False)

        with pytest.raises(AuthorizationError) as exc_info:
            await auth_service.login(LoginRequest(email="a@x.com", password="secret1"))
        assert exc_info.value.error_code == "ACCOUNT_DEACTIVATED"

    @pytest.mark.asyncio
    async def test_deactivated_account_with_wrong_password_looks_like_bad_credentials(
        self, auth_service, user_repo, sample_user_data
    ):
        registered = await _register(auth_service, sample_user_data)
        await user_repo.update_active(registered.user.id, False)

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_service.login(LoginRequest(email="a@x.com", password="wrong-password"))
        assert exc_info.value.error_code == "INVALID_CREDENTIALS"


class TestRefreshAndLogout:

    @pytest.mark.asyncio
    async def test_refresh_rotates_pair(self, auth_service, token_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        pair = await auth_service.refresh(RefreshRequest(refresh_token=registered.refresh_token))

        assert pair.refresh_token != registered.refresh_token
        assert pair.access_token != registered.access_token
        assert token_service.verify(pair.access_token, TokenType.ACCESS).user_id == registered.user.id

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, auth_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(RefreshRequest(refresh_token=registered.access_token))

    @pytest.mark.asyncio
    async def test_refresh_rejected_for_inactive_user(self, auth_service, user_repo, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        await user_repo.update_active(registered.user.id, False)

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_service.refresh(RefreshRequest(refresh_token=registered.refresh_token))
        assert exc_info.value.message == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_refresh_rejected_for_missing_user(self, auth_service, token_service):
        token = token_service.issue("ghost", TokenType.REFRESH)
        with pytest.raises(AuthenticationError):
            await auth_service.refresh(RefreshRequest(refresh_token=token))

    @pytest.mark.asyncio
    async def test_logout_always_succeeds(self, auth_service):
        await auth_service.logout("any-user")


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_forgot_password_same_message_for_known_and_unknown(
        self, auth_service, email_dispatcher, email_sender, sample_user_data
    ):
        await _register(auth_service, sample_user_data)
        await email_dispatcher.drain()
        email_sender.messages.clear()

        known = await auth_service.forgot_password("a@x.com")
        unknown = await auth_service.forgot_password("nobody@x.com")
        await email_dispatcher.drain()

        assert known == unknown == "If the email exists, a reset link has been sent."
        assert [m.to for m in email_sender.messages] == ["a@x.com"]
        assert "/reset-password?token=" in email_sender.messages[0].text

    @pytest.mark.asyncio
    async def test_reset_password_replaces_hash(self, auth_service, token_service, user_repo, hasher, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.PASSWORD_RESET)

        await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))

        stored = await user_repo.find_by_id(registered.user.id)
        assert await hasher.verify("new-secret", stored.password_hash)
        assert not await hasher.verify("secret1", stored.password_hash)

    @pytest.mark.asyncio
    async def test_reset_token_is_single_use(self, auth_service, token_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.PASSWORD_RESET)
        await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))

        with pytest.raises(InvalidTokenError) as exc_info:
            await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="other-secret"))
        assert exc_info.value.error_code == "TOKEN_ALREADY_USED"

    @pytest.mark.asyncio
    async def test_reset_token_replayable_without_ledger(
        self, user_repo, hasher, token_service, email_dispatcher, sample_user_data
    ):
        service = AuthService(user_repo, hasher, token_service, email_dispatcher, used_tokens=None)
        registered = await _register(service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.PASSWORD_RESET)

        await service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))
        await service.reset_password(ResetPasswordRequest(token=token, new_password="other-secret"))

    @pytest.mark.asyncio
    async def test_failed_password_write_keeps_link_usable(
        self, auth_service, token_service, user_repo, used_token_repo, hasher, monkeypatch, sample_user_data
    ):
        registered = await _register(auth_service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.PASSWORD_RESET)
        original_update = user_repo.update_password

        async def broken_update(user_id, password_hash):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(user_repo, "update_password", broken_update)
        with pytest.raises(RuntimeError):
            await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))
        assert used_token_repo.used == set()

        monkeypatch.setattr(user_repo, "update_password", original_update)
        await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))

        stored = await user_repo.find_by_id(registered.user.id)
        assert await hasher.verify("new-secret", stored.password_hash)
        with pytest.raises(InvalidTokenError) as exc_info:
            await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="other-secret"))
        assert exc_info.value.error_code == "TOKEN_ALREADY_USED"

    @pytest.mark.asyncio
    async def test_forged_reset_token_rejected(self, auth_service, sample_user_data):
        await _register(auth_service, sample_user_data)
        forger = TokenService(settings_with_other_secret())
        registered_id = next(iter(auth_service.users.by_id))
        token = forger.issue(registered_id, TokenType.PASSWORD_RESET)

        with pytest.raises(InvalidTokenError):
            await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))

    @pytest.mark.asyncio
    async def test_access_token_cannot_reset_password(self, auth_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        with pytest.raises(InvalidTokenError):
            await auth_service.reset_password(
                ResetPasswordRequest(token=registered.access_token, new_password="new-secret")
            )

    @pytest.mark.asyncio
    async def test_reset_for_deleted_user_rejected(self, auth_service, token_service):
        token = token_service.issue("ghost", TokenType.PASSWORD_RESET)
        with pytest.raises(InvalidTokenError):
            await auth_service.reset_password(ResetPasswordRequest(token=token, new_password="new-secret"))


class TestEmailVerification:

    @pytest.mark.asyncio
    async def test_verify_email_sets_flag(self, auth_service, token_service, user_repo, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.EMAIL_VERIFICATION)

        await auth_service.verify_email(VerifyEmailRequest(token=token))
        assert (await user_repo.find_by_id(registered.user.id)).is_verified is True

    @pytest.mark.asyncio
    async def test_failed_verified_write_keeps_link_usable(
        self, auth_service, token_service, user_repo, monkeypatch, sample_user_data
    ):
        registered = await _register(auth_service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.EMAIL_VERIFICATION)
        original_update = user_repo.update_verified

        async def broken_update(user_id, is_verified=True):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(user_repo, "update_verified", broken_update)
        with pytest.raises(RuntimeError):
            await auth_service.verify_email(VerifyEmailRequest(token=token))

        monkeypatch.setattr(user_repo, "update_verified", original_update)
        await auth_service.verify_email(VerifyEmailRequest(token=token))
        assert (await user_repo.find_by_id(registered.user.id)).is_verified is True

    @pytest.mark.asyncio
    async def test_reset_token_cannot_verify_email(self, auth_service, token_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        token = token_service.issue(registered.user.id, TokenType.PASSWORD_RESET)
        with pytest.raises(InvalidTokenError):
            await auth_service.verify_email(VerifyEmailRequest(token=token))

    @pytest.mark.asyncio
    async def test_resend_for_unknown_email(self, auth_service):
        with pytest.raises(NotFoundError):
            await auth_service.resend_verification("nobody@x.com")

    @pytest.mark.asyncio
    async def test_resend_for_verified_user(self, auth_service, user_repo, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        await user_repo.update_verified(registered.user.id, True)
        with pytest.raises(AlreadyVerifiedError):
            await auth_service.resend_verification("a@x.com")

    @pytest.mark.asyncio
    async def test_resend_sends_email(self, auth_service, email_dispatcher, email_sender, sample_user_data):
        await _register(auth_service, sample_user_data)
        await email_dispatcher.drain()
        email_sender.messages.clear()

        await auth_service.resend_verification("a@x.com")
        assert [m.subject for m in email_sender.messages] == ["Welcome to Feest - Verify Your Email"]

    @pytest.mark.asyncio
    async def test_resend_transport_failure_surfaces(self, user_repo, hasher, token_service, settings, sample_user_data):
        sender = RecordingEmailSender()
        service = AuthService(user_repo, hasher, token_service, EmailDispatcher(sender, settings))
        await _register(service, sample_user_data)
        await service.email.drain()
        sender.fail = True

        with pytest.raises(ExternalServiceError) as exc_info:
            await service.resend_verification("a@x.com")
        assert exc_info.value.status_code == 502


class TestChangePassword:

    @pytest.mark.asyncio
    async def test_change_password(self, auth_service, user_repo, hasher, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        await auth_service.change_password(
            registered.user.id, ChangePasswordRequest(current_password="secret1", new_password="secret2")
        )

        stored = await user_repo.find_by_id(registered.user.id)
        assert await hasher.verify("secret2", stored.password_hash)
        assert not await hasher.verify("secret1", stored.password_hash)

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, auth_service, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        with pytest.raises(AuthenticationError) as exc_info:
            await auth_service.change_password(
                registered.user.id, ChangePasswordRequest(current_password="nope", new_password="secret2")
            )
        assert exc_info.value.error_code == "INVALID_CURRENT_PASSWORD"

    @pytest.mark.asyncio
    async def test_missing_user(self, auth_service):
        with pytest.raises(NotFoundError):
            await auth_service.change_password(
                "ghost", ChangePasswordRequest(current_password="secret1", new_password="secret2")
            )


class TestScenario:

    @pytest.mark.asyncio
    async def test_register_login_reset_change(self, auth_service, token_service, user_repo, hasher, sample_user_data):
        registered = await _register(auth_service, sample_user_data)
        assert registered.user.is_verified is False

        with pytest.raises(AuthenticationError):
            await auth_service.login(LoginRequest(email="a@x.com", password="wrong"))

        logged_in = await auth_service.login(LoginRequest(email="a@x.com", password="secret1"))
        assert logged_in.access_token and logged_in.refresh_token

        forged = TokenService(settings_with_other_secret()).issue(registered.user.id, TokenType.PASSWORD_RESET)
        with pytest.raises(InvalidTokenError):
            await auth_service.reset_password(ResetPasswordRequest(token=forged, new_password="hacked1"))

        await auth_service.change_password(
            registered.user.id, ChangePasswordRequest(current_password="secret1", new_password="secret9")
        )
        stored = await user_repo.find_by_id(registered.user.id)
        assert not await hasher.verify("secret1", stored.password_hash)
        assert await hasher.verify("secret9", stored.password_hash)


class TestExtractToken:

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("Basic abc", None),
            ("Bearer ", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_token_from_header(self, header, expected):
        assert AuthService.extract_token_from_header(header) == expected
