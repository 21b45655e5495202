"""pytest配置文件"""
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

# 设置测试环境变量
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "DEBUG"

from foodshare.config import Settings  # noqa: E402
from foodshare.factory import create_app  # noqa: E402
from foodshare.logging.config import StructuredLogger  # noqa: E402
from foodshare.models.tables import UserRole  # noqa: E402
from foodshare.repositories.users import DuplicateUserError  # noqa: E402
from foodshare.security import PasswordHasher, TokenService  # noqa: E402
from foodshare.services import AuthService, EmailDispatcher  # noqa: E402

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "testing",
        "jwt_secret": ACCESS_SECRET,
        "jwt_refresh_secret": REFRESH_SECRET,
        "jwt_expires_in": "15m",
        "jwt_refresh_expires_in": "7d",
        "bcrypt_rounds": 4,
        "database_url": "sqlite+aiosqlite:///:memory:",
        "enable_rate_limiting": False,
        "frontend_url": "http://localhost:8081",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@dataclass
class FakeUser:
    """与 ORM User 属性一致的内存对象"""
    email: str
    username: str
    password_hash: str
    first_name: str
    last_name: str
    phone: str | None = None
    avatar: str | None = None
    role: UserRole = UserRole.REGULAR
    is_verified: bool = False
    is_active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryUserRepository:
    """UserRepository 的内存实现"""

    def __init__(self):
        self.by_id: dict[str, FakeUser] = {}

    async def find_by_email_or_username(self, email, username):
        for user in self.by_id.values():
            if user.email == email or user.username == username:
                return user
        return None

    async def find_by_email(self, email):
        return next((u for u in self.by_id.values() if u.email == email), None)

    async def find_by_id(self, user_id):
        return self.by_id.get(user_id)

    async def create_user(self, **fields):
        if await self.find_by_email_or_username(fields["email"], fields["username"]):
            raise DuplicateUserError("duplicate")
        user = FakeUser(**fields)
        self.by_id[user.id] = user
        return user

    async def update_password(self, user_id, password_hash):
        user = self.by_id.get(user_id)
        if user is None:
            return False
        user.password_hash = password_hash
        return True

    async def update_verified(self, user_id, is_verified=True):
        user = self.by_id.get(user_id)
        if user is None:
            return False
        user.is_verified = is_verified
        return True

    async def update_active(self, user_id, is_active):
        user = self.by_id.get(user_id)
        if user is not None:
            user.is_active = is_active
        return user

    async def update_profile(self, user_id, fields):
        user = self.by_id.get(user_id)
        if user is not None:
            for key, value in fields.items():
                setattr(user, key, value)
        return user


class InMemoryUsedTokenRepository:
    def __init__(self):
        self.used: set[str] = set()

    async def consume(self, jti, user_id, token_type, expires_at):
        if jti in self.used:
            return False
        self.used.add(jti)
        return True

    async def release(self, jti):
        self.used.discard(jti)


class RecordingEmailSender:
    """记录发送的邮件；fail=True 时模拟 SMTP 故障"""

    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    async def send(self, message):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.messages.append(message)


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """设置测试日志"""
    StructuredLogger.setup_logging(log_level="DEBUG", enable_json=False)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def hasher(settings):
    return PasswordHasher(settings.bcrypt_rounds)


@pytest.fixture
def token_service(settings):
    return TokenService(settings)


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def used_token_repo():
    return InMemoryUsedTokenRepository()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def email_dispatcher(email_sender, settings):
    return EmailDispatcher(email_sender, settings)


@pytest.fixture
def auth_service(user_repo, hasher, token_service, email_dispatcher, used_token_repo):
    return AuthService(user_repo, hasher, token_service, email_dispatcher, used_tokens=used_token_repo)


@pytest.fixture
def sample_user_data():
    """示例注册数据"""
    return {
        "email": "a@x.com",
        "username": "alice",
        "password": "secret1",
        "firstName": "Alice",
        "lastName": "Smith",
    }


# ---------------------------------------------------------------------------
# HTTP 层
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "feest-test.db"


@pytest.fixture
def api_settings(db_path):
    return make_settings(database_url=f"sqlite+aiosqlite:///{db_path}", db_auto_create=True)


@pytest.fixture
def app(api_settings, email_sender):
    return create_app(api_settings, email_sender=email_sender)


@pytest.fixture
def client(app):
    """测试客户端（触发应用生命周期，自动建表）"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_prefix(api_settings):
    return api_settings.api_prefix


@pytest.fixture
def register_user(client, api_prefix):
    """注册用户并返回响应数据"""
    counter = {"n": 0}

    def _register(**overrides):
        counter["n"] += 1
        payload = {
            "email": f"user{counter['n']}@example.com",
            "username": f"user{counter['n']}",
            "password": "secret1",
            "firstName": "Test",
            "lastName": "User",
        }
        payload.update(overrides)
        response = client.post(f"{api_prefix}/auth/register", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _register


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """根据访问令牌构建认证请求头"""
    return bearer
