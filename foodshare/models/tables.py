"""ORM 实体：用户、食物、位置与已使用令牌。"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, Enum):
    """用户角色（封闭枚举）。"""
    REGULAR = "regular"
    ADMIN = "admin"


class FoodCategory(str, Enum):
    FRUITS = "FRUITS"
    VEGETABLES = "VEGETABLES"
    GRAINS = "GRAINS"
    DAIRY = "DAIRY"
    MEAT = "MEAT"
    SEAFOOD = "SEAFOOD"
    BAKED_GOODS = "BAKED_GOODS"
    BEVERAGES = "BEVERAGES"
    SNACKS = "SNACKS"
    PREPARED_MEALS = "PREPARED_MEALS"
    OTHER = "OTHER"


class FoodCondition(str, Enum):
    FRESH = "FRESH"
    GOOD = "GOOD"
    FAIR = "FAIR"
    EXPIRED = "EXPIRED"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    """用户实体。"""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    avatar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=UserRole.REGULAR,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    foods: Mapped[list["Food"]] = relationship(back_populates="owner")


class Food(Base):
    """食物分享条目。"""

    __tablename__ = "foods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[FoodCategory] = mapped_column(
        SAEnum(FoodCategory, name="food_category", values_callable=_enum_values), nullable=False
    )
    condition: Mapped[FoodCondition] = mapped_column(
        SAEnum(FoodCondition, name="food_condition", values_callable=_enum_values),
        nullable=False,
        default=FoodCondition.FRESH,
    )
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pickup_by: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit: Mapped[str] = mapped_column(String(30), nullable=False, default="portions")
    cuisine: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ingredients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    allergens: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_reserved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    owner_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    owner: Mapped[User] = relationship(back_populates="foods", lazy="joined")
    location: Mapped[Optional["Location"]] = relationship(
        back_populates="food", uselist=False, lazy="joined", cascade="all, delete-orphan"
    )


class Location(Base):
    """食物取货位置。"""

    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    food_id: Mapped[str] = mapped_column(
        ForeignKey("foods.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    food: Mapped[Food] = relationship(back_populates="location")


class UsedToken(Base):
    """已兑换的一次性令牌（重置密码、邮箱验证）。"""

    __tablename__ = "used_tokens"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    token_type: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
