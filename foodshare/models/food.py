"""食物条目相关数据模型"""
from datetime import datetime

from pydantic import Field

from .common import CamelModel
from .tables import FoodCategory, FoodCondition
from .user import OwnerSummary


class LocationInput(CamelModel):
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(default="", max_length=100)
    country: str = Field(default="", max_length=100)
    zip_code: str | None = Field(default=None, max_length=20)
    latitude: float = Field(default=0.0, ge=-90, le=90)
    longitude: float = Field(default=0.0, ge=-180, le=180)


class LocationRead(LocationInput):
    id: str


class FoodCreateRequest(CamelModel):
    """发布食物请求"""
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    category: FoodCategory
    condition: FoodCondition = FoodCondition.FRESH
    expiry_date: datetime | None = None
    pickup_by: datetime
    quantity: int = Field(..., ge=1)
    unit: str = Field(default="portions", min_length=1, max_length=30)
    cuisine: str | None = Field(default=None, max_length=50)
    ingredients: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    location: LocationInput | None = None


class FoodUpdateRequest(CamelModel):
    """更新食物请求（仅提交的字段生效）"""
    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=2000)
    category: FoodCategory | None = None
    condition: FoodCondition | None = None
    expiry_date: datetime | None = None
    pickup_by: datetime | None = None
    quantity: int | None = Field(default=None, ge=1)
    unit: str | None = Field(default=None, min_length=1, max_length=30)
    cuisine: str | None = Field(default=None, max_length=50)
    ingredients: list[str] | None = None
    allergens: list[str] | None = None
    tags: list[str] | None = None
    images: list[str] | None = None


class FoodFilters(CamelModel):
    """公开列表筛选条件"""
    category: str | None = None
    search: str | None = None
    condition: FoodCondition | None = None
    location: str | None = None


class FoodRead(CamelModel):
    id: str
    title: str
    description: str
    category: FoodCategory
    condition: FoodCondition
    expiry_date: datetime | None = None
    pickup_by: datetime
    quantity: int
    unit: str
    cuisine: str | None = None
    ingredients: list[str]
    allergens: list[str]
    tags: list[str]
    images: list[str]
    is_active: bool
    is_reserved: bool
    owner_id: str
    created_at: datetime
    updated_at: datetime
    owner: OwnerSummary | None = None
    location: LocationRead | None = None
