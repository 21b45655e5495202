"""食物服务单元测试"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from foodshare.exceptions import AppValidationError, BusinessLogicError, NotFoundError
from foodshare.models.food import FoodCreateRequest, FoodFilters, FoodUpdateRequest
from foodshare.models.tables import FoodCategory, FoodCondition
from foodshare.services import FoodService


@dataclass
class FakeOwner:
    id: str
    first_name: str = "Owner"
    last_name: str = "One"
    avatar: str | None = None


@dataclass
class FakeFood:
    owner_id: str
    title: str
    description: str
    category: FoodCategory
    pickup_by: datetime
    quantity: int
    condition: FoodCondition = FoodCondition.FRESH
    unit: str = "portions"
    expiry_date: datetime | None = None
    cuisine: str | None = None
    ingredients: list = field(default_factory=list)
    allergens: list = field(default_factory=list)
    tags: list = field(default_factory=list)
    images: list = field(default_factory=list)
    is_active: bool = True
    is_reserved: bool = False
    location: object = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def owner(self):
        return FakeOwner(id=self.owner_id)


class InMemoryFoodRepository:
    def __init__(self):
        self.items: dict[str, FakeFood] = {}

    async def list_available(self, category=None, search=None, condition=None, location=None):
        result = [f for f in self.items.values() if f.is_active and not f.is_reserved]
        if category is not None:
            result = [f for f in result if f.category == category]
        if condition is not None:
            result = [f for f in result if f.condition == condition]
        if search:
            result = [f for f in result if search.lower() in (f.title + f.description).lower()]
        return sorted(result, key=lambda f: f.created_at, reverse=True)

    async def list_by_owner(self, owner_id):
        return [f for f in self.items.values() if f.owner_id == owner_id and f.is_active]

    async def get_active(self, food_id):
        food = self.items.get(food_id)
        return food if food is not None and food.is_active else None

    async def create(self, owner_id, fields, location=None):
        food = FakeFood(owner_id=owner_id, **fields)
        self.items[food.id] = food
        return food

    async def update(self, food_id, owner_id, fields):
        food = await self.get_active(food_id)
        if food is None or food.owner_id != owner_id:
            return None
        for key, value in fields.items():
            setattr(food, key, value)
        return food

    async def soft_delete(self, food_id, owner_id):
        food = await self.get_active(food_id)
        if food is None or food.owner_id != owner_id:
            return False
        food.is_active = False
        return True

    async def reserve(self, food_id, reserver_id):
        food = await self.get_active(food_id)
        if food is None or food.is_reserved or food.owner_id == reserver_id:
            return False
        food.is_reserved = True
        return True

    async def unreserve(self, food_id, owner_id):
        food = await self.get_active(food_id)
        if food is None or food.owner_id != owner_id:
            return False
        food.is_reserved = False
        return True


@pytest.fixture
def food_repo():
    return InMemoryFoodRepository()


@pytest.fixture
def food_service(food_repo):
    return FoodService(food_repo)


def make_request(**overrides) -> FoodCreateRequest:
    payload = {
        "title": "Vegetable soup",
        "description": "Two bowls of homemade soup",
        "category": "PREPARED_MEALS",
        "pickupBy": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
        "quantity": 2,
    }
    payload.update(overrides)
    return FoodCreateRequest.model_validate(payload)


class TestFoodService:

    @pytest.mark.asyncio
    async def test_create_applies_defaults(self, food_service):
        food = await food_service.create_food("owner-1", make_request())

        assert food.owner_id == "owner-1"
        assert food.condition == FoodCondition.FRESH
        assert food.unit == "portions"
        assert food.is_active is True
        assert food.is_reserved is False

    @pytest.mark.asyncio
    async def test_list_filters_by_category_and_search(self, food_service):
        await food_service.create_food("owner-1", make_request())
        await food_service.create_food("owner-1", make_request(title="Fresh apples", category="FRUITS"))

        fruits = await food_service.list_foods(FoodFilters(category="fruits"))
        assert [f.title for f in fruits] == ["Fresh apples"]

        everything = await food_service.list_foods(FoodFilters(category="ALL"))
        assert len(everything) == 2

        soups = await food_service.list_foods(FoodFilters(search="SOUP"))
        assert [f.title for f in soups] == ["Vegetable soup"]

    @pytest.mark.asyncio
    async def test_invalid_category_rejected(self, food_service):
        with pytest.raises(AppValidationError) as exc_info:
            await food_service.list_foods(FoodFilters(category="PIZZA"))
        assert exc_info.value.error_code == "INVALID_CATEGORY"

    @pytest.mark.asyncio
    async def test_get_missing_food(self, food_service):
        with pytest.raises(NotFoundError) as exc_info:
            await food_service.get_food("missing")
        assert exc_info.value.message == "Food item not found"

    @pytest.mark.asyncio
    async def test_update_only_by_owner(self, food_service):
        food = await food_service.create_food("owner-1", make_request())

        updated = await food_service.update_food(food.id, "owner-1", FoodUpdateRequest(title="Lentil soup"))
        assert updated.title == "Lentil soup"
        assert updated.description == "Two bowls of homemade soup"

        with pytest.raises(NotFoundError):
            await food_service.update_food(food.id, "intruder", FoodUpdateRequest(title="Mine now"))

    @pytest.mark.asyncio
    async def test_update_rejects_null_required_field(self, food_service):
        food = await food_service.create_food("owner-1", make_request())
        with pytest.raises(AppValidationError):
            await food_service.update_food(food.id, "owner-1", FoodUpdateRequest(title=None))

    @pytest.mark.asyncio
    async def test_empty_update_returns_current(self, food_service):
        food = await food_service.create_food("owner-1", make_request())
        unchanged = await food_service.update_food(food.id, "owner-1", FoodUpdateRequest())
        assert unchanged.title == food.title

        with pytest.raises(NotFoundError):
            await food_service.update_food(food.id, "intruder", FoodUpdateRequest())

    @pytest.mark.asyncio
    async def test_soft_delete_hides_listing(self, food_service):
        food = await food_service.create_food("owner-1", make_request())
        await food_service.delete_food(food.id, "owner-1")

        with pytest.raises(NotFoundError):
            await food_service.get_food(food.id)
        assert await food_service.list_my_foods("owner-1") == []

    @pytest.mark.asyncio
    async def test_reserve_flow(self, food_service):
        food = await food_service.create_food("owner-1", make_request())

        with pytest.raises(BusinessLogicError):
            await food_service.reserve_food(food.id, "owner-1")

        reserved = await food_service.reserve_food(food.id, "taker-1")
        assert reserved.is_reserved is True
        assert await food_service.list_foods(FoodFilters()) == []

        with pytest.raises(NotFoundError) as exc_info:
            await food_service.reserve_food(food.id, "taker-2")
        assert exc_info.value.message == "Food item not found or not available"

        released = await food_service.unreserve_food(food.id, "owner-1")
        assert released.is_reserved is False

    @pytest.mark.asyncio
    async def test_unreserve_by_non_owner(self, food_service):
        food = await food_service.create_food("owner-1", make_request())
        with pytest.raises(NotFoundError):
            await food_service.unreserve_food(food.id, "taker-1")
