"""
食物分享业务服务
"""
from ..exceptions import AppValidationError, BusinessLogicError, NotFoundError
from ..logging.config import get_structured_logger
from ..models.food import FoodCreateRequest, FoodFilters, FoodRead, FoodUpdateRequest
from ..models.tables import FoodCategory
from ..repositories.foods import FoodRepository

logger = get_structured_logger(__name__)

NOT_FOUND_OR_DENIED = "Food item not found or access denied"


class FoodService:
    """食物条目的发布、浏览、更新与预订"""

    def __init__(self, foods: FoodRepository):
        self.foods = foods

    @staticmethod
    def _parse_category(value: str | None) -> FoodCategory | None:
        if not value or value.upper() == "ALL":
            return None
        try:
            return FoodCategory(value.upper())
        except ValueError:
            raise AppValidationError(f"Invalid category: {value}", "INVALID_CATEGORY")

    async def list_foods(self, filters: FoodFilters) -> list[FoodRead]:
        foods = await self.foods.list_available(
            category=self._parse_category(filters.category),
            search=filters.search or None,
            condition=filters.condition,
            location=filters.location or None,
        )
        return [FoodRead.model_validate(food) for food in foods]

    async def get_food(self, food_id: str) -> FoodRead:
        food = await self.foods.get_active(food_id)
        if food is None:
            raise NotFoundError("Food item not found", "FOOD_NOT_FOUND")
        return FoodRead.model_validate(food)

    async def list_my_foods(self, owner_id: str) -> list[FoodRead]:
        return [FoodRead.model_validate(food) for food in await self.foods.list_by_owner(owner_id)]

    async def create_food(self, owner_id: str, request: FoodCreateRequest) -> FoodRead:
        fields = request.model_dump(exclude={"location"})
        location = request.location.model_dump() if request.location else None
        food = await self.foods.create(owner_id, fields, location)
        logger.info("食物条目已发布", extra={"food_id": food.id, "user_id": owner_id})
        return FoodRead.model_validate(food)

    async def update_food(self, food_id: str, owner_id: str, request: FoodUpdateRequest) -> FoodRead:
        """部分更新，只修改请求中显式提供的字段"""
        fields = request.model_dump(exclude_unset=True)
        for key in ("title", "description", "category", "condition", "pickup_by", "quantity", "unit",
                    "ingredients", "allergens", "tags", "images"):
            if key in fields and fields[key] is None:
                raise AppValidationError(f"{key} cannot be null", "INVALID_FIELD")
        if not fields:
            food = await self.foods.get_active(food_id)
            if food is None or food.owner_id != owner_id:
                raise NotFoundError(NOT_FOUND_OR_DENIED, "FOOD_NOT_FOUND")
            return FoodRead.model_validate(food)

        food = await self.foods.update(food_id, owner_id, fields)
        if food is None:
            raise NotFoundError(NOT_FOUND_OR_DENIED, "FOOD_NOT_FOUND")
        return FoodRead.model_validate(food)

    async def delete_food(self, food_id: str, owner_id: str) -> None:
        """软删除"""
        if not await self.foods.soft_delete(food_id, owner_id):
            raise NotFoundError(NOT_FOUND_OR_DENIED, "FOOD_NOT_FOUND")
        logger.info("食物条目已下架", extra={"food_id": food_id, "user_id": owner_id})

    async def reserve_food(self, food_id: str, user_id: str) -> FoodRead:
        food = await self.foods.get_active(food_id)
        if food is None or food.is_reserved:
            raise NotFoundError("Food item not found or not available", "FOOD_NOT_AVAILABLE")
        if food.owner_id == user_id:
            raise BusinessLogicError("Cannot reserve your own food item", "OWN_FOOD_RESERVATION")

        # 并发预订时只有一个条件更新能成功
        if not await self.foods.reserve(food_id, user_id):
            raise NotFoundError("Food item not found or not available", "FOOD_NOT_AVAILABLE")
        logger.info("食物条目已被预订", extra={"food_id": food_id, "user_id": user_id})
        return await self.get_food(food_id)

    async def unreserve_food(self, food_id: str, owner_id: str) -> FoodRead:
        if not await self.foods.unreserve(food_id, owner_id):
            raise NotFoundError(NOT_FOUND_OR_DENIED, "FOOD_NOT_FOUND")
        return await self.get_food(food_id)
