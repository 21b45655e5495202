"""
食物条目路由
"""
from fastapi import APIRouter, Depends, Query, status

from ..dependencies import ServiceContainer, get_services
from ..middleware.auth import CurrentUser, get_current_user
from ..models.common import success_response
from ..models.food import FoodCreateRequest, FoodFilters, FoodUpdateRequest
from ..models.tables import FoodCondition

router = APIRouter(prefix="/foods", tags=["食物"])


def _wire(items) -> list[dict]:
    return [item.to_wire() for item in items]


@router.get("")
@router.get("/", include_in_schema=False)
async def list_foods(
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    condition: FoodCondition | None = Query(default=None),
    location: str | None = Query(default=None),
    services: ServiceContainer = Depends(get_services),
):
    """公开列表：启用且未被预订的条目"""
    filters = FoodFilters(category=category, search=search, condition=condition, location=location)
    foods = await services.food.list_foods(filters)
    return success_response("Food items retrieved successfully", _wire(foods))


# 必须声明在 /{food_id} 之前
@router.get("/my-foods")
async def my_foods(
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    foods = await services.food.list_my_foods(user.id)
    return success_response("User food items retrieved successfully", _wire(foods))


@router.get("/{food_id}")
async def get_food(food_id: str, services: ServiceContainer = Depends(get_services)):
    food = await services.food.get_food(food_id)
    return success_response("Food item retrieved successfully", food)


@router.post("", status_code=status.HTTP_201_CREATED)
@router.post("/", status_code=status.HTTP_201_CREATED, include_in_schema=False)
async def create_food(
    payload: FoodCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    food = await services.food.create_food(user.id, payload)
    return success_response("Food item created successfully", food)


@router.put("/{food_id}")
async def update_food(
    food_id: str,
    payload: FoodUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    food = await services.food.update_food(food_id, user.id, payload)
    return success_response("Food item updated successfully", food)


@router.delete("/{food_id}")
async def delete_food(
    food_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    await services.food.delete_food(food_id, user.id)
    return success_response("Food item deleted successfully")


@router.post("/{food_id}/reserve")
async def reserve_food(
    food_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    food = await services.food.reserve_food(food_id, user.id)
    return success_response("Food item reserved successfully", food)


@router.post("/{food_id}/unreserve")
async def unreserve_food(
    food_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    food = await services.food.unreserve_food(food_id, user.id)
    return success_response("Food item unreserved successfully", food)
