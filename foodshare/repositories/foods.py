"""
食物条目数据访问层
"""
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.tables import Food, FoodCategory, FoodCondition, Location


class FoodRepository:
    """食物仓储"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_available(
        self,
        category: FoodCategory | None = None,
        search: str | None = None,
        condition: FoodCondition | None = None,
        location: str | None = None,
    ) -> list[Food]:
        """可领取的条目（启用且未预订），按发布时间倒序"""
        stmt = select(Food).where(Food.is_active.is_(True), Food.is_reserved.is_(False))
        if category is not None:
            stmt = stmt.where(Food.category == category)
        if condition is not None:
            stmt = stmt.where(Food.condition == condition)
        if search:
            term = search.lower()
            stmt = stmt.where(
                func.lower(Food.title).contains(term, autoescape=True)
                | func.lower(Food.description).contains(term, autoescape=True)
            )
        if location:
            stmt = stmt.where(
                Food.location.has(func.lower(Location.address).contains(location.lower(), autoescape=True))
            )
        stmt = stmt.order_by(Food.created_at.desc())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_by_owner(self, owner_id: str) -> list[Food]:
        stmt = (
            select(Food)
            .where(Food.owner_id == owner_id, Food.is_active.is_(True))
            .order_by(Food.created_at.desc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_active(self, food_id: str) -> Food | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Food).where(Food.id == food_id, Food.is_active.is_(True))
            )
            return result.scalar_one_or_none()

    async def create(self, owner_id: str, fields: dict, location: dict | None = None) -> Food:
        food = Food(owner_id=owner_id, **fields)
        if location is not None:
            food.location = Location(**location)
        async with self._session_factory() as session:
            session.add(food)
            await session.commit()
            food_id = food.id
        return await self.get_active(food_id)

    async def update(self, food_id: str, owner_id: str, fields: dict) -> Food | None:
        """仅条目主人可更新；无匹配时返回 None"""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Food)
                .where(Food.id == food_id, Food.owner_id == owner_id, Food.is_active.is_(True))
                .values(**fields)
            )
            await session.commit()
            if result.rowcount == 0:
                return None
        return await self.get_active(food_id)

    async def soft_delete(self, food_id: str, owner_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Food)
                .where(Food.id == food_id, Food.owner_id == owner_id, Food.is_active.is_(True))
                .values(is_active=False)
            )
            await session.commit()
            return result.rowcount > 0

    async def reserve(self, food_id: str, reserver_id: str) -> bool:
        """条件更新：仅当条目启用、未预订且预订者不是主人时成功"""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Food)
                .where(
                    Food.id == food_id,
                    Food.is_active.is_(True),
                    Food.is_reserved.is_(False),
                    Food.owner_id != reserver_id,
                )
                .values(is_reserved=True)
            )
            await session.commit()
            return result.rowcount > 0

    async def unreserve(self, food_id: str, owner_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Food)
                .where(
                    Food.id == food_id,
                    Food.owner_id == owner_id,
                    Food.is_active.is_(True),
                )
                .values(is_reserved=False)
            )
            await session.commit()
            return result.rowcount > 0
