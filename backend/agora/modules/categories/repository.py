"""
Category Repository - Category tree and category moderators.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.models.forum import CategoryModerator, ForumCategory, Topic
from agora.models.user import User


class CategoryRepository:
    """Queries over `forum_categories` and `category_moderators`."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, category_id: int) -> ForumCategory | None:
        return await self.db.get(ForumCategory, category_id)

    async def get_by_slug(self, slug: str) -> ForumCategory | None:
        result = await self.db.execute(
            select(ForumCategory).where(ForumCategory.slug == slug)
        )
        return result.scalar_one_or_none()

    async def slug_exists(self, slug: str, exclude_id: int | None = None) -> bool:
        query = select(ForumCategory.id).where(ForumCategory.slug == slug)
        if exclude_id is not None:
            query = query.where(ForumCategory.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None

    async def list_all(self, include_inactive: bool = False) -> list[ForumCategory]:
        query = select(ForumCategory).order_by(
            ForumCategory.level, ForumCategory.display_order, ForumCategory.name
        )
        if not include_inactive:
            query = query.where(ForumCategory.is_active == True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def children_count(self, category_id: int) -> int:
        result = await self.db.execute(
            select(func.count(ForumCategory.id)).where(
                ForumCategory.parent_id == category_id,
                ForumCategory.is_active == True,
            )
        )
        return int(result.scalar_one())

    async def topic_count(self, category_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Topic.id)).where(Topic.category_id == category_id)
        )
        return int(result.scalar_one())

    async def add(self, category: ForumCategory) -> ForumCategory:
        self.db.add(category)
        await self.db.flush()
        return category

    # ==================== Moderators ====================

    async def get_moderator(self, category_id: int, user_id: int) -> CategoryModerator | None:
        result = await self.db.execute(
            select(CategoryModerator).where(
                CategoryModerator.category_id == category_id,
                CategoryModerator.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_moderator(
        self,
        category_id: int,
        user_id: int,
        assigned_by: int | None = None,
    ) -> CategoryModerator:
        moderator = CategoryModerator(
            category_id=category_id, user_id=user_id, assigned_by=assigned_by
        )
        self.db.add(moderator)
        await self.db.flush()
        return moderator

    async def remove_moderator(self, moderator: CategoryModerator) -> None:
        await self.db.delete(moderator)
        await self.db.flush()

    async def list_moderators(self, category_id: int) -> list[tuple[CategoryModerator, User]]:
        result = await self.db.execute(
            select(CategoryModerator, User)
            .join(User, User.id == CategoryModerator.user_id)
            .where(CategoryModerator.category_id == category_id)
            .order_by(CategoryModerator.created_at)
        )
        return [(row[0], row[1]) for row in result.all()]
