"""
Category Service - Two-level category tree and per-category moderators.
"""

from typing import Any

from loguru import logger
from slugify import slugify
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.exceptions import BadRequestError, ConflictError, NotFoundError
from agora.models.forum import CategoryVisibility, ForumCategory
from agora.models.user import User
from agora.modules.categories.repository import CategoryRepository

MAX_CATEGORY_DEPTH = 2


class CategoryService:
    """
    Service for managing forum categories.

    Usage:
        categories = CategoryService(db, CategoryRepository(db))
        tree = await categories.get_category_tree()
    """

    def __init__(self, db: AsyncSession, categories: CategoryRepository) -> None:
        self.db = db
        self.categories = categories

    # ==================== Read ====================

    async def get_category_tree(self) -> list[dict[str, Any]]:
        """Active top-level categories, each with its active children."""
        categories = await self.categories.list_all()
        children: dict[int, list[ForumCategory]] = {}
        for category in categories:
            if category.parent_id is not None:
                children.setdefault(category.parent_id, []).append(category)

        tree = []
        for category in categories:
            if category.level != 1:
                continue
            node = self.to_dict(category)
            node["children"] = [
                self.to_dict(child)
                for child in sorted(
                    children.get(category.id, []), key=lambda c: c.display_order
                )
            ]
            tree.append(node)
        return sorted(tree, key=lambda node: node["display_order"])

    async def list_categories(self, include_inactive: bool = False) -> list[ForumCategory]:
        return await self.categories.list_all(include_inactive=include_inactive)

    async def get_category(self, category_id: int) -> ForumCategory:
        category = await self.categories.get(category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    async def get_category_by_slug(self, slug: str) -> ForumCategory:
        category = await self.categories.get_by_slug(slug)
        if not category:
            raise NotFoundError("Category not found")
        return category

    # ==================== Write ====================

    async def create_category(
        self,
        name: str,
        slug: str | None = None,
        description: str | None = None,
        parent_id: int | None = None,
        icon: str | None = None,
        color: str | None = None,
        display_order: int = 0,
        visibility: CategoryVisibility = CategoryVisibility.PUBLIC,
    ) -> ForumCategory:
        """
        Create a category.

        Raises:
            ConflictError: Slug already taken
            NotFoundError: Parent does not exist
            BadRequestError: Parent is already a subcategory
        """
        slug = slug or slugify(name)[:100]
        if await self.categories.slug_exists(slug):
            raise ConflictError("Category slug already exists")

        level = 1
        if parent_id is not None:
            parent = await self.categories.get(parent_id)
            if not parent:
                raise NotFoundError("Parent category not found")
            if parent.level >= MAX_CATEGORY_DEPTH:
                raise BadRequestError("Cannot create subcategory: maximum depth is 2 levels")
            level = parent.level + 1

        category = await self.categories.add(
            ForumCategory(
                name=name,
                slug=slug,
                description=description,
                parent_id=parent_id,
                level=level,
                icon=icon,
                color=color,
                display_order=display_order,
                visibility=visibility,
            )
        )
        logger.info(f"Category created: {category.slug} (level {level})")
        return category

    async def update_category(self, category_id: int, **changes: Any) -> ForumCategory:
        """
        Update category fields. A `parent_id` key (even None) moves the
        category within the tree.

        Raises:
            NotFoundError: Category or new parent does not exist
            ConflictError: Slug already taken
            BadRequestError: The move would break the two-level tree
        """
        category = await self.get_category(category_id)

        slug = changes.pop("slug", None)
        if slug and slug != category.slug:
            if await self.categories.slug_exists(slug, exclude_id=category_id):
                raise ConflictError("Category slug already exists")
            category.slug = slug

        if "parent_id" in changes:
            await self._move(category, changes.pop("parent_id"))

        for field in ("name", "description", "icon", "color", "display_order", "visibility", "is_active"):
            if changes.get(field) is not None:
                setattr(category, field, changes[field])

        await self.db.flush()
        return category

    async def _move(self, category: ForumCategory, parent_id: int | None) -> None:
        if parent_id is None:
            category.parent_id = None
            category.level = 1
            return

        if parent_id == category.id:
            raise BadRequestError("Category cannot be its own parent")

        parent = await self.categories.get(parent_id)
        if not parent:
            raise NotFoundError("Parent category not found")
        if parent.parent_id == category.id:
            raise BadRequestError("Cannot move category to its own child")
        if parent.level >= MAX_CATEGORY_DEPTH:
            raise BadRequestError("Cannot move to subcategory: maximum depth is 2 levels")
        if await self.categories.children_count(category.id) > 0:
            raise BadRequestError("Category with subcategories cannot become a subcategory")

        category.parent_id = parent.id
        category.level = parent.level + 1

    async def delete_category(self, category_id: int) -> None:
        """Soft delete. Refused while the category still holds topics or active subcategories."""
        category = await self.get_category(category_id)
        if await self.categories.topic_count(category_id) > 0:
            raise ConflictError("Cannot delete category with existing topics")
        if await self.categories.children_count(category_id) > 0:
            raise ConflictError("Cannot delete category with active subcategories")

        category.is_active = False
        await self.db.flush()
        logger.info(f"Category deactivated: {category.slug}")

    async def reorder_categories(self, orders: list[dict[str, int]]) -> None:
        """
        Apply new display orders.

        Args:
            orders: [{"id": 1, "display_order": 0}, ...]
        """
        categories = []
        for item in orders:
            category = await self.categories.get(item["id"])
            if not category:
                raise NotFoundError(f"Category not found: {item['id']}")
            categories.append((category, item["display_order"]))

        for category, display_order in categories:
            category.display_order = display_order
        await self.db.flush()

    # ==================== Moderators ====================

    async def assign_moderator(
        self,
        category_id: int,
        user_id: int,
        assigned_by: User | None = None,
    ) -> None:
        await self.get_category(category_id)
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found")
        if await self.categories.get_moderator(category_id, user_id):
            raise ConflictError("User is already a moderator of this category")

        await self.categories.add_moderator(
            category_id, user_id, assigned_by.id if assigned_by else None
        )
        logger.info(f"User {user_id} assigned as moderator of category {category_id}")

    async def remove_moderator(self, category_id: int, user_id: int) -> None:
        await self.get_category(category_id)
        moderator = await self.categories.get_moderator(category_id, user_id)
        if not moderator:
            raise NotFoundError("User is not a moderator of this category")

        await self.categories.remove_moderator(moderator)
        logger.info(f"User {user_id} removed as moderator of category {category_id}")

    async def list_moderators(self, category_id: int) -> list[dict[str, Any]]:
        await self.get_category(category_id)
        return [
            {
                "user_id": user.id,
                "username": user.username,
                "assigned_at": assignment.created_at.isoformat(),
            }
            for assignment, user in await self.categories.list_moderators(category_id)
        ]

    async def is_category_moderator(self, category_id: int, user_id: int) -> bool:
        return await self.categories.get_moderator(category_id, user_id) is not None

    # ==================== Serialization ====================

    @staticmethod
    def to_dict(category: ForumCategory) -> dict[str, Any]:
        return {
            "id": category.id,
            "name": category.name,
            "slug": category.slug,
            "description": category.description,
            "icon": category.icon,
            "color": category.color,
            "parent_id": category.parent_id,
            "level": category.level,
            "display_order": category.display_order,
            "visibility": category.visibility.value,
            "is_active": category.is_active,
            "topic_count": category.topic_count,
            "reply_count": category.reply_count,
            "last_activity_at": (
                category.last_activity_at.isoformat() if category.last_activity_at else None
            ),
        }
