"""
Category API Endpoints.

Category tree and per-category moderators.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import RequestSchema, get_category_service, ok, require_admin
from agora.models.forum import CategoryVisibility
from agora.models.user import User
from agora.modules.categories.service import CategoryService

router = APIRouter()


# ==================== Schemas ====================


class CreateCategoryRequest(RequestSchema):
    """Create category or subcategory."""

    name: str
    slug: str | None = None
    description: str | None = None
    parent_id: int | None = None
    icon: str | None = None
    color: str | None = None
    display_order: int = 0
    visibility: CategoryVisibility = CategoryVisibility.PUBLIC


class UpdateCategoryRequest(RequestSchema):
    """Update category fields. Sending parentId (even null) moves it."""

    name: str | None = None
    slug: str | None = None
    description: str | None = None
    parent_id: int | None = None
    icon: str | None = None
    color: str | None = None
    display_order: int | None = None
    visibility: CategoryVisibility | None = None
    is_active: bool | None = None


class CategoryOrder(RequestSchema):
    id: int
    display_order: int


class ReorderCategoriesRequest(RequestSchema):
    """New display orders."""

    orders: list[CategoryOrder]


class AssignModeratorRequest(RequestSchema):
    user_id: int


# ==================== Read ====================


@router.get("")
async def get_categories(
    tree: bool = Query(True, description="Nest subcategories under their parent"),
    include_inactive: bool = Query(False),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    """Get forum categories."""
    if tree:
        return ok(await categories.get_category_tree())
    items = await categories.list_categories(include_inactive=include_inactive)
    return ok([categories.to_dict(c) for c in items])


@router.get("/slug/{slug}")
async def get_category_by_slug(
    slug: str,
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    return ok(categories.to_dict(await categories.get_category_by_slug(slug)))


@router.get("/{category_id}")
async def get_category(
    category_id: int,
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    return ok(categories.to_dict(await categories.get_category(category_id)))


# ==================== Admin ====================


@router.post("", status_code=201)
async def create_category(
    request: CreateCategoryRequest,
    admin: User = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    """Create new category."""
    category = await categories.create_category(**request.model_dump())
    return ok(categories.to_dict(category))


@router.put("/reorder")
async def reorder_categories(
    request: ReorderCategoriesRequest,
    admin: User = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    await categories.reorder_categories([item.model_dump() for item in request.orders])
    return ok({"message": "Categories reordered"})


@router.put("/{category_id}")
async def update_category(
    category_id: int,
    request: UpdateCategoryRequest,
    admin: User = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    """Update category."""
    category = await categories.update_category(
        category_id, **request.model_dump(exclude_unset=True)
    )
    return ok(categories.to_dict(category))


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    admin: User = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    """Deactivate a category without topics."""
    await categories.delete_category(category_id)
    return ok({"message": "Category deleted"})


# ==================== Moderators ====================


@router.get("/{category_id}/moderators")
async def list_moderators(
    category_id: int,
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    return ok(await categories.list_moderators(category_id))


@router.post("/{category_id}/moderators", status_code=201)
async def assign_moderator(
    category_id: int,
    request: AssignModeratorRequest,
    admin: User = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    await categories.assign_moderator(category_id, request.user_id, assigned_by=admin)
    return ok({"message": "Moderator assigned"})


@router.delete("/{category_id}/moderators/{user_id}")
async def remove_moderator(
    category_id: int,
    user_id: int,
    admin: User = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    await categories.remove_moderator(category_id, user_id)
    return ok({"message": "Moderator removed"})
