"""
Search API Endpoints.

Search, suggestions, history and saved searches.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import (
    RequestSchema,
    get_current_user,
    get_optional_user,
    get_search_service,
    ok,
)
from agora.core.utils import naive_utc
from agora.models.forum import TopicStatus, TopicType
from agora.models.user import User
from agora.modules.search.service import SearchService

router = APIRouter()


# ==================== Schemas ====================


class SaveSearchRequest(RequestSchema):
    name: str
    query: str
    filters: dict[str, Any] = {}
    notify_on_new: bool = False


class UpdateSavedSearchRequest(RequestSchema):
    name: str | None = None
    query: str | None = None
    filters: dict[str, Any] | None = None
    notify_on_new: bool | None = None


# ==================== Search ====================


@router.get("")
async def search(
    q: str = Query(..., description="Search terms; prefix a term with - to exclude it"),
    category_id: int | None = Query(None),
    types: list[TopicType] | None = Query(None),
    statuses: list[TopicStatus] | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    has_code: bool | None = Query(None),
    min_upvotes: int | None = Query(None, ge=0),
    author_id: int | None = Query(None),
    sort: str = Query("relevance", description="relevance, date, popularity or votes"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User | None = Depends(get_optional_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    """Search topics and replies."""
    filters = {
        "category_id": category_id,
        "types": types,
        "statuses": statuses,
        "date_from": naive_utc(date_from),
        "date_to": naive_utc(date_to),
        "has_code": has_code,
        "min_upvotes": min_upvotes,
        "author_id": author_id,
    }
    return ok(await search.search(q, filters, sort, page, limit, user))


@router.get("/suggestions")
async def get_suggestions(
    q: str = Query(""),
    user: User | None = Depends(get_optional_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    return ok(await search.get_suggestions(q, user))


@router.get("/popular")
async def get_popular_queries(
    limit: int = Query(10, ge=1, le=50),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    return ok(await search.get_popular_queries(limit))


# ==================== History ====================


@router.get("/history")
async def get_search_history(
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    return ok(await search.get_search_history(user.id, limit))


@router.delete("/history")
async def clear_search_history(
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    deleted = await search.clear_search_history(user.id)
    return ok({"deleted": deleted})


@router.delete("/history/{entry_id}")
async def delete_search_history_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    await search.delete_search_history_entry(entry_id, user.id)
    return ok({"message": "Search history entry deleted"})


# ==================== Saved searches ====================


@router.get("/saved")
async def get_saved_searches(
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    return ok([search.saved_to_dict(s) for s in await search.get_saved_searches(user.id)])


@router.post("/saved", status_code=201)
async def save_search(
    request: SaveSearchRequest,
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    saved = await search.save_search(
        user.id, request.name, request.query, request.filters, request.notify_on_new
    )
    return ok(search.saved_to_dict(saved))


@router.get("/saved/{saved_id}")
async def get_saved_search(
    saved_id: int,
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    return ok(search.saved_to_dict(await search.get_saved_search(saved_id, user.id)))


@router.put("/saved/{saved_id}")
async def update_saved_search(
    saved_id: int,
    request: UpdateSavedSearchRequest,
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    saved = await search.update_saved_search(
        saved_id,
        user.id,
        name=request.name,
        query=request.query,
        filters=request.filters,
        notify_on_new=request.notify_on_new,
    )
    return ok(search.saved_to_dict(saved))


@router.delete("/saved/{saved_id}")
async def delete_saved_search(
    saved_id: int,
    user: User = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> dict[str, Any]:
    await search.delete_saved_search(saved_id, user.id)
    return ok({"message": "Saved search deleted"})
