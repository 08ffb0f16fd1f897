"""
Search Repository - Term matching over topics and replies, history and saved searches.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.models.forum import Reply, Topic, TopicStatus
from agora.models.search import SavedSearch, SearchHistory

# Rows fetched per content kind before ranking
CANDIDATE_LIMIT = 500


def _matches(columns: list, term: str):
    return or_(*[func.lower(column).contains(term, autoescape=True) for column in columns])


def _term_conditions(columns: list, terms: list[str], excluded: list[str]) -> list:
    conditions = [_matches(columns, term) for term in terms]
    conditions.extend(not_(_matches(columns, term)) for term in excluded)
    return conditions


def _topic_filters(filters: dict[str, Any]) -> list:
    """Filters that apply to a topic, or to the topic a reply belongs to."""
    conditions = [Topic.is_draft == False, Topic.status != TopicStatus.ARCHIVED]
    if filters.get("category_id") is not None:
        conditions.append(Topic.category_id == filters["category_id"])
    if filters.get("types"):
        conditions.append(Topic.type.in_(filters["types"]))
    if filters.get("statuses"):
        conditions.append(Topic.status.in_(filters["statuses"]))
    return conditions


def _content_filters(model, filters: dict[str, Any]) -> list:
    conditions = []
    date_from: datetime | None = filters.get("date_from")
    date_to: datetime | None = filters.get("date_to")
    if date_from:
        conditions.append(model.created_at >= date_from)
    if date_to:
        conditions.append(model.created_at <= date_to)
    if filters.get("has_code"):
        conditions.append(model.content.contains("```"))
    if filters.get("min_upvotes") is not None:
        conditions.append(model.upvote_count >= filters["min_upvotes"])
    if filters.get("author_id") is not None:
        conditions.append(model.author_id == filters["author_id"])
    return conditions


class SearchRepository:
    """Queries behind forum search."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ==================== Search ====================

    async def search_topics(
        self,
        terms: list[str],
        excluded: list[str],
        filters: dict[str, Any],
    ) -> list[Topic]:
        result = await self.db.execute(
            select(Topic)
            .options(selectinload(Topic.author), selectinload(Topic.category))
            .where(
                *_topic_filters(filters),
                *_content_filters(Topic, filters),
                *_term_conditions([Topic.title, Topic.content], terms, excluded),
            )
            .order_by(Topic.created_at.desc())
            .limit(CANDIDATE_LIMIT)
        )
        return list(result.scalars().all())

    async def search_replies(
        self,
        terms: list[str],
        excluded: list[str],
        filters: dict[str, Any],
    ) -> list[tuple[Reply, Topic]]:
        result = await self.db.execute(
            select(Reply, Topic)
            .join(Topic, Topic.id == Reply.topic_id)
            .options(selectinload(Reply.author), selectinload(Topic.category))
            .where(
                Reply.is_deleted == False,
                *_topic_filters(filters),
                *_content_filters(Reply, filters),
                *_term_conditions([Reply.content], terms, excluded),
            )
            .order_by(Reply.created_at.desc())
            .limit(CANDIDATE_LIMIT)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def title_suggestions(self, query: str, limit: int = 7) -> list[str]:
        result = await self.db.execute(
            select(Topic.title)
            .where(
                Topic.is_draft == False,
                Topic.status != TopicStatus.ARCHIVED,
                func.lower(Topic.title).contains(query.lower(), autoescape=True),
            )
            .distinct()
            .order_by(Topic.title)
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== History ====================

    async def add_history(self, entry: SearchHistory) -> SearchHistory:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_history(self, user_id: int, limit: int = 10) -> list[SearchHistory]:
        result = await self.db.execute(
            select(SearchHistory)
            .where(SearchHistory.user_id == user_id)
            .order_by(SearchHistory.created_at.desc(), SearchHistory.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_history_entry(self, entry_id: int, user_id: int) -> SearchHistory | None:
        result = await self.db.execute(
            select(SearchHistory).where(
                SearchHistory.id == entry_id,
                SearchHistory.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def delete_history_entry(self, entry: SearchHistory) -> None:
        await self.db.delete(entry)
        await self.db.flush()

    async def clear_history(self, user_id: int) -> int:
        result = await self.db.execute(
            delete(SearchHistory).where(SearchHistory.user_id == user_id)
        )
        return result.rowcount or 0

    async def recent_queries(self, user_id: int, limit: int = 3) -> list[str]:
        """Distinct queries, most recently run first."""
        result = await self.db.execute(
            select(SearchHistory.query, func.max(SearchHistory.created_at).label("last_run"))
            .where(SearchHistory.user_id == user_id)
            .group_by(SearchHistory.query)
            .order_by(func.max(SearchHistory.created_at).desc())
            .limit(limit)
        )
        return [row[0] for row in result.all()]

    async def popular_queries(self, limit: int = 10) -> list[tuple[str, int]]:
        count = func.count(SearchHistory.id)
        result = await self.db.execute(
            select(SearchHistory.query, count)
            .group_by(SearchHistory.query)
            .order_by(count.desc(), SearchHistory.query)
            .limit(limit)
        )
        return [(row[0], int(row[1])) for row in result.all()]

    # ==================== Saved searches ====================

    async def add_saved(self, saved: SavedSearch) -> SavedSearch:
        self.db.add(saved)
        await self.db.flush()
        return saved

    async def list_saved(self, user_id: int) -> list[SavedSearch]:
        result = await self.db.execute(
            select(SavedSearch)
            .where(SavedSearch.user_id == user_id)
            .order_by(SavedSearch.created_at.desc(), SavedSearch.id.desc())
        )
        return list(result.scalars().all())

    async def get_saved(self, saved_id: int, user_id: int) -> SavedSearch | None:
        result = await self.db.execute(
            select(SavedSearch).where(
                SavedSearch.id == saved_id,
                SavedSearch.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def saved_name_exists(
        self,
        user_id: int,
        name: str,
        exclude_id: int | None = None,
    ) -> bool:
        query = select(SavedSearch.id).where(
            SavedSearch.user_id == user_id,
            SavedSearch.name == name,
        )
        if exclude_id is not None:
            query = query.where(SavedSearch.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None

    async def count_saved(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(SavedSearch.id)).where(SavedSearch.user_id == user_id)
        )
        return int(result.scalar_one())

    async def delete_saved(self, saved: SavedSearch) -> None:
        await self.db.delete(saved)
        await self.db.flush()
