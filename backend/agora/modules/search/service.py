"""
Search Service - Forum search, suggestions, history and saved searches.
"""

import re
import time
from datetime import datetime
from typing import Any, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.background import fire_and_forget
from agora.core.database import session_scope
from agora.core.exceptions import BadRequestError, ConflictError, NotFoundError
from agora.core.utils import compact, isoformat, pagination_meta, utcnow
from agora.models.forum import Reply, Topic
from agora.models.search import SavedSearch, SearchHistory
from agora.models.user import User
from agora.modules.search.repository import SearchRepository

MAX_QUERY_LENGTH = 500
MAX_SAVED_SEARCHES = 20
MAX_SAVED_NAME_LENGTH = 100
SLOW_SEARCH_MS = 500
EXCERPT_LENGTH = 200
MAX_HIGHLIGHTS = 3

OPERATORS = {"and", "or", "not"}
SEARCH_SORTS = ("relevance", "date", "popularity", "votes")


def parse_query(query: str) -> tuple[list[str], list[str]]:
    """
    Split a query into required and excluded terms.

    Terms are lowercased, AND/OR/NOT are dropped and a leading "-"
    excludes a term.

    Returns:
        (terms, excluded)
    """
    terms: list[str] = []
    excluded: list[str] = []
    for word in query.replace('"', " ").lower().split():
        if word in OPERATORS:
            continue
        if word.startswith("-") and len(word) > 1:
            if word[1:] not in excluded:
                excluded.append(word[1:])
        elif word not in terms and word != "-":
            terms.append(word)
    return terms, excluded


def create_excerpt(content: str, length: int = EXCERPT_LENGTH) -> str:
    """Plain-text excerpt with markdown formatting removed."""
    text = re.sub(r"```[\s\S]*?```", "[code]", content or "")
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"#{1,6}\s", "", text).strip()
    if len(text) <= length:
        return text
    return text[:length].strip() + "..."


def create_highlights(text: str, terms: list[str]) -> list[str]:
    """Snippets around the first hit of each term, hits wrapped in <mark>."""
    highlights = []
    lowered = text.lower()
    for term in terms:
        if len(term) <= 2:
            continue
        index = lowered.find(term)
        if index == -1:
            continue
        start = max(0, index - 50)
        end = min(len(text), index + len(term) + 50)
        snippet = text[start:end]
        if start > 0:
            snippet = "..." + snippet
        if end < len(text):
            snippet += "..."
        highlights.append(
            re.sub(f"({re.escape(term)})", r"<mark>\1</mark>", snippet, flags=re.IGNORECASE)
        )
        if len(highlights) == MAX_HIGHLIGHTS:
            break
    return highlights


def relevance_score(
    vote_score: int,
    created_at: datetime,
    terms: list[str],
    title: str | None = None,
    now: datetime | None = None,
) -> float:
    """
    Votes, plus up to 10 points for recency (fading over 300 days), plus
    5 for every term found in the title.
    """
    age_days = ((now or utcnow()) - created_at).total_seconds() / 86400
    score = vote_score + max(0.0, 10 - age_days / 30)
    if title:
        lowered = title.lower()
        score += 5 * sum(1 for term in terms if term in lowered)
    return score


def _storable(value: Any) -> Any:
    """JSON-friendly form of a filter value."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [getattr(item, "value", item) for item in value]
    return getattr(value, "value", value)


class SearchService:
    """
    Service for forum search.

    Usage:
        search = SearchService(db, SearchRepository(db))
        results = await search.search("thruster -pwm", user=current_user)
    """

    def __init__(
        self,
        db: AsyncSession,
        repository: SearchRepository,
        scope: Callable[[], Any] = session_scope,
    ) -> None:
        self.db = db
        self.repository = repository
        self._scope = scope

    # ==================== Search ====================

    async def search(
        self,
        query: str,
        filters: dict[str, Any] | None = None,
        sort: str = "relevance",
        page: int = 1,
        limit: int = 20,
        user: User | None = None,
    ) -> dict[str, Any]:
        """
        Search topics and replies.

        Args:
            query: Search terms; "-term" excludes, AND/OR/NOT are ignored
            filters: category_id, types, statuses, date_from, date_to,
                has_code, min_upvotes, author_id
            sort: relevance, date, popularity or votes
            user: Signed-in user, whose query is added to their history

        Returns:
            {"results": [...], "pagination": {...}}
        """
        started = time.perf_counter()

        if not query or not query.strip():
            raise BadRequestError("Search query is required")
        if len(query) > MAX_QUERY_LENGTH:
            raise BadRequestError("Search query is too long (max 500 characters)")
        if sort not in SEARCH_SORTS:
            raise BadRequestError(f"Invalid sort: {sort}")

        terms, excluded = parse_query(query)
        if not terms and not excluded:
            raise BadRequestError("Search query is required")

        filters = compact(filters or {})
        now = utcnow()
        results = [
            self._topic_result(topic, terms, now)
            for topic in await self.repository.search_topics(terms, excluded, filters)
        ]
        results.extend(
            self._reply_result(reply, topic, terms, now)
            for reply, topic in await self.repository.search_replies(terms, excluded, filters)
        )
        self._sort(results, sort)

        total = len(results)
        offset = (page - 1) * limit
        page_results = results[offset:offset + limit]
        for result in page_results:
            result["highlights"] = create_highlights(result.pop("_text"), terms)

        if user is not None:
            fire_and_forget(
                self._track_history(user.id, query, filters, total),
                name="search-history",
            )

        duration_ms = (time.perf_counter() - started) * 1000
        if duration_ms > SLOW_SEARCH_MS:
            logger.warning(
                f"Slow search query {query!r}: {duration_ms:.0f} ms, {total} results"
            )

        return {
            "results": page_results,
            "pagination": pagination_meta(page, limit, total),
        }

    @staticmethod
    def _sort(results: list[dict[str, Any]], sort: str) -> None:
        if sort == "relevance":
            results.sort(key=lambda r: (r["relevance_score"], r["created_at"]), reverse=True)
        elif sort == "date":
            results.sort(key=lambda r: r["created_at"], reverse=True)
        elif sort == "popularity":
            results.sort(key=lambda r: (r["vote_score"], r["created_at"]), reverse=True)
        else:
            results.sort(key=lambda r: (r["upvote_count"], r["created_at"]), reverse=True)

    @staticmethod
    def _topic_result(topic: Topic, terms: list[str], now: datetime) -> dict[str, Any]:
        return {
            "id": topic.id,
            "type": "topic",
            "title": topic.title,
            "slug": topic.slug,
            "excerpt": create_excerpt(topic.content),
            "author": {"id": topic.author.id, "username": topic.author.username},
            "category": {
                "id": topic.category.id,
                "name": topic.category.name,
                "slug": topic.category.slug,
            },
            "vote_score": topic.vote_score,
            "upvote_count": topic.upvote_count,
            "reply_count": topic.reply_count,
            "created_at": isoformat(topic.created_at),
            "relevance_score": round(
                relevance_score(topic.vote_score, topic.created_at, terms, topic.title, now), 2
            ),
            "_text": f"{topic.title} {topic.content}",
        }

    @staticmethod
    def _reply_result(reply: Reply, topic: Topic, terms: list[str], now: datetime) -> dict[str, Any]:
        return {
            "id": reply.id,
            "type": "reply",
            "excerpt": create_excerpt(reply.content),
            "author": {"id": reply.author.id, "username": reply.author.username},
            "category": {
                "id": topic.category.id,
                "name": topic.category.name,
                "slug": topic.category.slug,
            },
            "topic": {"id": topic.id, "title": topic.title, "slug": topic.slug},
            "vote_score": reply.vote_score,
            "upvote_count": reply.upvote_count,
            "created_at": isoformat(reply.created_at),
            "relevance_score": round(
                relevance_score(reply.vote_score, reply.created_at, terms, now=now), 2
            ),
            "_text": reply.content,
        }

    async def _track_history(
        self,
        user_id: int,
        query: str,
        filters: dict[str, Any],
        result_count: int,
    ) -> None:
        stored = {key: _storable(value) for key, value in filters.items()}
        async with self._scope() as session:
            await SearchRepository(session).add_history(
                SearchHistory(
                    user_id=user_id,
                    query=query,
                    filters=stored,
                    result_count=result_count,
                )
            )

    async def get_suggestions(self, query: str, user: User | None = None) -> list[str]:
        """Matching topic titles, led by the user's own recent queries."""
        if not query or len(query.strip()) < 2:
            return []

        titles = await self.repository.title_suggestions(query.strip(), limit=7)
        history = await self.repository.recent_queries(user.id, limit=3) if user else []

        suggestions: list[str] = []
        needle = query.strip().lower()
        for candidate in history + titles:
            if needle in candidate.lower() and candidate not in suggestions:
                suggestions.append(candidate)
        return suggestions[:10]

    # ==================== History ====================

    async def get_search_history(self, user_id: int, limit: int = 10) -> list[dict[str, Any]]:
        return [
            {
                "id": entry.id,
                "query": entry.query,
                "filters": entry.filters or {},
                "result_count": entry.result_count,
                "created_at": isoformat(entry.created_at),
            }
            for entry in await self.repository.list_history(user_id, limit)
        ]

    async def clear_search_history(self, user_id: int) -> int:
        count = await self.repository.clear_history(user_id)
        logger.info(f"Cleared {count} search history entries for user {user_id}")
        return count

    async def delete_search_history_entry(self, entry_id: int, user_id: int) -> None:
        entry = await self.repository.get_history_entry(entry_id, user_id)
        if not entry:
            raise NotFoundError("Search history entry not found")
        await self.repository.delete_history_entry(entry)

    async def get_popular_queries(self, limit: int = 10) -> list[dict[str, Any]]:
        return [
            {"query": query, "count": count}
            for query, count in await self.repository.popular_queries(limit)
        ]

    # ==================== Saved searches ====================

    @staticmethod
    def _validate_name(name: str | None) -> str:
        if not name or not name.strip():
            raise BadRequestError("Search name is required")
        if len(name) > MAX_SAVED_NAME_LENGTH:
            raise BadRequestError("Search name is too long (max 100 characters)")
        return name.strip()

    async def save_search(
        self,
        user_id: int,
        name: str,
        query: str,
        filters: dict[str, Any] | None = None,
        notify_on_new: bool = False,
    ) -> SavedSearch:
        name = self._validate_name(name)
        if not query or not query.strip():
            raise BadRequestError("Search query is required")
        if await self.repository.saved_name_exists(user_id, name):
            raise ConflictError("A saved search with this name already exists")
        if await self.repository.count_saved(user_id) >= MAX_SAVED_SEARCHES:
            raise BadRequestError("Maximum number of saved searches reached (20)")

        saved = await self.repository.add_saved(
            SavedSearch(
                user_id=user_id,
                name=name,
                query=query.strip(),
                filters=filters or {},
                notify_on_new=notify_on_new,
            )
        )
        logger.info(f"User {user_id} saved search {saved.id}")
        return saved

    async def get_saved_searches(self, user_id: int) -> list[SavedSearch]:
        return await self.repository.list_saved(user_id)

    async def get_saved_search(self, saved_id: int, user_id: int) -> SavedSearch:
        saved = await self.repository.get_saved(saved_id, user_id)
        if not saved:
            raise NotFoundError("Saved search not found")
        return saved

    async def update_saved_search(
        self,
        saved_id: int,
        user_id: int,
        name: str | None = None,
        query: str | None = None,
        filters: dict[str, Any] | None = None,
        notify_on_new: bool | None = None,
    ) -> SavedSearch:
        saved = await self.get_saved_search(saved_id, user_id)

        if name is not None:
            name = self._validate_name(name)
            if await self.repository.saved_name_exists(user_id, name, exclude_id=saved.id):
                raise ConflictError("A saved search with this name already exists")
            saved.name = name
        if query is not None:
            if not query.strip():
                raise BadRequestError("Search query is required")
            saved.query = query.strip()
        if filters is not None:
            saved.filters = filters
        if notify_on_new is not None:
            saved.notify_on_new = notify_on_new

        await self.db.flush()
        return saved

    async def delete_saved_search(self, saved_id: int, user_id: int) -> None:
        saved = await self.get_saved_search(saved_id, user_id)
        await self.repository.delete_saved(saved)

    @staticmethod
    def saved_to_dict(saved: SavedSearch) -> dict[str, Any]:
        return {
            "id": saved.id,
            "name": saved.name,
            "query": saved.query,
            "filters": saved.filters or {},
            "notify_on_new": saved.notify_on_new,
            "created_at": isoformat(saved.created_at),
            "updated_at": isoformat(saved.updated_at),
        }
