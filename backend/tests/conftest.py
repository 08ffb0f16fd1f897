"""
Shared fixtures: a fresh SQLite database per test, service builders and
small factories for users, categories and topics.
"""

import itertools
import json
from typing import Any

import pytest

from agora.core import database
from agora.core.background import drain
from agora.models.forum import ForumCategory, TopicType
from agora.models.user import User, UserRole
from agora.models.vote import ReputationHistory
from agora.modules.badges.repository import BadgeRepository
from agora.modules.badges.service import BadgeService
from agora.modules.categories.repository import CategoryRepository
from agora.modules.categories.service import CategoryService
from agora.modules.leaderboard.repository import LeaderboardRepository
from agora.modules.leaderboard.service import LeaderboardService
from agora.modules.moderation.repository import ModerationRepository
from agora.modules.moderation.service import ModerationAudit, ModerationService
from agora.modules.notifications.repository import NotificationRepository
from agora.modules.notifications.service import NotificationDispatcher, NotificationService
from agora.modules.polls.repository import PollRepository
from agora.modules.polls.service import PollService
from agora.modules.replies.repository import ReplyRepository
from agora.modules.replies.service import ReplyService
from agora.modules.reports.repository import ReportRepository
from agora.modules.reports.service import ReportService
from agora.modules.reputation.repository import ReputationRepository
from agora.modules.reputation.service import ReputationRewards, ReputationService
from agora.modules.search.repository import SearchRepository
from agora.modules.search.service import SearchService
from agora.modules.topics.repository import TopicRepository
from agora.modules.topics.service import TopicService
from agora.modules.votes.repository import VoteRepository
from agora.modules.votes.service import VoteService


class MemoryCache:
    """In-memory stand-in for the Redis leaderboard cache."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def get_json(self, name: str) -> Any | None:
        return self.data.get(name)

    async def set_json(self, name: str, value: Any) -> None:
        self.data[name] = json.loads(json.dumps(value, default=str))

    async def delete(self, name: str) -> None:
        self.data.pop(name, None)

    async def clear(self) -> int:
        count = len(self.data)
        self.data.clear()
        return count


# ==================== Database ====================


@pytest.fixture
async def engine(tmp_path):
    engine = database.configure(f"sqlite+aiosqlite:///{tmp_path / 'agora.db'}", echo=False)
    await database.init_db()
    yield engine
    await drain()
    await database.close_db()


@pytest.fixture
async def db(engine):
    async with database.get_session_factory()() as session:
        yield session


@pytest.fixture
def settle(db):
    """Commit the test session, then let background side effects finish."""

    async def _settle() -> None:
        await db.commit()
        await drain()

    return _settle


# ==================== Factories ====================


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    async def _make_user(
        username: str | None = None,
        role: UserRole = UserRole.USER,
        reputation: int = 0,
    ) -> User:
        username = username or f"user{next(counter)}"
        user = User(email=f"{username}@example.com", username=username, role=role)
        db.add(user)
        await db.flush()
        if reputation:
            db.add(
                ReputationHistory(
                    user_id=user.id,
                    event_type="seed",
                    points=reputation,
                    description="Starting reputation",
                )
            )
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_category(db):
    counter = itertools.count(1)

    async def _make_category(name: str | None = None, parent: ForumCategory | None = None) -> ForumCategory:
        number = next(counter)
        category = ForumCategory(
            name=name or f"Category {number}",
            slug=f"category-{number}",
            parent_id=parent.id if parent else None,
            level=parent.level + 1 if parent else 1,
            display_order=number,
        )
        db.add(category)
        await db.commit()
        return category

    return _make_category


@pytest.fixture
def make_topic(db, topic_service, make_category):
    async def _make_topic(
        author: User,
        category: ForumCategory | None = None,
        title: str = "How do I tune the thrusters?",
        content: str = "The vehicle drifts left at low throttle.",
        topic_type: TopicType = TopicType.DISCUSSION,
        **options: Any,
    ):
        category = category or await _default_category()
        topic = await topic_service.create_topic(
            author,
            category_id=category.id,
            title=title,
            content=content,
            topic_type=topic_type,
            **options,
        )
        await db.commit()
        return topic

    categories: list[ForumCategory] = []

    async def _default_category() -> ForumCategory:
        if not categories:
            categories.append(await make_category("General"))
        return categories[0]

    return _make_topic


# ==================== Services ====================


@pytest.fixture
def reputation_service(db):
    return ReputationService(db, ReputationRepository(db))


@pytest.fixture
def category_service(db):
    return CategoryService(db, CategoryRepository(db))


@pytest.fixture
def poll_service(db):
    return PollService(db, PollRepository(db))


@pytest.fixture
def topic_service(db, poll_service):
    return TopicService(
        db, TopicRepository(db), CategoryRepository(db), poll_service, ReputationRewards()
    )


@pytest.fixture
def reply_service(db):
    return ReplyService(
        db, ReplyRepository(db), TopicRepository(db), ReputationRewards(), NotificationDispatcher()
    )


@pytest.fixture
def vote_service(db, reputation_service):
    return VoteService(db, VoteRepository(db), reputation_service)


@pytest.fixture
def moderation_service(db):
    return ModerationService(
        db,
        ModerationRepository(db),
        TopicRepository(db),
        CategoryRepository(db),
        ModerationAudit(),
        NotificationDispatcher(),
    )


@pytest.fixture
def report_service(db):
    return ReportService(db, ReportRepository(db), NotificationDispatcher())


@pytest.fixture
def search_service(db):
    return SearchService(db, SearchRepository(db))


@pytest.fixture
def notification_service(db):
    return NotificationService(db, NotificationRepository(db))


@pytest.fixture
def badge_service(db):
    return BadgeService(db, BadgeRepository(db), NotificationDispatcher())


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def leaderboard_service(db, cache):
    return LeaderboardService(db, LeaderboardRepository(db), cache)
