"""
Reply Service - Threaded replies, edits and accepted answers.
"""

import re
from datetime import timedelta
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.database import unit_of_work
from agora.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from agora.core.utils import isoformat, truncate, utcnow
from agora.models.forum import Reply, Topic, TopicType
from agora.models.notification import NotificationType
from agora.models.user import User
from agora.modules.notifications.service import NotificationDispatcher
from agora.modules.replies.repository import ReplyRepository
from agora.modules.reputation.service import ReputationRewards
from agora.modules.topics.repository import TopicRepository

MAX_REPLY_DEPTH = 2
EDIT_WINDOW = timedelta(minutes=15)
DELETED_CONTENT = "[Deleted]"
MENTION_PATTERN = re.compile(r"@([A-Za-z0-9_]+)")

REPLY_SORTS = ("oldest", "newest", "most_voted")


def extract_mentions(content: str) -> list[str]:
    """Usernames mentioned with @, without duplicates, in order."""
    mentions: list[str] = []
    for username in MENTION_PATTERN.findall(content or ""):
        if username not in mentions:
            mentions.append(username)
    return mentions


class ReplyService:
    """
    Service for replies on topics.

    Usage:
        replies = ReplyService(db, ReplyRepository(db), TopicRepository(db), rewards, notifier)
        reply = await replies.create_reply(topic_id, user, "Try a lower gain")
    """

    def __init__(
        self,
        db: AsyncSession,
        replies: ReplyRepository,
        topics: TopicRepository,
        rewards: ReputationRewards,
        notifier: NotificationDispatcher,
    ) -> None:
        self.db = db
        self.replies = replies
        self.topics = topics
        self.rewards = rewards
        self.notifier = notifier

    # ==================== Create ====================

    async def create_reply(
        self,
        topic_id: int,
        user: User,
        content: str,
        parent_reply_id: int | None = None,
        quoted_reply_id: int | None = None,
    ) -> Reply:
        """
        Create new reply in topic.

        Args:
            topic_id: Topic ID
            user: Author
            content: Reply content (markdown)
            parent_reply_id: Reply this one answers (threads up to depth 2)
            quoted_reply_id: Reply quoted in the content

        Returns:
            Created reply
        """
        if not content or not content.strip():
            raise BadRequestError("Content is required")

        topic = await self.topics.get(topic_id)
        if not topic or topic.is_draft:
            raise NotFoundError("Topic not found")
        if topic.is_locked:
            raise ForbiddenError("Topic is locked")

        depth = 0
        parent = None
        if parent_reply_id is not None:
            parent = await self.replies.get(parent_reply_id)
            if not parent:
                raise NotFoundError("Parent reply not found")
            if parent.topic_id != topic_id:
                raise BadRequestError("Parent reply must belong to the same topic")
            if parent.depth >= MAX_REPLY_DEPTH:
                raise ForbiddenError("Maximum reply depth reached")
            depth = parent.depth + 1

        if quoted_reply_id is not None:
            quoted = await self.replies.get(quoted_reply_id)
            if not quoted:
                raise NotFoundError("Quoted reply not found")
            if quoted.topic_id != topic_id:
                raise BadRequestError("Quoted reply must belong to the same topic")

        now = utcnow()
        reply = await self.replies.add(
            Reply(
                topic_id=topic_id,
                author_id=user.id,
                parent_reply_id=parent_reply_id,
                quoted_reply_id=quoted_reply_id,
                content=content,
                depth=depth,
                mentions=extract_mentions(content),
            )
        )

        topic.reply_count += 1
        topic.last_activity_at = now
        if topic.in_category_stats:
            await self.topics.update_category_stats(topic.category_id, replies=1, activity_at=now)
        await self.db.flush()

        self.rewards.reply_created(user.id, reply.id)
        await self._notify_new_reply(topic, reply, parent, user)

        logger.info(f"Reply {reply.id} created in topic {topic_id} by user {user.id}")
        return await self.replies.get(reply.id)

    async def _notify_new_reply(
        self,
        topic: Topic,
        reply: Reply,
        parent: Reply | None,
        author: User,
    ) -> None:
        action_url = f"/topics/{topic.slug}#reply-{reply.id}"
        notified = {author.id}

        for mentioned in await self.replies.users_by_usernames(reply.mentions):
            if mentioned.id in notified:
                continue
            notified.add(mentioned.id)
            self.notifier.send(
                mentioned.id,
                NotificationType.MENTION,
                f"{author.username} mentioned you",
                truncate(reply.content, 100),
                action_url=action_url,
                reference_id=reply.id,
            )

        if parent is not None and parent.author_id not in notified:
            notified.add(parent.author_id)
            self.notifier.send(
                parent.author_id,
                NotificationType.COMMENT_REPLY,
                f"{author.username} replied to your comment",
                truncate(reply.content, 100),
                action_url=action_url,
                reference_id=parent.id,
            )

        if topic.author_id not in notified:
            self.notifier.send(
                topic.author_id,
                NotificationType.TOPIC_REPLY,
                f"New reply on \"{truncate(topic.title, 60)}\"",
                truncate(reply.content, 100),
                action_url=action_url,
                reference_id=topic.id,
            )

    # ==================== Read ====================

    async def get_reply(self, reply_id: int, viewer: User | None = None) -> Reply:
        reply = await self.replies.get(reply_id)
        if not reply or (reply.is_deleted and not (viewer and viewer.is_staff)):
            raise NotFoundError("Reply not found")
        return reply

    async def list_replies(
        self,
        topic_id: int,
        viewer: User | None = None,
        sort: str = "oldest",
    ) -> list[dict[str, Any]]:
        """
        Replies of a topic as a tree.

        Top-level replies carry their answers under "children", each level
        sorted the same way. The accepted answer leads the top level.
        Deleted replies and the answers beneath them are only shown to staff.
        """
        if sort not in REPLY_SORTS:
            raise BadRequestError(f"Invalid sort: {sort}")

        topic = await self.topics.get(topic_id)
        if not topic or (topic.is_draft and (viewer is None or viewer.id != topic.author_id)):
            raise NotFoundError("Topic not found")

        include_deleted = bool(viewer and viewer.is_staff)
        replies = await self.replies.list_for_topic(topic_id, include_deleted=include_deleted)

        nodes = {reply.id: {**self.to_dict(reply), "children": []} for reply in replies}
        roots = []
        for reply in replies:
            node = nodes[reply.id]
            if reply.parent_reply_id is None:
                roots.append(node)
            elif reply.parent_reply_id in nodes:
                nodes[reply.parent_reply_id]["children"].append(node)
            # Answers under a hidden reply are hidden with it

        def order(items: list[dict[str, Any]], top_level: bool = False) -> list[dict[str, Any]]:
            if sort == "newest":
                items.sort(key=lambda n: (n["created_at"], n["id"]), reverse=True)
            elif sort == "most_voted":
                items.sort(key=lambda n: (-n["vote_score"], n["created_at"], n["id"]))
            if top_level:
                items.sort(key=lambda n: not n["is_accepted"])
            for item in items:
                order(item["children"])
            return items

        return order(roots, top_level=True)

    async def get_edit_history(self, reply_id: int, user: User) -> list[dict[str, Any]]:
        if not user.is_staff:
            raise ForbiddenError("Only moderators can view edit history")
        if not await self.replies.get(reply_id):
            raise NotFoundError("Reply not found")
        return [
            {
                "id": entry.id,
                "previous_content": entry.previous_content,
                "edited_by": entry.edited_by,
                "edit_reason": entry.edit_reason,
                "created_at": isoformat(entry.created_at),
            }
            for entry in await self.replies.list_edit_history(reply_id)
        ]

    # ==================== Update / Delete ====================

    async def update_reply(
        self,
        reply_id: int,
        user: User,
        content: str,
        edit_reason: str | None = None,
    ) -> Reply:
        """
        Edit a reply.

        Authors may edit within 15 minutes of posting; staff at any time.
        The previous content is kept in the edit history.
        """
        if not content or not content.strip():
            raise BadRequestError("Content is required")

        reply = await self.replies.get(reply_id)
        if not reply:
            raise NotFoundError("Reply not found")
        if reply.is_deleted:
            raise ForbiddenError("Cannot edit a deleted reply")

        if not user.is_staff:
            if reply.author_id != user.id:
                raise ForbiddenError("You can only edit your own replies")
            if utcnow() - reply.created_at > EDIT_WINDOW:
                raise ForbiddenError("Edit window has expired (15 minutes)")

        async with unit_of_work(self.db):
            await self.replies.add_edit_history(reply.id, reply.content, user.id, edit_reason)
            reply.content = content
            reply.mentions = extract_mentions(content)
            reply.edited_at = utcnow()

        logger.info(f"Reply {reply_id} edited by user {user.id}")
        return reply

    async def delete_reply(self, reply_id: int, user: User) -> None:
        """Soft delete: the row stays, its content is replaced."""
        reply = await self.replies.get(reply_id)
        if not reply or reply.is_deleted:
            raise NotFoundError("Reply not found")
        if reply.author_id != user.id and not user.is_staff:
            raise ForbiddenError("You can only delete your own replies")

        topic = await self.topics.get(reply.topic_id)
        async with unit_of_work(self.db):
            reply.is_deleted = True
            reply.deleted_at = utcnow()
            reply.content = DELETED_CONTENT
            if topic:
                topic.reply_count = max(topic.reply_count - 1, 0)
                if reply.is_accepted:
                    reply.is_accepted = False
                    topic.accepted_reply_id = None
                if topic.in_category_stats:
                    await self.topics.update_category_stats(topic.category_id, replies=-1)

        logger.info(f"Reply {reply_id} deleted by user {user.id}")

    # ==================== Accepted answer ====================

    async def mark_accepted_answer(self, reply_id: int, user: User) -> Reply:
        """
        Mark a reply as the accepted answer of its question topic.

        Only the topic author may accept. Any previously accepted reply of
        the topic is unmarked first.
        """
        reply, topic = await self._answer_context(reply_id, user)
        if reply.is_deleted:
            raise BadRequestError("Cannot accept a deleted reply")
        if reply.is_accepted:
            return reply

        async with unit_of_work(self.db):
            await self.replies.clear_accepted(topic.id)
            reply.is_accepted = True
            topic.accepted_reply_id = reply.id

        if reply.author_id != topic.author_id:
            self.rewards.best_answer(reply.author_id, reply.id)
            self.notifier.send(
                reply.author_id,
                NotificationType.ACCEPTED_ANSWER,
                "Your answer was accepted",
                f"Your reply on \"{truncate(topic.title, 60)}\" was marked as the best answer",
                action_url=f"/topics/{topic.slug}#reply-{reply.id}",
                reference_id=reply.id,
            )

        logger.info(f"Reply {reply.id} accepted as answer for topic {topic.id}")
        return reply

    async def remove_accepted_answer(self, reply_id: int, user: User) -> Reply:
        reply, topic = await self._answer_context(reply_id, user)
        if not reply.is_accepted:
            raise BadRequestError("Reply is not the accepted answer")

        async with unit_of_work(self.db):
            reply.is_accepted = False
            topic.accepted_reply_id = None

        logger.info(f"Accepted answer removed from topic {topic.id}")
        return reply

    async def _answer_context(self, reply_id: int, user: User) -> tuple[Reply, Topic]:
        reply = await self.replies.get(reply_id)
        if not reply:
            raise NotFoundError("Reply not found")
        topic = await self.topics.get(reply.topic_id)
        if not topic:
            raise NotFoundError("Topic not found")
        if topic.type != TopicType.QUESTION:
            raise BadRequestError("Only question topics can have an accepted answer")
        if topic.author_id != user.id:
            raise ForbiddenError("Only the topic author can accept an answer")
        return reply, topic

    # ==================== Serialization ====================

    @staticmethod
    def to_dict(reply: Reply) -> dict[str, Any]:
        return {
            "id": reply.id,
            "topic_id": reply.topic_id,
            "parent_reply_id": reply.parent_reply_id,
            "quoted_reply_id": reply.quoted_reply_id,
            "author": {
                "id": reply.author.id,
                "username": reply.author.username,
                "avatar_url": reply.author.avatar_url,
            },
            "content": reply.content,
            "depth": reply.depth,
            "mentions": reply.mentions or [],
            "is_accepted": reply.is_accepted,
            "is_deleted": reply.is_deleted,
            "vote_score": reply.vote_score,
            "upvote_count": reply.upvote_count,
            "downvote_count": reply.downvote_count,
            "hidden": reply.is_hidden,
            "created_at": isoformat(reply.created_at),
            "edited_at": isoformat(reply.edited_at),
        }
