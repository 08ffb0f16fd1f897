"""
User model.

Authentication lives outside the forum; this table only carries the
identity, role and standing the forum rules depend on.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from agora.core.database import Base
from agora.core.utils import utcnow


class UserRole(str, PyEnum):
    """Global role."""

    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class UserStatus(str, PyEnum):
    """Account standing."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class User(Base):
    """Forum member."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(String(500))

    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.USER)
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus), default=UserStatus.ACTIVE
    )
    suspended_until: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_moderator(self) -> bool:
        return self.role == UserRole.MODERATOR

    @property
    def is_staff(self) -> bool:
        """Moderator or admin."""
        return self.role in (UserRole.MODERATOR, UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
