"""
db/models/user.py

User model: dataset owners and team members. Only the fields the audit
pipeline reads are mapped here.
"""

import uuid
from typing import Any

from sqlalchemy import Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class User(Base, TimestampMixin):
    """
    settings["ai_context"] carries the user's free-text hint that is passed to
    the AI stages alongside every dataset they own.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)

    settings: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="User preferences, including ai_context",
    )

    __table_args__ = (Index("ix_users_email", "email"),)

    @property
    def ai_context(self) -> str:
        return str((self.settings or {}).get("ai_context") or "")

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
