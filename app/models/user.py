"""User model for authentication."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.security import hash_password
from app.db.session import Base


class User(Base):
    """User account.

    ``password`` is assigned in plain text and replaced by its bcrypt hash
    when the row is flushed (see ``_hash_changed_password``). ``refresh_token``
    holds the single refresh token currently valid for this user.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Identity
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), index=True)

    # Credentials
    password: Mapped[str] = mapped_column(String(255))
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @validates("username", "email")
    def _normalize_identifier(self, key: str, value: str) -> str:
        return value.strip().lower() if value is not None else value

    @validates("full_name")
    def _normalize_full_name(self, key: str, value: str) -> str:
        return value.strip() if value is not None else value

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"


@event.listens_for(User, "before_insert")
def _hash_new_password(mapper, connection, target: User) -> None:
    target.password = hash_password(target.password)


@event.listens_for(User, "before_update")
def _hash_changed_password(mapper, connection, target: User) -> None:
    # Unrelated saves (profile name, timestamps) must not re-hash the stored hash
    if inspect(target).attrs.password.history.has_changes():
        target.password = hash_password(target.password)
