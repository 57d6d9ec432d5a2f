"""
User model.

One row per account holder. An account is created either by local
registration (password_hash set) or by Google login (google_id set).
"""
from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dripcore.models.base import Base, StoreGeneratedIdMixin, TimestampMixin


class User(Base, StoreGeneratedIdMixin, TimestampMixin):
    __tablename__ = "users"

    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Contact address only; two accounts may share it
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    google_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_public_dict(self) -> dict[str, Any]:
        """Fields safe to hand to the browser."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "avatar_url": self.avatar_url,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, google_id={self.google_id})>"
