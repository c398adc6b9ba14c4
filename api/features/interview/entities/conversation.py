"""Conversation entity: one continuous session with a sender."""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from api.shared.entities.base import BaseEntity


class Conversation(BaseEntity):
    """Conversation row; at most one active row per sender."""

    sender: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("ix_conversation_sender", "sender"),
        Index(
            "uq_conversation_sender_active",
            "sender",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )
