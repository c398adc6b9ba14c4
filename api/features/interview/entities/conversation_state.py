"""Conversation state entity: current stage plus per-stage completion records."""
from typing import Any, Dict

from sqlalchemy import JSON, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from api.shared.entities.base import BaseEntity


class ConversationState(BaseEntity):
    """One row per conversation; `version` is the optimistic concurrency token."""

    __tablename__ = "conversation_state"

    conversation_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    current_stage: Mapped[str] = mapped_column(String(50), nullable=False)
    stage_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
