"""State transition entity: append-only audit of stage changes."""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from api.shared.entities.base import BaseEntity


class StateTransition(BaseEntity):
    """Stage change record; its timestamp bounds the evidence window."""

    __tablename__ = "state_transition"

    conversation_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_stage: Mapped[str] = mapped_column(String(50), nullable=False)
    to_stage: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_state_transition_conversation_ts", "conversation_id", "timestamp"),
    )
