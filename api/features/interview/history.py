"""Bounded views over a conversation's message log.

Two windows with different boundaries:

- ``for_generation``: the most recent N messages, used as reply context.
- ``since_last_transition``: everything at or after the latest stage change,
  used only as completeness evidence.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from api.features.interview.models import MessageModel
from api.shared.utils import ensure_utc

ChatTurn = Tuple[str, str]


class HistoryWindower:
    def __init__(self, generation_limit: int = 20):
        if generation_limit < 1:
            raise ValueError("generation_limit must be at least 1")
        self.generation_limit = generation_limit

    def for_generation(self, messages: Sequence[MessageModel]) -> List[ChatTurn]:
        """Most recent messages, oldest first, as (role, content) pairs."""
        recent = list(messages)[-self.generation_limit:]
        return [(m.role.value, m.content) for m in recent]

    def since_last_transition(
        self,
        messages: Sequence[MessageModel],
        last_transition_at: Optional[datetime],
    ) -> List[MessageModel]:
        if last_transition_at is None:
            return list(messages)
        boundary = ensure_utc(last_transition_at)
        return [m for m in messages if m.created_at >= boundary]
