"""Session resolution for inbound senders.

A conversation is reused only while its last activity is inside the session
window; an older one is deactivated and the sender starts over with a freshly
seeded conversation.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from api.features.interview.exceptions import (
    ActiveConversationExists,
    PersistenceFailure,
    SessionExpired,
)
from api.features.interview.models import ConversationModel
from api.features.interview.prompts import build_persona_prompt
from api.features.interview.repository import InterviewRepository
from api.shared.utils import utc_now

logger = structlog.get_logger("interview.session")


class SessionManager:
    def __init__(
        self,
        repository: InterviewRepository,
        *,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
        persona_prompt: Optional[str] = None,
    ):
        self.repository = repository
        self.window = window
        self.clock = clock
        self.persona_prompt = persona_prompt or build_persona_prompt()

    async def resolve(self, sender: str) -> ConversationModel:
        """Return the sender's live conversation, creating one if needed."""
        now = self.clock()
        cutoff = now - self.window

        conversation = await self.repository.find_active_conversation(sender)
        if conversation is not None:
            try:
                return self.ensure_fresh(conversation, cutoff)
            except SessionExpired as e:
                logger.info("session_expired", sender=sender, **e.details)
                await self.repository.deactivate_expired(sender, cutoff=cutoff)
                await self.repository.commit()

        try:
            conversation = await self.repository.create_conversation(
                sender, seed_prompt=self.persona_prompt, now=now
            )
            await self.repository.commit()
        except ActiveConversationExists:
            # A concurrent turn created it first; use that one.
            await self.repository.rollback()
            conversation = await self.repository.find_active_conversation(
                sender, active_since=cutoff
            )
            if conversation is None:
                raise PersistenceFailure(
                    "Active conversation vanished after create conflict",
                    {"sender": sender},
                )
            return conversation

        logger.info("conversation_created", sender=sender, conversation_id=conversation.id)
        return conversation

    @staticmethod
    def ensure_fresh(conversation: ConversationModel, cutoff: datetime) -> ConversationModel:
        if conversation.last_message_at < cutoff:
            raise SessionExpired(conversation.id, conversation.last_message_at.isoformat())
        return conversation

    async def touch(self, conversation_id: str) -> None:
        await self.repository.touch(conversation_id, now=self.clock())
