"""Repository for interview persistence operations.

SQLAlchemy AsyncSession over the conversation, message, conversation_state and
state_transition tables. Methods flush but never commit; the caller owns the
transaction boundaries of a turn. SQLAlchemy errors surface as
``PersistenceFailure``.
"""
from __future__ import annotations

from datetime import datetime
from functools import wraps
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from api.features.interview.entities.conversation import Conversation
from api.features.interview.entities.conversation_state import ConversationState
from api.features.interview.entities.message import Message, MessageRole
from api.features.interview.entities.state_transition import StateTransition
from api.features.interview.exceptions import (
    ActiveConversationExists,
    PersistenceFailure,
    StateConflictError,
)
from api.features.interview.models import (
    ConversationModel,
    ConversationStateModel,
    MessageModel,
    TransitionModel,
)
from api.shared.base import BaseRepository


def persistence_errors(func):
    """Translate SQLAlchemy errors into PersistenceFailure."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PersistenceFailure:
            raise
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                f"{func.__name__} failed: {e.__class__.__name__}",
                {"operation": func.__name__},
            ) from e

    return wrapper


class InterviewRepository(BaseRepository[Conversation]):
    model = Conversation

    # -- conversations -------------------------------------------------

    @persistence_errors
    async def find_active_conversation(
        self, sender: str, *, active_since: Optional[datetime] = None
    ) -> Optional[ConversationModel]:
        """The sender's active conversation, optionally only if used since ``active_since``."""
        conditions = [Conversation.sender == sender, Conversation.is_active.is_(True)]
        if active_since is not None:
            conditions.append(Conversation.last_message_at >= active_since)
        stmt = (
            select(Conversation)
            .where(*conditions)
            .order_by(Conversation.last_message_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        entity = result.scalar_one_or_none()
        return ConversationModel.from_entity(entity) if entity else None

    @persistence_errors
    async def deactivate_expired(self, sender: str, *, cutoff: datetime) -> List[str]:
        """Deactivate the sender's active conversations idle since before ``cutoff``."""
        stmt = select(Conversation.id).where(
            Conversation.sender == sender,
            Conversation.is_active.is_(True),
            Conversation.last_message_at < cutoff,
        )
        expired = [str(row) for row in (await self.session.execute(stmt)).scalars().all()]
        if expired:
            await self.session.execute(
                update(Conversation)
                .where(Conversation.id.in_(expired))
                .values(is_active=False)
            )
            await self.session.flush()
        return expired

    async def create_conversation(
        self, sender: str, *, seed_prompt: str, now: datetime
    ) -> ConversationModel:
        """Create an active conversation seeded with one system message."""
        conversation = Conversation(
            sender=sender, is_active=True, last_message_at=now, created_at=now
        )
        try:
            await self.create(conversation)
            self.session.add(
                Message(
                    conversation_id=conversation.id,
                    role=MessageRole.SYSTEM.value,
                    content=seed_prompt,
                    position=1,
                    created_at=now,
                )
            )
            await self.session.flush()
        except IntegrityError as e:
            raise ActiveConversationExists(sender) from e
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                f"create_conversation failed: {e.__class__.__name__}",
                {"operation": "create_conversation"},
            ) from e
        return ConversationModel.from_entity(conversation)

    @persistence_errors
    async def get_conversation(self, conversation_id: str) -> Optional[ConversationModel]:
        entity = await self.get_by_id(conversation_id)
        return ConversationModel.from_entity(entity) if entity else None

    @persistence_errors
    async def list_conversations(self, sender: str) -> List[ConversationModel]:
        """Every conversation of a sender, oldest first, active or not."""
        models = [ConversationModel.from_entity(c) for c in await self.get_by_fields(sender=sender)]
        return sorted(models, key=lambda c: c.created_at)

    @persistence_errors
    async def touch(self, conversation_id: str, *, now: datetime) -> None:
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(last_message_at=now)
        )
        await self.session.flush()

    # -- messages ------------------------------------------------------

    @persistence_errors
    async def append_message(
        self,
        conversation_id: str,
        *,
        role: MessageRole,
        content: str,
        now: datetime,
    ) -> MessageModel:
        """Append a message at the next position of the conversation.

        The position is computed inside the INSERT, so two writers racing for
        the same slot collide on ``uq_message_conversation_position``.
        """
        next_position = (
            select(func.coalesce(func.max(Message.position), 0) + 1)
            .where(Message.conversation_id == conversation_id)
            .scalar_subquery()
        )
        message = Message(
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            position=next_position,
            created_at=now,
        )
        self.session.add(message)
        await self.session.flush()
        await self.session.refresh(message, ["position"])
        return MessageModel.from_entity(message)

    @persistence_errors
    async def list_messages(self, conversation_id: str) -> List[MessageModel]:
        """All messages of a conversation in insertion order."""
        return await self._select_messages(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.position.asc())
        )

    @persistence_errors
    async def list_messages_since(
        self, conversation_id: str, since: Optional[datetime]
    ) -> List[MessageModel]:
        """Messages created at or after ``since``; the whole log when it is None."""
        conditions = [Message.conversation_id == conversation_id]
        if since is not None:
            conditions.append(Message.created_at >= since)
        return await self._select_messages(
            select(Message).where(*conditions).order_by(Message.position.asc())
        )

    @persistence_errors
    async def list_recent_messages(
        self, conversation_id: str, *, limit: int
    ) -> List[MessageModel]:
        """The newest ``limit`` messages, oldest first."""
        newest_first = await self._select_messages(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.position.desc())
            .limit(limit)
        )
        return list(reversed(newest_first))

    async def _select_messages(self, stmt) -> List[MessageModel]:
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return [MessageModel.from_entity(m) for m in result.scalars().all()]

    # -- state ---------------------------------------------------------

    @persistence_errors
    async def load_state(self, conversation_id: str) -> Optional[ConversationStateModel]:
        stmt = (
            select(ConversationState)
            .where(ConversationState.conversation_id == conversation_id)
            .execution_options(populate_existing=True)
        )
        entity = (await self.session.execute(stmt)).scalar_one_or_none()
        return ConversationStateModel.from_entity(entity) if entity else None

    @persistence_errors
    async def save_state(
        self,
        conversation_id: str,
        state: ConversationStateModel,
        *,
        transition: Optional[TransitionModel] = None,
    ) -> ConversationStateModel:
        """Write the state guarded by its version; record the transition alongside.

        A state with version 0 is inserted, anything else is updated only if the
        stored version still matches. Losing either race raises
        StateConflictError.
        """
        expected = state.version
        payload = state.to_payload()
        if expected == 0:
            self.session.add(
                ConversationState(
                    conversation_id=conversation_id,
                    current_stage=state.current_stage.value,
                    stage_data=payload,
                    version=1,
                )
            )
            try:
                await self.session.flush()
            except IntegrityError as e:
                raise StateConflictError(conversation_id, expected) from e
        else:
            result = await self.session.execute(
                update(ConversationState)
                .where(
                    ConversationState.conversation_id == conversation_id,
                    ConversationState.version == expected,
                )
                .values(
                    current_stage=state.current_stage.value,
                    stage_data=payload,
                    version=expected + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StateConflictError(conversation_id, expected)

        if transition is not None:
            await self.append_transition(conversation_id, transition)
        await self.session.flush()
        return state.model_copy(update={"version": expected + 1})

    # -- transitions ---------------------------------------------------

    @persistence_errors
    async def append_transition(
        self, conversation_id: str, transition: TransitionModel
    ) -> None:
        self.session.add(
            StateTransition(
                conversation_id=conversation_id,
                from_stage=transition.from_stage.value,
                to_stage=transition.to_stage.value,
                timestamp=transition.timestamp,
                created_at=transition.timestamp,
            )
        )
        await self.session.flush()

    @persistence_errors
    async def latest_transition(self, conversation_id: str) -> Optional[TransitionModel]:
        stmt = (
            select(StateTransition)
            .where(StateTransition.conversation_id == conversation_id)
            .order_by(StateTransition.timestamp.desc())
            .limit(1)
        )
        entity = (await self.session.execute(stmt)).scalar_one_or_none()
        return TransitionModel.from_entity(entity) if entity else None

    @persistence_errors
    async def list_transitions(self, conversation_id: str) -> List[TransitionModel]:
        stmt = (
            select(StateTransition)
            .where(StateTransition.conversation_id == conversation_id)
            .order_by(StateTransition.timestamp.asc())
        )
        result = await self.session.execute(stmt)
        return [TransitionModel.from_entity(t) for t in result.scalars().all()]

    # -- transaction ---------------------------------------------------

    @persistence_errors
    async def commit(self) -> None:
        await self.session.commit()

    @persistence_errors
    async def rollback(self) -> None:
        await self.session.rollback()
