"""Controller for the Interview feature."""
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.interview.dtos import (
    ConversationStateDTO,
    InboundMessageRequest,
    TurnReplyDTO,
)
from api.features.interview.repository import InterviewRepository
from api.features.interview.service import TurnOrchestrator
from api.shared.exceptions import NotFoundError


class InterviewController:
    """Controller handling inbound turns and state inspection."""

    def __init__(self, turn_orchestrator: TurnOrchestrator) -> None:
        self.turn_orchestrator = turn_orchestrator

    async def handle_message(self, *, request: InboundMessageRequest) -> TurnReplyDTO:
        result = await self.turn_orchestrator.process_turn(request.sender, request.text)
        return TurnReplyDTO(conversation_id=result.conversation_id, reply=result.reply)

    async def get_state(
        self,
        *,
        conversation_id: str,
        db_session: AsyncSession,
    ) -> ConversationStateDTO:
        state = await InterviewRepository(db_session).load_state(conversation_id)
        if state is None:
            raise NotFoundError("Conversation state", conversation_id)
        return ConversationStateDTO.from_model(conversation_id, state)
