"""DTOs for the Interview feature."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from api.features.interview.models import ConversationStateModel
from api.shared.dtos import BaseDTO


class InboundMessageRequest(BaseDTO):
    """One inbound message from a sender."""

    sender: str = Field(min_length=1, max_length=255, description="Sender address")
    text: str = Field(min_length=1, description="Message text")


class TurnReplyDTO(BaseDTO):
    """Reply produced for one inbound message."""

    conversation_id: Optional[str] = Field(
        default=None, description="Conversation the turn belongs to, if resolved"
    )
    reply: str = Field(description="Reply text to deliver to the sender")


class StageRecordDTO(BaseDTO):
    """Completion record of one stage."""

    completed: bool = Field(description="Whether the stage is complete")
    evidence: Optional[Dict[str, Any]] = Field(
        default=None, description="What satisfied the stage"
    )
    last_updated: datetime = Field(description="Last change of this record")


class ConversationStateDTO(BaseDTO):
    """Current interview state of a conversation."""

    conversation_id: str = Field(description="Conversation identifier")
    current_stage: str = Field(description="Stage the interview is in")
    stages: Dict[str, StageRecordDTO] = Field(description="Record per stage")
    version: int = Field(description="Optimistic version of the stored state")

    @classmethod
    def from_model(
        cls, conversation_id: str, state: ConversationStateModel
    ) -> "ConversationStateDTO":
        return cls(
            conversation_id=conversation_id,
            current_stage=state.current_stage.value,
            stages={
                stage.value: StageRecordDTO(
                    completed=record.completed,
                    evidence=record.evidence,
                    last_updated=record.last_updated,
                )
                for stage, record in state.stage_data.items()
            },
            version=state.version,
        )
