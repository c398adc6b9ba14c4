"""Domain models for the Interview feature.

Immutable snapshots of persisted rows plus the per-conversation stage state
value that the state machine transforms turn by turn.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from api.features.interview.entities.conversation import Conversation as ConversationEntity
from api.features.interview.entities.conversation_state import (
    ConversationState as ConversationStateEntity,
)
from api.features.interview.entities.message import Message as MessageEntity, MessageRole
from api.features.interview.entities.state_transition import (
    StateTransition as StateTransitionEntity,
)
from api.features.interview.stages import Stage
from api.shared.utils import ensure_utc, utc_now


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class ConversationModel(_Snapshot):
    """Domain model for Conversation."""

    id: str = Field(description="Conversation identifier")
    sender: str = Field(description="Sender address")
    is_active: bool = Field(description="Whether the session is still reusable")
    last_message_at: datetime = Field(description="Last completed turn")
    created_at: datetime = Field(description="Creation timestamp")

    @field_validator("last_message_at", "created_at")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_entity(cls, entity: ConversationEntity) -> "ConversationModel":
        return cls(
            id=str(entity.id),
            sender=entity.sender,
            is_active=entity.is_active,
            last_message_at=entity.last_message_at,
            created_at=entity.created_at,
        )


class MessageModel(_Snapshot):
    """Domain model for Message."""

    id: str = Field(description="Message identifier")
    conversation_id: str = Field(description="Owning conversation")
    role: MessageRole = Field(description="system, user or assistant")
    content: str = Field(description="Message text")
    created_at: datetime = Field(description="Creation timestamp")
    position: int = Field(default=0, description="Insertion order within the conversation")

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_entity(cls, entity: MessageEntity) -> "MessageModel":
        return cls(
            id=str(entity.id),
            conversation_id=str(entity.conversation_id),
            role=MessageRole(entity.role),
            content=entity.content,
            created_at=entity.created_at,
            position=entity.position,
        )


class TransitionModel(_Snapshot):
    """A single stage change."""

    from_stage: Stage
    to_stage: Stage
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_entity(cls, entity: StateTransitionEntity) -> "TransitionModel":
        return cls(
            from_stage=Stage(entity.from_stage),
            to_stage=Stage(entity.to_stage),
            timestamp=entity.timestamp,
        )


class StageRecord(_Snapshot):
    """Completion record of one stage."""

    completed: bool = False
    evidence: Optional[Dict[str, Any]] = None
    last_updated: datetime = Field(default_factory=utc_now)

    @field_validator("last_updated")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ConversationStateModel(_Snapshot):
    """Current stage plus a completion record for every defined stage.

    ``version`` is 0 for a state that has never been stored.
    """

    current_stage: Stage = Field(default_factory=Stage.first)
    stage_data: Dict[Stage, StageRecord] = Field(default_factory=dict)
    version: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def fill_missing_stages(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        stage_data = dict(data.get("stage_data") or {})
        present = {Stage(key) for key in stage_data}
        for stage in Stage:
            if stage not in present:
                stage_data[stage] = StageRecord()
        data = dict(data)
        data["stage_data"] = stage_data
        return data

    @classmethod
    def initial(cls, now: Optional[datetime] = None) -> "ConversationStateModel":
        moment = now or utc_now()
        return cls(
            current_stage=Stage.first(),
            stage_data={stage: StageRecord(last_updated=moment) for stage in Stage},
        )

    def record(self, stage: Stage) -> StageRecord:
        return self.stage_data[stage]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-serialisable stage map for the state row."""
        return {
            stage.value: record.model_dump(mode="json")
            for stage, record in self.stage_data.items()
        }

    @classmethod
    def from_entity(cls, entity: ConversationStateEntity) -> "ConversationStateModel":
        return cls(
            current_stage=Stage(entity.current_stage),
            stage_data=entity.stage_data or {},
            version=entity.version,
        )
