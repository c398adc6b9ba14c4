"""Turn-by-turn stage transitions.

``evaluate_turn`` is a function of (state, evidence window, latest message) that
returns a new state value; it never mutates its input and never touches
storage. Persisting the outcome is the caller's job.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Sequence

import structlog
from pydantic import BaseModel

from api.features.interview.classifier import CompletenessClassifier
from api.features.interview.entities.message import MessageRole
from api.features.interview.models import (
    ConversationStateModel,
    MessageModel,
    StageRecord,
    TransitionModel,
)
from api.features.interview.stages import Stage
from api.shared.utils import utc_now

logger = structlog.get_logger("interview.state_machine")


class TurnOutcome(BaseModel):
    """Result of evaluating one inbound message."""

    evaluated_stage: Stage
    state: ConversationStateModel
    transition: Optional[TransitionModel] = None
    terminal: bool = False
    classifier_called: bool = False

    @property
    def advanced(self) -> bool:
        return self.transition is not None


class ConversationStateMachine:
    def __init__(
        self,
        classifier: CompletenessClassifier,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.classifier = classifier
        self.clock = clock

    def initial_state(self) -> ConversationStateModel:
        return ConversationStateModel.initial(self.clock())

    async def evaluate_turn(
        self,
        state: ConversationStateModel,
        messages_since_last_transition: Sequence[MessageModel],
        latest_message: Optional[MessageModel] = None,
    ) -> TurnOutcome:
        """Judge one turn against the current stage.

        ``latest_message`` is the inbound message of the turn. Without it the
        newest user message of the window is judged instead.
        """
        stage = state.current_stage

        if stage.is_terminal:
            return TurnOutcome(evaluated_stage=stage, state=state, terminal=True)

        record = state.record(stage)
        if record.completed:
            # Already settled; advance without asking the classifier again.
            new_state, transition = self.advance(state, record.evidence)
            return TurnOutcome(
                evaluated_stage=stage,
                state=new_state,
                transition=transition,
                terminal=new_state.current_stage.is_terminal,
            )

        latest = latest_message
        if latest is None:
            latest = self._latest_user_message(messages_since_last_transition)
        if latest is None:
            return TurnOutcome(evaluated_stage=stage, state=state)

        verdict = await self.classifier.evaluate(latest.content, stage)
        if not verdict.satisfied:
            return TurnOutcome(evaluated_stage=stage, state=state, classifier_called=True)

        new_state, transition = self.advance(
            state, verdict.as_evidence(latest.content)
        )
        logger.info(
            "stage_advanced",
            from_stage=transition.from_stage.value,
            to_stage=transition.to_stage.value,
        )
        return TurnOutcome(
            evaluated_stage=stage,
            state=new_state,
            transition=transition,
            terminal=new_state.current_stage.is_terminal,
            classifier_called=True,
        )

    def advance(
        self, state: ConversationStateModel, evidence: Optional[dict]
    ) -> tuple[ConversationStateModel, TransitionModel]:
        """Mark the current stage complete and move to its successor."""
        stage = state.current_stage
        next_stage = stage.next_stage()
        if next_stage is None:
            raise ValueError(f"Stage '{stage.value}' is terminal and cannot advance")

        now = self.clock()
        stage_data = dict(state.stage_data)
        stage_data[stage] = StageRecord(completed=True, evidence=evidence, last_updated=now)
        new_state = state.model_copy(
            update={"current_stage": next_stage, "stage_data": stage_data}
        )
        transition = TransitionModel(from_stage=stage, to_stage=next_stage, timestamp=now)
        return new_state, transition

    @staticmethod
    def _latest_user_message(
        messages: Sequence[MessageModel],
    ) -> Optional[MessageModel]:
        for message in reversed(messages):
            if message.role == MessageRole.USER:
                return message
        return None
