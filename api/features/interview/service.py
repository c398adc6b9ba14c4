"""Turn orchestration for the career interview.

One inbound (sender, text) is one sequential pipeline: resolve the session,
log the inbound message, evaluate the stage under the per-conversation guard,
generate the reply, append any hand-off, persist the reply. Every failure is
contained here and turned into a fixed apology; nothing already persisted is
rolled back.
"""
from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.interview.classifier import CompletenessClassifier
from api.features.interview.entities.message import MessageRole
from api.features.interview.exceptions import (
    GenerationFailure,
    InterviewException,
    PersistenceFailure,
    StateConflictError,
)
from api.features.interview.generator import TextGenerator
from api.features.interview.history import HistoryWindower
from api.features.interview.locks import ConversationLocks
from api.features.interview.models import MessageModel
from api.features.interview.prompts import (
    APOLOGY_MESSAGE,
    build_persona_prompt,
    build_stage_instruction,
    handoff_for,
)
from api.features.interview.repository import InterviewRepository
from api.features.interview.session import SessionManager
from api.features.interview.stages import Stage
from api.features.interview.state_machine import ConversationStateMachine, TurnOutcome
from api.shared.utils import truncate_text, utc_now

logger = structlog.get_logger("interview.service")


class TurnResult(BaseModel):
    """What one turn produced for the caller."""

    reply: str
    conversation_id: Optional[str] = None
    stage: Optional[Stage] = None
    advanced: bool = False
    failed: bool = False


def error_category(exc: BaseException) -> str:
    if isinstance(exc, GenerationFailure):
        return "generation_failure"
    if isinstance(exc, PersistenceFailure):
        return "persistence_failure"
    if isinstance(exc, InterviewException):
        return "interview_error"
    return "unexpected_error"


class TurnOrchestrator:
    def __init__(
        self,
        *,
        session_factory: Callable[[], AsyncSession],
        generator: TextGenerator,
        classifier: Optional[CompletenessClassifier] = None,
        windower: Optional[HistoryWindower] = None,
        state_machine: Optional[ConversationStateMachine] = None,
        locks: Optional[ConversationLocks] = None,
        session_window: timedelta = timedelta(hours=24),
        state_write_attempts: int = 3,
        bot_name: str = "Rafiki",
        clock: Callable[[], datetime] = utc_now,
        repository_factory: Callable[[AsyncSession], InterviewRepository] = InterviewRepository,
    ):
        self.session_factory = session_factory
        self.generator = generator
        self.classifier = (
            classifier if classifier is not None else CompletenessClassifier(generator)
        )
        self.windower = windower if windower is not None else HistoryWindower()
        self.locks = locks if locks is not None else ConversationLocks()
        self.session_window = session_window
        self.state_write_attempts = max(1, state_write_attempts)
        self.bot_name = bot_name
        self.clock = clock
        self.repository_factory = repository_factory
        self.state_machine = (
            state_machine
            if state_machine is not None
            else ConversationStateMachine(self.classifier, clock=clock)
        )

    async def handle_message(self, sender: str, text: str) -> str:
        """Process one inbound message and return the reply text."""
        return (await self.process_turn(sender, text)).reply

    async def process_turn(self, sender: str, text: str) -> TurnResult:
        log = logger.bind(sender=sender)
        start = time.time()
        log.info("turn_started", preview=truncate_text(text, 60))
        conversation_id: Optional[str] = None
        try:
            async with self.session_factory() as session:
                repository = self.repository_factory(session)
                sessions = SessionManager(
                    repository,
                    window=self.session_window,
                    clock=self.clock,
                    persona_prompt=build_persona_prompt(self.bot_name),
                )

                conversation = await sessions.resolve(sender)
                conversation_id = conversation.id
                log = log.bind(conversation_id=conversation_id)

                inbound = await repository.append_message(
                    conversation_id, role=MessageRole.USER, content=text, now=self.clock()
                )
                await repository.commit()

                outcome = await self._evaluate(repository, conversation_id, inbound)

                messages = await repository.list_recent_messages(
                    conversation_id, limit=self.windower.generation_limit
                )
                reply = await self.generator.generate(
                    self._build_prompt(outcome.evaluated_stage, messages)
                )
                if outcome.transition is not None:
                    reply = f"{reply}\n\n{handoff_for(outcome.transition.to_stage)}"

                await repository.append_message(
                    conversation_id, role=MessageRole.ASSISTANT, content=reply, now=self.clock()
                )
                await sessions.touch(conversation_id)
                await repository.commit()
        except Exception as e:
            log.exception(
                "turn_failed",
                error_category=error_category(e),
                error=str(e),
                processing_time_ms=(time.time() - start) * 1000,
            )
            return TurnResult(
                reply=APOLOGY_MESSAGE, conversation_id=conversation_id, failed=True
            )

        log.info(
            "turn_completed",
            stage=outcome.state.current_stage.value,
            advanced=outcome.advanced,
            processing_time_ms=(time.time() - start) * 1000,
        )
        return TurnResult(
            reply=reply,
            conversation_id=conversation_id,
            stage=outcome.state.current_stage,
            advanced=outcome.advanced,
        )

    async def _evaluate(
        self,
        repository: InterviewRepository,
        conversation_id: str,
        inbound: MessageModel,
    ) -> TurnOutcome:
        """Read-evaluate-write of the stage state, retried on version conflicts."""
        async with self.locks.hold(conversation_id):
            attempt = 0
            while True:
                attempt += 1
                state = await repository.load_state(conversation_id)
                if state is None:
                    state = self.state_machine.initial_state()

                last = await repository.latest_transition(conversation_id)
                boundary = last.timestamp if last else None
                window = self.windower.since_last_transition(
                    await repository.list_messages_since(conversation_id, boundary),
                    boundary,
                )
                outcome = await self.state_machine.evaluate_turn(state, window, inbound)

                try:
                    saved = await repository.save_state(
                        conversation_id, outcome.state, transition=outcome.transition
                    )
                    await repository.commit()
                except StateConflictError:
                    await repository.rollback()
                    if attempt >= self.state_write_attempts:
                        raise
                    logger.warning(
                        "state_write_conflict",
                        conversation_id=conversation_id,
                        attempt=attempt,
                    )
                    continue

                return outcome.model_copy(update={"state": saved})

    def _build_prompt(
        self, stage: Stage, messages: List[MessageModel]
    ) -> List[Tuple[str, str]]:
        """Stage instruction followed by the generation window.

        The inbound message is persisted before this runs, so the window already
        holds it and it is not appended again.
        """
        return [
            ("system", build_stage_instruction(stage, self.bot_name)),
            *self.windower.for_generation(messages),
        ]
