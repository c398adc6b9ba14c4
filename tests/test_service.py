"""End-to-end turns through TurnOrchestrator on SQLite."""
import asyncio
from datetime import timedelta

from api.features.interview.entities.message import MessageRole
from api.features.interview.exceptions import GenerationFailure, StateConflictError
from api.features.interview.history import HistoryWindower
from api.features.interview.locks import ConversationLocks
from api.features.interview.prompts import APOLOGY_MESSAGE, handoff_for
from api.features.interview.repository import InterviewRepository
from api.features.interview.service import TurnOrchestrator, error_category
from api.features.interview.stages import Stage

from tests.conftest import ScriptedGenerator

SENDER = "+15550001"

ANSWERS = [
    "hello there",
    "I really enjoy drawing cartoons and painting on weekends",
    "I am really good at sketching people quickly",
    "It is difficult for me to finish long projects",
    "I want to work on animated films in the future",
]


def orchestrator(session_factory, generator, clock, **kwargs):
    return TurnOrchestrator(
        session_factory=session_factory, generator=generator, clock=clock, **kwargs
    )


async def snapshot(session_factory, conversation_id):
    async with session_factory() as session:
        repository = InterviewRepository(session)
        return (
            await repository.load_state(conversation_id),
            await repository.list_messages(conversation_id),
            await repository.list_transitions(conversation_id),
        )


async def test_first_turn_advances_and_appends_handoff(session_factory, generator, clock):
    result = await orchestrator(session_factory, generator, clock).process_turn(SENDER, "hello there")

    assert result.advanced
    assert result.stage is Stage.INTERESTS
    assert result.reply == f"Tell me more!\n\n{handoff_for(Stage.INTERESTS)}"

    state, messages, transitions = await snapshot(session_factory, result.conversation_id)
    assert state.current_stage is Stage.INTERESTS
    assert [m.role for m in messages] == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT]
    assert messages[-1].content == result.reply
    assert [(t.from_stage, t.to_stage) for t in transitions] == [(Stage.INITIAL, Stage.INTERESTS)]


async def test_interests_answer_moves_to_skills(session_factory, generator, clock):
    bot = orchestrator(session_factory, generator, clock)
    await bot.process_turn(SENDER, ANSWERS[0])

    result = await bot.process_turn(SENDER, ANSWERS[1])

    state, _, transitions = await snapshot(session_factory, result.conversation_id)
    assert state.current_stage is Stage.SKILLS
    assert state.record(Stage.INTERESTS).completed
    assert (transitions[-1].from_stage, transitions[-1].to_stage) == (Stage.INTERESTS, Stage.SKILLS)
    assert result.reply.endswith(handoff_for(Stage.SKILLS))


async def test_short_reply_keeps_stage_and_skips_semantic_gate(session_factory, generator, clock):
    bot = orchestrator(session_factory, generator, clock)
    await bot.process_turn(SENDER, ANSWERS[0])
    gate_calls = len(generator.relevance_calls)

    result = await bot.process_turn(SENDER, "ok")

    assert not result.advanced
    assert result.reply == "Tell me more!"
    assert len(generator.relevance_calls) == gate_calls
    state, _, transitions = await snapshot(session_factory, result.conversation_id)
    assert state.current_stage is Stage.INTERESTS
    assert len(transitions) == 1


async def test_full_interview_reaches_recommendations(session_factory, generator, clock):
    bot = orchestrator(session_factory, generator, clock)
    for answer in ANSWERS:
        result = await bot.process_turn(SENDER, answer)

    assert result.stage is Stage.RECOMMENDATIONS
    assert result.reply.endswith(handoff_for(Stage.RECOMMENDATIONS))

    gate_calls = len(generator.relevance_calls)
    final = await bot.process_turn(SENDER, "Yes please, I want to hear them")
    assert not final.advanced
    assert len(generator.relevance_calls) == gate_calls
    assert "recommendations" in generator.reply_calls[-1][0][1]

    _, _, transitions = await snapshot(session_factory, result.conversation_id)
    assert [t.to_stage for t in transitions] == list(Stage)[1:]


async def test_reply_uses_instruction_of_evaluated_stage(session_factory, generator, clock):
    await orchestrator(session_factory, generator, clock).process_turn(SENDER, "hello there")

    prompt = generator.reply_calls[-1]
    assert prompt[0][0] == "system"
    assert "initial stage" in prompt[0][1]
    assert prompt[-1] == ("user", "hello there")
    assert sum(1 for role, text in prompt if text == "hello there") == 1


async def test_generation_failure_returns_apology(session_factory, clock):
    generator = ScriptedGenerator(reply=GenerationFailure("provider down"))
    result = await orchestrator(session_factory, generator, clock).process_turn(SENDER, "hello there")

    assert result.failed
    assert result.reply == APOLOGY_MESSAGE

    _, messages, _ = await snapshot(session_factory, result.conversation_id)
    assert [(m.role, m.content) for m in messages][1:] == [(MessageRole.USER, "hello there")]
    assert all(m.role is not MessageRole.ASSISTANT for m in messages)


async def test_handle_message_returns_plain_text(session_factory, generator, clock):
    reply = await orchestrator(session_factory, generator, clock).handle_message(SENDER, "zzz")
    assert reply == "Tell me more!"


async def test_expired_session_restarts_interview(session_factory, generator, clock):
    bot = orchestrator(session_factory, generator, clock)
    first = await bot.process_turn(SENDER, ANSWERS[0])

    clock.advance(timedelta(hours=25))
    second = await bot.process_turn(SENDER, "zzz")

    assert second.conversation_id != first.conversation_id
    assert second.stage is Stage.INITIAL


async def test_state_conflict_is_retried(session_factory, generator, clock):
    conflicts = {"left": 1}

    class ConflictingOnce(InterviewRepository):
        async def save_state(self, conversation_id, state, *, transition=None):
            if conflicts["left"]:
                conflicts["left"] -= 1
                raise StateConflictError(conversation_id, state.version)
            return await super().save_state(conversation_id, state, transition=transition)

    bot = orchestrator(session_factory, generator, clock, repository_factory=ConflictingOnce)
    result = await bot.process_turn(SENDER, "hello there")

    assert not result.failed
    assert result.stage is Stage.INTERESTS
    assert len(generator.relevance_calls) == 2
    _, _, transitions = await snapshot(session_factory, result.conversation_id)
    assert len(transitions) == 1


async def test_exhausted_conflicts_return_apology(session_factory, generator, clock):
    class AlwaysConflicting(InterviewRepository):
        async def save_state(self, conversation_id, state, *, transition=None):
            raise StateConflictError(conversation_id, state.version)

    bot = orchestrator(
        session_factory,
        generator,
        clock,
        repository_factory=AlwaysConflicting,
        state_write_attempts=2,
    )
    result = await bot.process_turn(SENDER, "hello there")

    assert result.failed
    assert result.reply == APOLOGY_MESSAGE
    assert len(generator.relevance_calls) == 2
    assert generator.reply_calls == []


async def test_turns_for_one_conversation_are_serialised(session_factory, generator, clock):
    locks = ConversationLocks()
    bot = orchestrator(session_factory, generator, clock, locks=locks)
    first = await bot.process_turn(SENDER, ANSWERS[0])

    order = []

    class Recording(InterviewRepository):
        async def load_state(self, conversation_id):
            order.append("load")
            await asyncio.sleep(0)
            return await super().load_state(conversation_id)

        async def save_state(self, conversation_id, state, *, transition=None):
            order.append("save")
            return await super().save_state(conversation_id, state, transition=transition)

    bot = orchestrator(session_factory, generator, clock, locks=locks, repository_factory=Recording)
    async with locks.hold(first.conversation_id):
        pending = asyncio.create_task(bot.process_turn(SENDER, "zzz"))
        await asyncio.wait_for(_queued(locks, first.conversation_id, 2), timeout=5)
        assert order == []

    result = await asyncio.wait_for(pending, timeout=5)
    assert not result.failed
    assert order == ["load", "save"]
    assert locks.holders(first.conversation_id) == 0


async def test_orchestrator_keeps_an_empty_shared_registry(session_factory, generator, clock):
    shared = ConversationLocks()

    first = orchestrator(session_factory, generator, clock, locks=shared)
    second = orchestrator(session_factory, generator, clock, locks=shared)

    assert first.locks is shared
    assert second.locks is shared


async def test_overlapping_turns_each_judge_their_own_message(session_factory, generator, clock):
    locks = ConversationLocks()
    bot = orchestrator(session_factory, generator, clock, locks=locks)
    await bot.process_turn(SENDER, ANSWERS[0])

    inbound_saved = asyncio.Event()
    resume = asyncio.Event()

    class PausedAfterInbound(InterviewRepository):
        pause_on_commit = False

        async def append_message(self, conversation_id, **kwargs):
            message = await super().append_message(conversation_id, **kwargs)
            self.pause_on_commit = kwargs["role"] is MessageRole.USER
            return message

        async def commit(self):
            await super().commit()
            if self.pause_on_commit:
                self.pause_on_commit = False
                inbound_saved.set()
                await resume.wait()

    slow = orchestrator(
        session_factory, generator, clock, locks=locks, repository_factory=PausedAfterInbound
    )
    pending = asyncio.create_task(slow.process_turn(SENDER, ANSWERS[1]))
    await asyncio.wait_for(inbound_saved.wait(), timeout=5)

    other = await asyncio.wait_for(bot.process_turn(SENDER, "zzz ok whatever man"), timeout=5)
    resume.set()
    answered = await asyncio.wait_for(pending, timeout=5)

    assert not other.failed and not answered.failed
    assert not other.advanced
    assert answered.advanced
    state, _, transitions = await snapshot(session_factory, answered.conversation_id)
    assert state.current_stage is Stage.SKILLS
    assert (transitions[-1].from_stage, transitions[-1].to_stage) == (Stage.INTERESTS, Stage.SKILLS)


async def test_reply_context_is_bounded(session_factory, generator, clock):
    reads = []

    class CountingReads(InterviewRepository):
        async def list_messages(self, conversation_id):
            reads.append("all")
            return await super().list_messages(conversation_id)

    bot = orchestrator(
        session_factory,
        generator,
        clock,
        windower=HistoryWindower(generation_limit=3),
        repository_factory=CountingReads,
    )
    for text in ("hello there", "zzz", "zzz again", "still zzz"):
        await bot.process_turn(SENDER, text)

    prompt = generator.reply_calls[-1]
    assert len(prompt) == 4
    assert prompt[-1] == ("user", "still zzz")
    assert reads == []


def test_error_categories():
    assert error_category(GenerationFailure("x")) == "generation_failure"
    assert error_category(StateConflictError("c1", 1)) == "persistence_failure"
    assert error_category(ValueError("x")) == "unexpected_error"


async def _queued(locks, key, count):
    while locks.holders(key) < count:
        await asyncio.sleep(0.01)
