"""InterviewController over a real orchestrator and SQLite."""
import pytest

from api.features.interview.controller import InterviewController
from api.features.interview.dtos import InboundMessageRequest
from api.features.interview.service import TurnOrchestrator
from api.shared.exceptions import NotFoundError


@pytest.fixture
def controller(session_factory, generator, clock):
    return InterviewController(
        TurnOrchestrator(session_factory=session_factory, generator=generator, clock=clock)
    )


async def test_message_then_state(controller, db_session):
    reply = await controller.handle_message(
        request=InboundMessageRequest(sender="+15550001", text="hello there")
    )

    state = await controller.get_state(conversation_id=reply.conversation_id, db_session=db_session)

    assert state.current_stage == "interests"
    assert state.stages["initial"].completed
    assert state.stages["initial"].evidence["message"] == "hello there"
    assert state.version == 1


async def test_state_missing_raises_not_found(controller, db_session):
    with pytest.raises(NotFoundError):
        await controller.get_state(
            conversation_id="00000000-0000-0000-0000-000000000000", db_session=db_session
        )
