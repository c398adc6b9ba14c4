"""History windows for generation context and stage evidence."""
from datetime import datetime, timedelta, timezone

import pytest

from api.features.interview.entities.message import MessageRole
from api.features.interview.history import HistoryWindower
from api.features.interview.models import MessageModel

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_messages(count, start=T0):
    roles = [MessageRole.USER, MessageRole.ASSISTANT]
    return [
        MessageModel(
            id=f"m{i}",
            conversation_id="c1",
            role=roles[i % 2],
            content=f"message {i}",
            created_at=start + timedelta(minutes=i),
        )
        for i in range(count)
    ]


def test_generation_window_caps_at_twenty():
    messages = make_messages(25)
    window = HistoryWindower().for_generation(messages)

    assert len(window) == 20
    assert window[0] == ("assistant", "message 5")
    assert window[-1] == ("user", "message 24")


def test_generation_window_keeps_short_histories_whole():
    window = HistoryWindower().for_generation(make_messages(3))
    assert [content for _, content in window] == ["message 0", "message 1", "message 2"]


def test_generation_limit_must_be_positive():
    with pytest.raises(ValueError):
        HistoryWindower(generation_limit=0)


def test_evidence_window_without_transition_is_everything():
    messages = make_messages(4)
    assert HistoryWindower().since_last_transition(messages, None) == messages


def test_evidence_window_starts_at_transition_inclusive():
    messages = make_messages(6)
    boundary = T0 + timedelta(minutes=3)

    window = HistoryWindower().since_last_transition(messages, boundary)

    assert [m.id for m in window] == ["m3", "m4", "m5"]


def test_evidence_window_accepts_naive_boundary_as_utc():
    messages = make_messages(3)
    naive = (T0 + timedelta(minutes=2)).replace(tzinfo=None)

    window = HistoryWindower().since_last_transition(messages, naive)

    assert [m.id for m in window] == ["m2"]
