"""Shared fixtures: SQLite-backed persistence, a ticking clock, scripted LLM fakes."""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import api.shared.entities.registry  # noqa: F401
from api.features.interview.repository import InterviewRepository
from api.shared.entities.base import BaseEntity

RELEVANCE_MARKER = "Analyze if the following message is relevant"


class TickingClock:
    """Deterministic UTC clock that moves forward on every read."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


class ScriptedGenerator:
    """Answers relevance checks with ``verdict`` and replies with ``reply``.

    Either may be an exception instance, which is raised instead.
    """

    def __init__(self, *, verdict="true", reply="Tell me more!"):
        self.verdict = verdict
        self.reply = reply
        self.relevance_calls: List[List[Tuple[str, str]]] = []
        self.reply_calls: List[List[Tuple[str, str]]] = []

    async def generate(self, messages: Sequence[Tuple[str, str]]) -> str:
        messages = list(messages)
        if messages and messages[0][1].startswith(RELEVANCE_MARKER):
            self.relevance_calls.append(messages)
            outcome = self.verdict
        else:
            self.reply_calls.append(messages)
            outcome = self.reply
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'interview.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def repository(db_session):
    return InterviewRepository(db_session)
