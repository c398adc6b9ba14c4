"""Text generation capability used for replies and the semantic gate.

The interview core only needs ``messages -> text``; ``ChatOpenAIGenerator`` is
the production adapter over LangChain's ChatOpenAI.
"""
from __future__ import annotations

import asyncio
import time
from typing import Optional, Protocol, Sequence, Tuple

import structlog
from langchain_openai import ChatOpenAI

from api.features.interview.exceptions import GenerationFailure

logger = structlog.get_logger("interview.generator")


class TextGenerator(Protocol):
    async def generate(self, messages: Sequence[Tuple[str, str]]) -> str:
        """Return plain text for an ordered sequence of (role, text) entries."""
        ...


class ChatOpenAIGenerator:
    """OpenAI chat completion through LangChain, bounded by a timeout."""

    def __init__(
        self,
        *,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        llm: Optional[ChatOpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.api_key = api_key
        self.timeout = timeout
        self._llm = llm

    @property
    def llm(self) -> ChatOpenAI:
        # Built on first use so a missing API key fails a turn, not startup.
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                openai_api_key=self.api_key or None,
                timeout=self.timeout,
            )
        return self._llm

    async def generate(self, messages: Sequence[Tuple[str, str]]) -> str:
        start = time.time()
        try:
            result = await asyncio.wait_for(
                self.llm.ainvoke(list(messages)), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise GenerationFailure(
                f"no reply within {self.timeout:.0f}s", {"model": self.model}
            ) from e
        except Exception as e:
            raise GenerationFailure(str(e), {"model": self.model}) from e

        text = result.content if isinstance(result.content, str) else ""
        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            "generation_completed",
            model=self.model,
            latency_ms=latency_ms,
            entries=len(messages),
        )
        if not text.strip():
            raise GenerationFailure("empty completion", {"model": self.model})
        return text
