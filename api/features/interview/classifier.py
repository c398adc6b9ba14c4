"""Completeness gates deciding whether a message satisfies a stage.

Lexical and length gates are cheap and run first; the semantic gate asks the
generation capability for a true/false judgement and only runs when both
cheap gates pass. Any failure of the semantic gate counts as "not satisfied".
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel

from api.features.interview.exceptions import ClassificationFailure
from api.features.interview.generator import TextGenerator
from api.features.interview.prompts import build_relevance_prompt
from api.features.interview.stages import STAGE_POLICIES, Stage, StagePolicy, validate_policies
from api.shared.utils import truncate_text

logger = structlog.get_logger("interview.classifier")


class CompletenessVerdict(BaseModel):
    """Outcome of the three gates for one message."""

    stage: Stage
    lexical: bool = False
    length: bool = False
    semantic: Optional[bool] = None
    satisfied: bool = False

    def as_evidence(self, message: str) -> Dict[str, Any]:
        return {
            "message": message,
            "lexical": self.lexical,
            "length": self.length,
            "semantic": self.semantic,
        }


class CompletenessClassifier:
    def __init__(
        self,
        generator: TextGenerator,
        *,
        timeout: float = 30.0,
        policies: Optional[Dict[Stage, Optional[StagePolicy]]] = None,
    ):
        self.generator = generator
        self.timeout = timeout
        self.policies = policies if policies is not None else STAGE_POLICIES
        validate_policies(self.policies)

    async def evaluate(self, message: str, stage: Stage) -> CompletenessVerdict:
        policy = self.policies[stage]
        if policy is None:
            return CompletenessVerdict(stage=stage)

        lowered = message.lower()
        lexical = policy.matches_keyword(lowered)
        length = policy.meets_length(lowered)
        if not (lexical and length):
            logger.debug(
                "cheap_gates_failed", stage=stage.value, lexical=lexical, length=length
            )
            return CompletenessVerdict(stage=stage, lexical=lexical, length=length)

        semantic = await self._semantic_gate(message, stage)
        return CompletenessVerdict(
            stage=stage,
            lexical=True,
            length=True,
            semantic=semantic,
            satisfied=semantic,
        )

    async def is_complete(self, message: str, stage: Stage) -> bool:
        return (await self.evaluate(message, stage)).satisfied

    async def _semantic_gate(self, message: str, stage: Stage) -> bool:
        try:
            return await self._ask_relevance(message, stage)
        except ClassificationFailure as e:
            logger.warning(
                "semantic_gate_failed",
                stage=stage.value,
                error_code=e.error_code,
                reason=e.details.get("reason"),
            )
            return False

    async def _ask_relevance(self, message: str, stage: Stage) -> bool:
        prompt = [("system", build_relevance_prompt(stage)), ("user", message)]
        try:
            raw = await asyncio.wait_for(
                self.generator.generate(prompt), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ClassificationFailure(stage.value, "timeout") from e
        except Exception as e:
            raise ClassificationFailure(stage.value, f"generation error: {e}") from e

        verdict = (raw or "").strip().lower()
        if verdict.startswith("true"):
            return True
        if verdict.startswith("false"):
            return False
        raise ClassificationFailure(
            stage.value,
            "unparseable verdict",
            {"verdict": truncate_text(verdict, 80)},
        )
