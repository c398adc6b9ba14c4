"""Interview stages and their completion policies.

Stages form a fixed, totally ordered sequence; the last one is terminal and has
no completion gate. Every stage must appear in ``STAGE_POLICIES``, terminal
stages with an explicit ``None``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class Stage(str, Enum):
    """Interview topics in the order they are covered."""

    INITIAL = "initial"
    INTERESTS = "interests"
    SKILLS = "skills"
    CHALLENGES = "challenges"
    ASPIRATIONS = "aspirations"
    RECOMMENDATIONS = "recommendations"

    @classmethod
    def first(cls) -> "Stage":
        return STAGE_ORDER[0]

    @property
    def position(self) -> int:
        """Zero-based position in the interview sequence."""
        return STAGE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self.next_stage() is None

    def next_stage(self) -> Optional["Stage"]:
        """Successor in the sequence, or None for the terminal stage."""
        idx = self.position
        return STAGE_ORDER[idx + 1] if idx < len(STAGE_ORDER) - 1 else None


STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)


@dataclass(frozen=True)
class StagePolicy:
    """Lexical and length requirements a message must meet for a stage."""

    keywords: Tuple[str, ...]
    min_length: int

    def matches_keyword(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)

    def meets_length(self, lowered: str) -> bool:
        return len(lowered) >= self.min_length


STAGE_POLICIES: Dict[Stage, Optional[StagePolicy]] = {
    Stage.INITIAL: StagePolicy(
        keywords=("hi", "hello", "hey", "start", "begin"),
        min_length=1,
    ),
    Stage.INTERESTS: StagePolicy(
        keywords=("like", "enjoy", "love", "fun", "interest", "hobby", "passionate"),
        min_length=10,
    ),
    Stage.SKILLS: StagePolicy(
        keywords=("good at", "skill", "can", "able", "capable", "excel", "best at"),
        min_length=15,
    ),
    Stage.CHALLENGES: StagePolicy(
        keywords=("challenge", "difficult", "hard", "struggle", "trying", "learning"),
        min_length=15,
    ),
    Stage.ASPIRATIONS: StagePolicy(
        keywords=("want", "hope", "dream", "future", "goal", "plan", "aspire"),
        min_length=15,
    ),
    # Terminal: no gate is ever evaluated.
    Stage.RECOMMENDATIONS: None,
}


def validate_policies(policies: Dict[Stage, Optional[StagePolicy]]) -> None:
    """Fail fast if a stage lacks a policy or a terminal stage carries one."""
    missing = [stage.value for stage in Stage if stage not in policies]
    if missing:
        raise RuntimeError(f"No completion policy defined for stages: {missing}")
    for stage, policy in policies.items():
        if stage.is_terminal and policy is not None:
            raise RuntimeError(f"Terminal stage '{stage.value}' must not define a policy")
        if not stage.is_terminal and policy is None:
            raise RuntimeError(f"Stage '{stage.value}' has no completion policy")


validate_policies(STAGE_POLICIES)


def policy_for(stage: Stage) -> Optional[StagePolicy]:
    return STAGE_POLICIES[stage]
