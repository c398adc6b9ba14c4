"""Prompt text for the career interview.

Persona seed, per-stage reply instructions, the semantic relevance check and the
hand-off lines appended when a stage is completed.
"""
from __future__ import annotations

from typing import Dict

from api.features.interview.stages import Stage

APOLOGY_MESSAGE = (
    "I apologize, but I'm having trouble processing your message right now. "
    "Could you please try again?"
)


def build_persona_prompt(bot_name: str = "Rafiki") -> str:
    """System message seeded into every new conversation."""
    return (
        f"You are {bot_name}, a friendly career counselor bot. You guide users through "
        "a conversation about their career interests and aspirations. You ask one "
        "question at a time and wait for responses. You maintain a warm, encouraging "
        "tone and provide specific examples to help users understand what you're asking."
    )


_STAGE_FOCUS: Dict[Stage, str] = {
    Stage.INITIAL: "Warmly welcome the user and introduce yourself.",
    Stage.INTERESTS: (
        "Focus on understanding their interests and passions. Ask follow-up "
        "questions if their response isn't detailed enough."
    ),
    Stage.SKILLS: (
        "Explore their skills and talents. Reference their previously mentioned "
        "interests when relevant."
    ),
    Stage.CHALLENGES: (
        "Sensitively discuss their challenges and areas for growth. Be encouraging "
        "and supportive."
    ),
    Stage.ASPIRATIONS: (
        "Help them explore their future goals and dreams. Connect their aspirations "
        "to their interests and skills."
    ),
    Stage.RECOMMENDATIONS: (
        "Based on all the information shared, provide 2-3 specific career "
        "recommendations. Include why each career might be a good fit and suggest "
        "one specific next step for each career path."
    ),
}


def build_stage_instruction(stage: Stage, bot_name: str = "Rafiki") -> str:
    base = (
        f"You are {bot_name}, a friendly career counselor bot. You are currently in "
        f"the {stage.value} stage of the conversation."
    )
    return f"{base} {_STAGE_FOCUS[stage]}"


def build_relevance_prompt(stage: Stage) -> str:
    return (
        f"Analyze if the following message is relevant for the '{stage.value}' stage "
        "of a career counseling conversation. "
        'Respond ONLY with "true" or "false" with no punctuation.'
    )


# Keyed by the stage that has just been entered.
_HANDOFFS: Dict[Stage, str] = {
    Stage.INTERESTS: (
        "Let's start by talking about the things you like the most. What's something "
        "you really enjoy or always have fun doing?"
    ),
    Stage.SKILLS: (
        "Now, I'd love to know more about what you're really good at. What skills or "
        "talents do you have that others notice?"
    ),
    Stage.CHALLENGES: (
        "Thank you for sharing your skills! Could you tell me about any challenges "
        "you face or areas where you'd like to improve?"
    ),
    Stage.ASPIRATIONS: (
        "I appreciate your honesty about challenges. Let's talk about your dreams - "
        "what kind of impact would you like to make in the world?"
    ),
    Stage.RECOMMENDATIONS: (
        "Thank you for sharing all of that with me. Would you like to hear my career "
        "recommendations based on our conversation?"
    ),
}


def handoff_for(entered: Stage) -> str:
    """Fixed line introducing the newly entered stage."""
    return _HANDOFFS[entered]
