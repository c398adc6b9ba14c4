"""Entity registry to ensure SQLAlchemy loads all table metadata.

Import all entity modules here so Alembic autogenerate can discover them.
"""
# Import base first to expose BaseEntity.metadata
from api.shared.entities.base import BaseEntity  # noqa: F401

# Feature: Interview
from api.features.interview.entities.conversation import Conversation  # noqa: F401
from api.features.interview.entities.message import Message  # noqa: F401
from api.features.interview.entities.conversation_state import ConversationState  # noqa: F401
from api.features.interview.entities.state_transition import StateTransition  # noqa: F401
