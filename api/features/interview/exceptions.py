"""Exceptions for the Interview feature."""
from typing import Any, Dict, Optional

from api.shared.exceptions import (
    DatabaseError,
    ExternalServiceError,
    InterviewBotException,
)


class InterviewException(InterviewBotException):
    """Base exception for interview turn processing."""
    pass


class ClassificationFailure(InterviewException):
    """Raised when the semantic gate cannot produce a verdict.

    Never leaves the classifier: the gate treats it as a negative verdict.
    """

    def __init__(self, stage: str, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"Semantic gate for stage '{stage}' failed: {reason}"
        error_details = {"stage": stage, "reason": reason}
        if details:
            error_details.update(details)
        super().__init__(message, "CLASSIFICATION_FAILURE", error_details)


class GenerationFailure(ExternalServiceError):
    """Raised when the generation capability errors, times out or returns nothing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("generation", message, details)
        self.error_code = "GENERATION_FAILURE"


class PersistenceFailure(DatabaseError):
    """Raised when a storage operation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.error_code = "PERSISTENCE_FAILURE"


class StateConflictError(PersistenceFailure):
    """Raised when a state write loses an optimistic-version race."""

    def __init__(self, conversation_id: str, expected_version: int):
        super().__init__(
            f"Conversation state '{conversation_id}' changed since version {expected_version}",
            {"conversation_id": conversation_id, "expected_version": expected_version},
        )
        self.error_code = "STATE_CONFLICT"


class ActiveConversationExists(PersistenceFailure):
    """Raised when creating a conversation for a sender that already has an active one."""

    def __init__(self, sender: str):
        super().__init__(
            f"Sender '{sender}' already has an active conversation",
            {"sender": sender},
        )
        self.error_code = "ACTIVE_CONVERSATION_EXISTS"


class SessionExpired(InterviewException):
    """Raised when a sender's active conversation is idle past the session window.

    Handled inside session resolution by starting a fresh conversation.
    """

    def __init__(self, conversation_id: str, last_message_at: str):
        super().__init__(
            f"Conversation '{conversation_id}' expired",
            "SESSION_EXPIRED",
            {"conversation_id": conversation_id, "last_message_at": last_message_at},
        )
