"""Errors raised by the diagnostic engine and its collaborators."""

from typing import Optional


class KrishiServiceError(Exception):
    """Base class. Carries enough context for the caller to log and respond."""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.session_id = session_id
        self.conversation_id = conversation_id
        self.operation = operation


class NoEvidenceError(KrishiServiceError):
    """Advisory requested before any symptom was detected."""


class UnknownSessionError(KrishiServiceError):
    """No conversation record exists and creation is not permitted."""


class ConversationClosedError(KrishiServiceError):
    """The conversation already reached a terminal status."""


class KnowledgeBaseUnavailableError(KrishiServiceError):
    """The knowledge base could not be read."""


class ConversationExistsError(KrishiServiceError):
    """Another writer created a conversation for this session first."""
