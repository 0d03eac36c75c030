"""
Exception hierarchy for Charla.
"""


class CharlaError(Exception):
    """Base exception for all Charla errors."""
    pass


class NotFoundError(CharlaError):
    """Raised when a session, scenario, persona or quiz does not exist."""
    pass


class InvalidPhaseError(CharlaError):
    """Raised when an operation is not allowed in the session's current phase."""
    pass


class InvalidRequestError(CharlaError):
    """Raised when a request is structurally invalid (wrong quiz, wrong level)."""
    pass


class DecisionValidationError(CharlaError):
    """Raised when a teacher decision fails schema or invariant checks."""

    def __init__(self, message: str, issues: list[str] | None = None):
        super().__init__(message)
        self.issues = issues or []


class CollaboratorError(CharlaError):
    """Base exception for failures of external collaborators."""
    pass


class LLMError(CollaboratorError):
    """Raised when the language model call fails."""
    pass


class TranscriptionError(CollaboratorError):
    """Raised when speech-to-text transcription fails."""
    pass


class ContentError(CharlaError):
    """Raised when the content pack is invalid or not loaded."""
    pass


class StorageError(CharlaError):
    """Raised when a session storage operation fails."""
    pass


class ConcurrentModificationError(StorageError):
    """Raised when a session was saved by another writer since it was loaded."""
    pass


class ConfigurationError(CharlaError):
    """Raised when configuration is invalid."""
    pass
