class PracticeEngineError(Exception):
    """Base class for every error raised by the practice engine."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(PracticeEngineError):
    """A session, question or user does not exist."""


class InvalidStateError(PracticeEngineError):
    """The action is not allowed in the session's current state."""


class DuplicateAnswerError(PracticeEngineError):
    """The question was already answered in this session."""


class ContentExhaustedError(PracticeEngineError):
    """No eligible question is left for the requested selection."""


class ValidationError(PracticeEngineError):
    """Malformed input reached the engine."""
