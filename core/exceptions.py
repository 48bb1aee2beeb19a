class QuizError(Exception):
    """Base class for quiz domain errors."""
    pass


class EmptyPoolError(QuizError):
    """No questions are available to build a session from."""

    def __init__(self, category: str = None):
        self.category = category
        if category:
            message = f"No questions available for category '{category}'"
        else:
            message = "No questions available"
        super().__init__(message)


class ResultPersistFailure(QuizError):
    """The result sink rejected or failed to store a scored result.

    The engine keeps the computed result, so the persist step can be retried.
    """

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Failed to save quiz result for session {session_id}: {reason}")
