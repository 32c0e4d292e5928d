from __future__ import annotations


class QuizApiError(Exception):
    """Failure talking to the quiz API."""

    retryable = False

    def __init__(self, message: str, *, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code


class SubmissionTransportError(QuizApiError):
    """The request may not have reached the server, or the server asked us to retry."""

    retryable = True


class SubmissionRejected(QuizApiError):
    """The server refused the submission; sending it again will not help."""
