from __future__ import annotations


class QuizError(Exception):
    """Base for failures the quiz API reports to its callers."""

    status_code = 400
    error_code = "quiz_error"
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error_code.replace("_", " "))
        self.message = str(message or self.error_code.replace("_", " "))


class MalformedSubmission(QuizError):
    status_code = 422
    error_code = "malformed_submission"


class QuizNotFound(QuizError):
    status_code = 404
    error_code = "quiz_not_found"


class AttemptNotFound(QuizError):
    status_code = 404
    error_code = "attempt_not_found"


class EnrollmentMissing(QuizError):
    status_code = 409
    error_code = "enrollment_missing"


class MaxAttemptsExceeded(QuizError):
    status_code = 403
    error_code = "max_attempts_exceeded"


class ReviewNotAllowed(QuizError):
    status_code = 403
    error_code = "review_not_allowed"


class InvalidQuizDefinition(QuizError):
    status_code = 409
    error_code = "quiz_definition_invalid"


class SubmissionInProgress(QuizError):
    status_code = 409
    error_code = "submission_in_progress"
    retryable = True


class PersistenceFailure(QuizError):
    status_code = 503
    error_code = "persistence_unavailable"
    retryable = True


class RateLimited(QuizError):
    status_code = 429
    error_code = "rate_limited"
    retryable = True

    def __init__(self, message: str | None = None, *, retry_after: int = 1):
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))
