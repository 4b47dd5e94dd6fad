class QuizTimeError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500
    retryable = False

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        payload = {"error": self.message}
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(QuizTimeError):
    """Malformed or missing request fields. Raised before storage is touched."""
    status_code = 400


class ForbiddenError(QuizTimeError):
    status_code = 403


class NotFoundError(QuizTimeError):
    status_code = 404


class ConflictError(QuizTimeError):
    status_code = 409


class StorageUnavailableError(QuizTimeError):
    """The store failed or timed out. Nothing was written; the caller may retry."""
    status_code = 503
    retryable = True
