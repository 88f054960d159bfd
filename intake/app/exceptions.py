"""Custom exceptions for the intake gateway."""


class IntakeException(Exception):
    """Base class for intake exceptions with HTTP status code.

    All request-level exceptions inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    The message is what the submitter sees.
    """
    status_code: int = 500

    def __init__(self, message: str = "internal error"):
        self.message = message
        super().__init__(message)


class RateLimitedError(IntakeException):
    """Raised when a source address has exhausted its admission tokens.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, message: str = "rate limit exceeded", retry_after: int = 1):
        self.retry_after = retry_after
        super().__init__(message)


class MalformedBodyError(IntakeException):
    """Raised when the body cannot be decoded under its encoding.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, message: str = "bad request", reason: str | None = None):
        # reason is for server-side logs only
        self.reason = reason
        super().__init__(message)


class ValidationError(IntakeException):
    """Raised when a decoded submission breaks a business rule.

    The message only names the offending field, so it is returned verbatim.
    Maps to HTTP 400 Bad Request.
    """
    status_code = 400


class DispatchError(IntakeException):
    """Raised when the notifier could not deliver a submission.

    Carries the underlying error for logging; the client only gets
    a generic message. Maps to HTTP 500.
    """
    status_code = 500

    def __init__(self, cause: Exception | None = None, message: str = "failed to send"):
        self.cause = cause
        super().__init__(message)


class NotifierError(Exception):
    """Raised by notifier implementations when delivery fails."""

    def __init__(self, message: str, status_code: int | None = None, recipient: str | None = None):
        self.status_code = status_code
        self.recipient = recipient
        super().__init__(message)


class ConfigError(RuntimeError):
    """Raised at startup when the service cannot be wired."""
