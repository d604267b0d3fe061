"""Exception hierarchy for the chat client.

Every error answers ``is_retryable()`` so retry loops can decide whether
another attempt is worth making.
"""


class ClydraError(Exception):
    """Base class for chat client errors."""

    def is_retryable(self) -> bool:
        """Override in subclasses to control retry behavior."""
        return False


class NetworkError(ClydraError):
    """Connection failure or timeout talking to the backend (retryable)."""

    def __init__(self, message: str):
        super().__init__(f"Network error: {message}")

    def is_retryable(self) -> bool:
        return True


class BackendError(ClydraError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{message} (HTTP {status_code})")
        self.status_code = status_code
        self.detail = message


class ServiceUnavailableError(BackendError):
    """Server-side failure (5xx, retryable)."""

    def is_retryable(self) -> bool:
        return True


class RateLimitError(BackendError):
    """Too many requests in a short window (retryable)."""

    def is_retryable(self) -> bool:
        return True


class AuthenticationError(BackendError):
    """Missing or invalid credentials."""


class RequestRejectedError(BackendError):
    """The backend refused the request as invalid."""


class NotFoundError(BackendError):
    """Requested resource does not exist."""


class ThreadNotFoundError(NotFoundError):
    """Thread was deleted or never existed server-side."""

    def __init__(self, thread_id: str, message: str = "Thread not found"):
        super().__init__(404, message)
        self.thread_id = thread_id


class QuotaExceededError(BackendError):
    """Plan or usage limit reached; the user needs to upgrade."""


class ThreadCreationError(ClydraError):
    """Creating a thread failed after all attempts."""

    def __init__(self, attempts: int, cause: Exception | None = None):
        super().__init__(f"Could not create a thread after {attempts} attempts")
        self.attempts = attempts
        self.cause = cause


class StreamError(ClydraError):
    """The chat stream reported a failure or broke off."""


class StreamTimeoutError(StreamError):
    """The chat stream did not complete in time."""

    def __init__(self, timeout: float):
        super().__init__(f"Stream did not complete within {timeout:g}s")
        self.timeout = timeout


class VersionConflictError(ClydraError):
    """A local store entry changed since it was read."""

    def __init__(self, key: str, expected: int | None, actual: int | None):
        super().__init__(
            f"Version conflict on {key}: expected {expected}, found {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual

    def is_retryable(self) -> bool:
        return True


class MessageValidationError(ClydraError):
    """Outgoing message text failed validation."""
