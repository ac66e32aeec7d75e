"""Error taxonomy for calls against the platform API.

Every error carries the HTTP ``status`` (``None`` when no response was
received) so the retry layer and callers can branch on it without parsing
messages.
"""


class PlatformError(Exception):
    """Base class for failures talking to the platform or acting on its data."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        return self.message


class AuthError(PlatformError):
    """No session available, or the platform rejected it (HTTP 401)."""


class NetworkError(PlatformError):
    """Transport-level failure: DNS, connect, read timeout."""


class RateLimitError(PlatformError):
    """HTTP 429."""

    def __init__(self, message: str, status: int | None = 429):
        super().__init__(message, status)


class ServiceUnavailableError(PlatformError):
    """HTTP 503."""

    def __init__(self, message: str, status: int | None = 503):
        super().__init__(message, status)


class LocationUnresolved(PlatformError):
    """The current user is not in a world an invite can point to."""


class ValidationError(PlatformError):
    """A required identifier or value is missing or out of range. Never retried."""


RETRYABLE_STATUSES = (429, 503)


def error_for_status(status: int, message: str) -> PlatformError:
    """Map an HTTP error status to the matching exception instance."""
    if status == 401:
        return AuthError(message, status)
    if status == 429:
        return RateLimitError(message)
    if status == 503:
        return ServiceUnavailableError(message)
    return PlatformError(message, status)
