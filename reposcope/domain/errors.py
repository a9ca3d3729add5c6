"""Exception hierarchy shared by every layer of the client."""
from typing import Any, List, Optional


class ReposcopeError(Exception):
    """Base class for all errors raised by reposcope."""
    pass


class InvalidArgumentError(ReposcopeError, ValueError):
    """Raised when a builder or handler receives malformed input.

    Always raised while the request is being constructed, before any
    network access happens.
    """
    pass


class TransportError(ReposcopeError):
    """Raised when the request could not be completed (network failure, timeout)."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.message = message
        self.url = url
        super().__init__(message)


class ApiError(TransportError):
    """Raised when the API answers with a non-2xx status.

    Attributes:
        status_code: HTTP status code from the response
        documentation_url: Link to the API docs, when the error body has one
        errors: Field-level validation errors reported by the API
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        url: Optional[str] = None,
        documentation_url: Optional[str] = None,
        errors: Optional[List[Any]] = None,
    ):
        super().__init__(message, url=url)
        self.status_code = status_code
        self.documentation_url = documentation_url
        self.errors = errors or []

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


class RateLimitException(ApiError):
    """Raised when the API rejects a request because the rate limit is exhausted."""

    def __init__(
        self,
        message: str,
        status_code: int,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, status_code, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class DeserializationError(ReposcopeError):
    """Raised when a response body does not have the expected shape."""
    pass
