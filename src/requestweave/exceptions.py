"""Custom exception classes for requestweave.

These exceptions never escape the public ``get``/``post``/``put``/``delete``
calls; the client folds them into a ``ResponseEnvelope``. They are what
middleware error hooks receive and what lower-level components raise.
"""

from http import HTTPStatus

import httpx

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred."

_STATUS_MESSAGES: dict[int, str] = {
    400: "Bad request. Please check your input.",
    401: "Unauthorized. Please log in again.",
    403: "Forbidden. You do not have permission to access this resource.",
    404: "Resource not found.",
    409: "Conflict. The resource already exists or has been modified.",
    422: "Validation error. Please check your input.",
    429: "Too many requests. Please try again later.",
    500: "Internal server error. Please try again later.",
    502: "Bad gateway. Please try again later.",
    503: "Service unavailable. Please try again later.",
    504: "Gateway timeout. Please try again later.",
}


def default_error_message(status: int | None) -> str:
    """Returns a human readable default message for an HTTP status code."""
    if status is None:
        return DEFAULT_ERROR_MESSAGE
    return _STATUS_MESSAGES.get(status, DEFAULT_ERROR_MESSAGE)


class RequestweaveError(Exception):
    """Base exception class for all requestweave errors."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
    ):
        """Initializes the base exception.

        Args:
            message: The error message.
            status: Optional HTTP status code. Defaults to the response status.
            response: Optional httpx.Response object associated with the error.
            request: Optional httpx.Request object associated with the error.
        """
        super().__init__(message)
        self.message = message
        self.response = response
        self.request = request
        if status is None and response is not None:
            status = response.status_code
        self.status = status
        # Transport attempts made before giving up; set by the retry policy.
        self.attempts = 1

    @property
    def envelope_status(self) -> int:
        """Status reported to callers; 500 when no response was received."""
        if self.status is not None:
            return self.status
        return HTTPStatus.INTERNAL_SERVER_ERROR.value

    def __str__(self) -> str:
        if self.response is not None:
            url_info = self.request.url if isinstance(self.request, httpx.Request) else "N/A"
            return f"{self.message} (Status: {self.response.status_code}, URL: {url_info})"
        if isinstance(self.request, httpx.Request):
            return f"{self.message} (URL: {self.request.url})"
        return self.message


class APIError(RequestweaveError):
    """Represents an HTTP error status (>= 400) returned by the backend."""

    @classmethod
    def from_response(
        cls, response: httpx.Response, message: str | None = None
    ) -> "APIError":
        """Builds the most specific APIError subclass for a response."""
        status = response.status_code
        if status == HTTPStatus.UNAUTHORIZED:
            error_cls: type[APIError] = UnauthorizedError
        elif status == HTTPStatus.NOT_FOUND:
            error_cls = NotFoundError
        elif 500 <= status <= 599:
            error_cls = ServerError
        else:
            error_cls = APIError
        try:
            request: httpx.Request | None = response.request
        except RuntimeError:
            # Responses built by hand in hooks or tests may lack a request.
            request = None
        return error_cls(
            message or default_error_message(status),
            response=response,
            request=request,
        )


class UnauthorizedError(APIError):
    """Represents a 401 Unauthorized response."""


class NotFoundError(APIError):
    """Represents a resource not found error (404 Not Found)."""


class ServerError(APIError):
    """Represents a 5xx server-side failure, the only retryable status class."""


class ApplicationError(RequestweaveError):
    """Raised when a 2xx response body reports ``success: false``."""


class NetworkError(RequestweaveError):
    """Represents a failure where no response was received.

    DNS failures, refused connections and dropped connections all end up here.
    """

    def __init__(self, message: str, *, request: httpx.Request | None = None):
        super().__init__(message, request=request, response=None)


class TimeoutError(NetworkError):
    """Represents a transport timeout for a single attempt."""


class ConfigurationError(RequestweaveError):
    """Represents an error in the client's configuration."""

    def __init__(self, message: str):
        super().__init__(message, response=None)
