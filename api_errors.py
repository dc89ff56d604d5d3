from typing import Optional


class InvalidInputError(ValueError):
    """Client-side validation failure. Raised before anything reaches the network."""


class ApiError(Exception):
    """Non-2xx response from the backend, carrying the server-provided message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class AuthenticationError(ApiError):
    """No usable credentials: no token held, or the server keeps answering 401."""

    def __init__(self, message: str = "Authentication required", status_code: Optional[int] = 401):
        super().__init__(message, status_code)


class SessionExpiredError(AuthenticationError):
    """The token refresh failed. Local session state has already been cleared."""

    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message, 401)
