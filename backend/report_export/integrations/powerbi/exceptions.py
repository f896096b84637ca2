"""
Power BI-specific exceptions for error handling.

Every error carries the HTTP status and, when the service sent one, the
``RequestId`` header value that Power BI support asks for.
"""

from typing import Optional, Dict, Any


class PowerBIError(Exception):
    """Base exception for Power BI REST API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.response = response or {}
        self.request_id = request_id

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, request_id={self.request_id!r})"
        )


class PowerBIAuthenticationError(PowerBIError):
    """Raised when the bearer token is rejected (401) or lacks a permission (403)."""

    def __init__(
        self,
        message: str = "Authentication failed - access token may be invalid or expired",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class PowerBIRateLimitError(PowerBIError):
    """
    Raised when the service throttles a call (429).

    ``retry_after`` is the parsed ``Retry-After`` header in seconds, or
    None when the service did not say how long to back off.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded - please retry after a delay",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class PowerBIConnectionError(PowerBIError):
    """Raised when the API cannot be reached or does not answer in time."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach Power BI API",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class PowerBINotFoundError(PowerBIError):
    """
    Raised when a workspace, report or export job does not exist (404).

    ``resource_type`` is one of ``"group"``, ``"report"`` or ``"export"``:
    the innermost resource named by the request path.
    """

    def __init__(
        self,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        **kwargs,
    ):
        if message is None:
            message = (
                f"{resource_type.capitalize()} not found: {resource_id}"
                if resource_type
                else "Resource not found"
            )
        super().__init__(message, status_code=404, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id
