"""
FeedTrak Custom Exceptions
==========================

Exception hierarchy for FeedTrak with error codes, context information and
user-friendly messages.

Ingestion errors are split by what a retry can achieve:
- TransportError / HttpClientError: permanent, retrying the same URL is pointless
- HttpServerError / unexpected errors: retryable
- ParseError / NotFoundError: soft failures, turned into null results
"""

from typing import Optional, Dict, Any
from enum import Enum

import requests


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_ERROR = "D006"

    # Feed ingestion errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_HTTP_CLIENT_ERROR = "F007"
    FEED_HTTP_SERVER_ERROR = "F008"
    FEED_UNKNOWN_ERROR = "F009"

    # OPML errors (O001-O099)
    OPML_INVALID = "O001"
    OPML_MISSING_BODY = "O002"
    OPML_UPLOAD_REJECTED = "O003"

    # Job errors (J001-J099)
    JOB_TIMEOUT = "J001"
    JOB_UNKNOWN_KIND = "J002"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"
    VALIDATION_DUPLICATE = "V004"

    # Resource management errors (R001-R099)
    RESOURCE_NOT_FOUND = "R002"
    RESOURCE_FORBIDDEN = "R004"


class FeedTrakError(Exception):
    """Base exception for all FeedTrak errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedTrak error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying the operation may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(FeedTrakError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.pop("user_message", f"Configuration error: {message}"),
            **kwargs,
        )


class DatabaseError(FeedTrakError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.DATABASE_ERROR),
            context=context,
            user_message=kwargs.pop("user_message", "Database operation failed"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class ValidationError(FeedTrakError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for FeedTrakError
        """
        context = kwargs.pop("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.pop("user_message", message),
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class AccessDeniedError(FeedTrakError):
    """A user tried to act on a resource they do not own or follow."""

    def __init__(self, message: str, user_id: Optional[int] = None, **kwargs):
        context = kwargs.pop("context", {})
        if user_id is not None:
            context["user_id"] = user_id

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.RESOURCE_FORBIDDEN),
            context=context,
            user_message=kwargs.pop("user_message", "Access denied"),
            recoverable=False,
            **kwargs,
        )


class FeedError(FeedTrakError):
    """Feed ingestion and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for FeedTrakError
        """
        context = kwargs.pop("context", {})
        if feed_url:
            context["feed_url"] = feed_url
        self.feed_url = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_UNKNOWN_ERROR),
            context=context,
            user_message=kwargs.pop(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class TransportError(FeedError):
    """Connection refused, DNS failure or timeout."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_NETWORK_ERROR)
        kwargs.setdefault("user_message", "Could not connect to the feed")
        kwargs["recoverable"] = False
        super().__init__(message, feed_url=feed_url, **kwargs)


class HttpStatusError(FeedError):
    """Non-2xx HTTP response."""

    def __init__(
        self,
        message: str,
        status_code: int,
        feed_url: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, feed_url=feed_url, context=context, **kwargs)


class HttpClientError(HttpStatusError):
    """4xx response: the resource is absent or forbidden."""

    def __init__(self, message: str, status_code: int, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_HTTP_CLIENT_ERROR)
        kwargs.setdefault("user_message", f"The feed server answered {status_code}")
        kwargs["recoverable"] = False
        super().__init__(message, status_code, feed_url=feed_url, **kwargs)


class HttpServerError(HttpStatusError):
    """5xx response: the server may recover."""

    def __init__(self, message: str, status_code: int, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_HTTP_SERVER_ERROR)
        kwargs.setdefault("user_message", "The feed server is temporarily unavailable")
        kwargs["recoverable"] = True
        super().__init__(message, status_code, feed_url=feed_url, **kwargs)


class ParseError(FeedError):
    """Malformed XML, HTML or OPML."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_PARSE_ERROR)
        kwargs.setdefault("user_message", "The document could not be parsed")
        kwargs.setdefault("recoverable", False)
        super().__init__(message, feed_url=feed_url, **kwargs)


class NotFoundError(FeedError):
    """No feed could be discovered at the URL."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_NOT_FOUND)
        kwargs.setdefault("user_message", "No feed was found at this address")
        kwargs["recoverable"] = False
        super().__init__(message, feed_url=feed_url, **kwargs)


class OpmlStructureError(ParseError):
    """The OPML document is unusable as a whole."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.OPML_INVALID)
        kwargs.setdefault("user_message", message)
        super().__init__(message, **kwargs)


class JobTimeoutError(FeedTrakError):
    """A job attempt exceeded its time budget."""

    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if job_id:
            context["job_id"] = job_id

        super().__init__(
            message=message,
            error_code=ErrorCode.JOB_TIMEOUT,
            context=context,
            user_message="The operation took too long",
            recoverable=True,
            **kwargs,
        )


# Exception handling utilities


def classify_request_exception(
    exception: requests.RequestException, url: str
) -> FeedError:
    """Translate a requests exception into the FeedTrak taxonomy.

    Args:
        exception: Exception raised by requests
        url: URL that was being fetched

    Returns:
        TransportError, HttpClientError, HttpServerError or a generic FeedError
    """
    if isinstance(exception, (requests.ConnectionError, requests.Timeout)):
        return TransportError(f"Could not reach {url}: {exception}", feed_url=url)

    response = getattr(exception, "response", None)
    if isinstance(exception, requests.HTTPError) and response is not None:
        return error_for_status(response.status_code, url)

    return FeedError(
        f"Request to {url} failed: {exception}",
        feed_url=url,
        error_code=ErrorCode.FEED_UNKNOWN_ERROR,
    )


def error_for_status(status_code: int, url: str) -> FeedError:
    """Build the error matching an unsuccessful HTTP status."""
    if 400 <= status_code < 500:
        return HttpClientError(f"HTTP {status_code} for {url}", status_code, feed_url=url)
    if status_code >= 500:
        return HttpServerError(f"HTTP {status_code} for {url}", status_code, feed_url=url)
    return FeedError(
        f"Unexpected HTTP {status_code} for {url}",
        feed_url=url,
        context={"status_code": status_code},
    )


def is_retryable_error(exception: Exception) -> bool:
    """Check if an error is worth retrying.

    FeedTrak errors carry their own verdict. Anything else is unexpected and
    gets the benefit of the doubt.
    """
    if isinstance(exception, FeedTrakError):
        return exception.recoverable
    return True


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, FeedTrakError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
