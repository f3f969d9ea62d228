"""
FeedTrak Input Validators
=========================

Validation utilities for URLs, category names and OPML uploads.
"""

from pathlib import Path
from typing import List
from urllib.parse import urlparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate a user-supplied feed or site URL.

        Args:
            url: URL to validate

        Returns:
            The URL with surrounding whitespace removed

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return url

    @classmethod
    def is_absolute_http_url(cls, url: str) -> bool:
        """Check that a URL is absolute with an http(s) scheme and a host."""
        if not url or not isinstance(url, str):
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme.lower() in cls.ALLOWED_SCHEMES and bool(parsed.netloc)


class ContentValidator:
    """Validation for user-entered names."""

    MAX_CATEGORY_NAME_LENGTH = 50

    @classmethod
    def validate_category_name(cls, name: str) -> str:
        """Validate and trim a category name.

        Raises:
            ValidationError: If the name is empty or too long
        """
        if not name or not isinstance(name, str) or not name.strip():
            raise ValidationError(
                "Category name is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="name"
            )

        name = name.strip()
        if len(name) > cls.MAX_CATEGORY_NAME_LENGTH:
            raise ValidationError(
                f"Category name must be at most {cls.MAX_CATEGORY_NAME_LENGTH} characters",
                error_code=ErrorCode.VALIDATION_OUT_OF_RANGE,
                field_name="name"
            )
        return name


def validate_upload(
    filename: str,
    content: bytes,
    max_bytes: int,
    allowed_extensions: List[str],
) -> None:
    """Validate an uploaded OPML file before parsing.

    Raises:
        ValidationError: On a bad extension, an empty file or an oversized file
    """
    extension = Path(filename or "").suffix.lower()
    if extension not in allowed_extensions:
        raise ValidationError(
            f"File must be one of: {', '.join(allowed_extensions)}",
            error_code=ErrorCode.OPML_UPLOAD_REJECTED,
            field_name="file"
        )

    if not content or not content.strip():
        raise ValidationError(
            "The uploaded file is empty",
            error_code=ErrorCode.OPML_UPLOAD_REJECTED,
            field_name="file"
        )

    if len(content) > max_bytes:
        raise ValidationError(
            f"File exceeds the {max_bytes // (1024 * 1024)}MB limit",
            error_code=ErrorCode.OPML_UPLOAD_REJECTED,
            field_name="file"
        )

