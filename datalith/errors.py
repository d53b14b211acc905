"""Typed errors raised by the Datalith client."""

from typing import Optional


class DatalithError(Exception):
    """Base exception for all Datalith client errors."""

    default_message = "Datalith error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class BadRequestError(DatalithError):
    """Raised when the store rejects a request as malformed (HTTP 400)."""

    default_message = "BadRequest"


class NotFoundError(DatalithError):
    """Raised when a resource that must exist is missing (HTTP 404 on convert)."""

    default_message = "NotFound"


class PayloadTooLargeError(DatalithError):
    """Raised when an upload exceeds the store's size limit (HTTP 413)."""

    default_message = "PayloadTooLarge"


class RequestTimeoutError(DatalithError):
    """Raised when the total or idle deadline of an exchange expires."""

    default_message = "Timeout"


class MalformedResponseError(DatalithError):
    """Raised when a response body or its headers do not have the expected shape."""

    default_message = "Malformed"


class UnknownError(DatalithError):
    """Raised for any other status code or a transport failure.

    ``status_code`` is ``None`` when no response was received.
    """

    default_message = "Unknown"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidArgumentError(DatalithError, ValueError):
    """Raised when client-side input validation fails, before any I/O."""

    default_message = "InvalidArgument"


class InvalidTimeoutError(InvalidArgumentError):
    """Raised for a timeout that is not a non-negative safe integer."""

    default_message = "InvalidTimeout"


class InvalidCenterCropError(BadRequestError, InvalidArgumentError):
    """Raised for a center crop that is not ``<number>:<number>``."""

    default_message = "InvalidCenterCrop"


class InvalidResolutionError(BadRequestError, InvalidArgumentError):
    """Raised for a resolution that is neither ``original`` nor ``<n>x``."""

    default_message = "InvalidResolution"
