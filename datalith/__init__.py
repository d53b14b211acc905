"""Async client for the Datalith binary-object store."""

from .client import Datalith
from .errors import (
    BadRequestError,
    DatalithError,
    InvalidArgumentError,
    InvalidCenterCropError,
    InvalidResolutionError,
    InvalidTimeoutError,
    MalformedResponseError,
    NotFoundError,
    PayloadTooLargeError,
    RequestTimeoutError,
    UnknownError,
)
from .governor import GovernedStream, TimeoutGovernor
from .schemas import File, Image, ImageSize, Resource
from .streams import PushStream, iter_source

__version__ = "0.1.0"

__all__ = [
    "Datalith",
    "File",
    "Image",
    "ImageSize",
    "Resource",
    "PushStream",
    "iter_source",
    "TimeoutGovernor",
    "GovernedStream",
    "DatalithError",
    "BadRequestError",
    "NotFoundError",
    "PayloadTooLargeError",
    "RequestTimeoutError",
    "MalformedResponseError",
    "UnknownError",
    "InvalidArgumentError",
    "InvalidTimeoutError",
    "InvalidCenterCropError",
    "InvalidResolutionError",
]
