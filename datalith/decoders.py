"""Decode store responses into Resource, Image and File."""
import json
import logging
from collections.abc import AsyncIterator, Awaitable
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Callable, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .errors import MalformedResponseError
from .schemas import File, Image, ImageSize, Resource

logger = logging.getLogger(__name__)

IMAGE_WIDTH_HEADER = "x-image-width"
IMAGE_HEIGHT_HEADER = "x-image-height"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _decode_json(model: Type[ModelT], body: bytes) -> ModelT:
    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.error(f"Response body is not JSON: {e}")
        raise MalformedResponseError(f"Response body is not JSON: {e}") from e

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Malformed {model.__name__} response: {e}")
        raise MalformedResponseError(f"Malformed {model.__name__} response: {e}") from e


def decode_resource(body: bytes) -> Resource:
    """Decode the JSON body of a resource upload.

    Raises:
        MalformedResponseError: If the body is not a valid resource object
    """
    return _decode_json(Resource, body)


def decode_image(body: bytes) -> Image:
    """Decode the JSON body of an image upload or conversion.

    Raises:
        MalformedResponseError: If the body is not a valid image object
    """
    return _decode_json(Image, body)


def _require_header(headers: httpx.Headers, name: str) -> str:
    value = headers.get(name)
    if value is None:
        raise MalformedResponseError(f"Missing {name} header")
    return value


def _parse_date(value: str) -> datetime:
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid date header: {value!r}") from e


def _parse_int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None

    value = value.strip()
    # isdigit() alone also accepts non-ASCII digits such as "²"
    if not (value.isascii() and value.isdigit()):
        raise MalformedResponseError(f"Invalid {name} header: {value!r}")
    return int(value)


def _parse_image_size(headers: httpx.Headers) -> Optional[ImageSize]:
    width = _parse_int_header(headers, IMAGE_WIDTH_HEADER)
    height = _parse_int_header(headers, IMAGE_HEIGHT_HEADER)
    if width is None or height is None:
        return None

    try:
        return ImageSize(width=width, height=height)
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid image size: {width}x{height}") from e


def decode_file(
    response: httpx.Response,
    data: AsyncIterator[bytes],
    closer: Optional[Callable[[], Awaitable[None]]] = None,
    *,
    is_image: bool = False,
) -> File:
    """Build a File from the headers of a fetch response.

    The body is not read; ``data`` becomes the File's lazy stream.

    Args:
        response: Response with status 200
        data: Stream over the response body
        closer: Releases the exchange when the File is cancelled
        is_image: Whether this is an image fetch, which reports its size
            through the x-image-width / x-image-height headers

    Returns:
        File: The decoded file

    Raises:
        MalformedResponseError: If a required header is missing or invalid
    """
    headers = response.headers

    image_size = _parse_image_size(headers) if is_image else None

    return File(
        etag=_require_header(headers, "etag"),
        date=_parse_date(_require_header(headers, "date")),
        content_type=_require_header(headers, "content-type"),
        content_length=_parse_int_header(headers, "content-length"),
        content_disposition=headers.get("content-disposition"),
        data=data,
        image_size=image_size,
        is_image=is_image,
        _closer=closer,
    )
