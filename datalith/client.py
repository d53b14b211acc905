"""Datalith store client."""
import logging
import time
from typing import Any, Optional, Union

import httpx

from config import Settings, get_settings

from .decoders import decode_file, decode_image, decode_resource
from .errors import MalformedResponseError, NotFoundError, UnknownError
from .governor import TimeoutGovernor
from .schemas import File, Image, Resource
from .streams import ByteSource, iter_source
from .transfer import Transfer
from .validation import validate_center_crop, validate_resolution

logger = logging.getLogger(__name__)

FILE_LENGTH_HEADER = "x-file-length"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _build_params(**params: Any) -> dict[str, str]:
    """Drop unset options and render the rest as query string values."""
    return {name: _query_value(value) for name, value in params.items() if value is not None}


class Datalith:
    """Client for a Datalith store.

    Every operation is a coroutine running one HTTP exchange over its own
    connection. Instances hold no mutable state, so calls may run
    concurrently.

    Example:
        datalith = Datalith("http://127.0.0.1:1111")
        with open("image.png", "rb") as f:
            resource = await datalith.put_resource(f)

        file = await datalith.get_resource(resource.id)
        if file is not None:
            content = await file.read()
    """

    def __init__(
        self,
        api_prefix: Optional[Union[str, httpx.URL]] = None,
        *,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_prefix: Base URL of the store. Defaults to ``settings.api_prefix``
            settings: Client settings. Defaults to ``get_settings()``
            transport: Transport for the underlying httpx clients
        """
        self.settings = settings or get_settings()
        self._transport = transport

        if api_prefix is None:
            api_prefix = self.settings.api_prefix
        if not str(api_prefix):
            raise ValueError("api_prefix must be set")

        base = str(api_prefix)
        if not base.endswith("/"):
            base += "/"
        self.api_prefix = httpx.URL(base)

        self._operate_url = self.api_prefix.join("o/")
        self._operate_image_url = self.api_prefix.join("i/o/")
        self._fetch_url = self.api_prefix.join("f/")
        self._fetch_image_url = self.api_prefix.join("i/f/")

    @property
    def operate_url(self) -> httpx.URL:
        return self._operate_url

    @property
    def operate_image_url(self) -> httpx.URL:
        return self._operate_image_url

    @property
    def fetch_url(self) -> httpx.URL:
        return self._fetch_url

    @property
    def fetch_image_url(self) -> httpx.URL:
        return self._fetch_image_url

    def _governor(self, request_timeout: Optional[int], idle_timeout: Optional[int] = None) -> TimeoutGovernor:
        if request_timeout is None:
            request_timeout = self.settings.request_timeout
        return TimeoutGovernor(request_timeout, idle_timeout)

    def _transfer(self, method: str, url: httpx.URL, governor: TimeoutGovernor, **kwargs: Any) -> Transfer:
        return Transfer(method, url, governor=governor, transport=self._transport, **kwargs)

    async def _upload(
        self,
        url: httpx.URL,
        stream: ByteSource,
        governor: TimeoutGovernor,
        file_size: Optional[int],
    ) -> bytes:
        """Stream an upload body and return the JSON response body."""
        headers = {}
        if file_size is not None:
            headers[FILE_LENGTH_HEADER] = str(file_size)

        body = governor.govern(
            iter_source(stream, self.settings.upload_chunk_size),
            start_immediately=True,
        )

        async with self._transfer("PUT", url, governor, headers=headers, body=body) as transfer:
            response = await transfer.send()
            if response is None:
                raise UnknownError("Unexpected status code 404", status_code=404)
            return await transfer.read()

    async def put_resource(
        self,
        stream: ByteSource,
        *,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
        file_size: Optional[int] = None,
        temporary: Optional[bool] = None,
        request_timeout: Optional[int] = None,
        idle_timeout: Optional[int] = None,
    ) -> Resource:
        """Upload a resource.

        Args:
            stream: Content to upload (bytes, file object, PushStream or byte iterable)
            file_name: File name to store
            file_type: MIME type; the store detects it when omitted
            file_size: Declared size in bytes, sent as a hint
            temporary: Whether the store may expire the resource
            request_timeout: Total timeout in milliseconds (0 for none)
            idle_timeout: Maximum silence between body chunks in milliseconds

        Returns:
            Resource: The stored resource

        Raises:
            BadRequestError: If the store rejects the request
            PayloadTooLargeError: If the file is too large for the store
            RequestTimeoutError: If a timeout expires
            InvalidTimeoutError: If a timeout value is invalid
            MalformedResponseError: If the response cannot be decoded
            UnknownError: On any other failure
        """
        if idle_timeout is None:
            idle_timeout = self.settings.idle_timeout
        governor = self._governor(request_timeout, idle_timeout)

        url = self._operate_url.copy_merge_params(
            _build_params(file_name=file_name, file_type=file_type, temporary=temporary)
        )

        logger.debug(f"Uploading resource to {url}")
        start_time = time.time()

        body = await self._upload(url, stream, governor, file_size)
        resource = decode_resource(body)

        elapsed_time = time.time() - start_time
        logger.info(f"Uploaded resource {resource.id} ({resource.file_size} bytes) in {elapsed_time:.2f}s")
        return resource

    async def put_image(
        self,
        stream: ByteSource,
        *,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
        center_crop: Optional[str] = None,
        save_original_file: Optional[bool] = None,
        request_timeout: Optional[int] = None,
        idle_timeout: Optional[int] = None,
    ) -> Image:
        """Upload an image, resized and cropped by the store.

        Args:
            stream: Content to upload (bytes, file object, PushStream or byte iterable)
            file_name: File name to store
            file_size: Declared size in bytes, sent as a hint
            max_width: Maximum width of the 1x image
            max_height: Maximum height of the 1x image
            center_crop: Aspect ratio to crop to, e.g. ``"16:9"``
            save_original_file: Whether to keep the original upload
            request_timeout: Total timeout in milliseconds (0 for none)
            idle_timeout: Maximum silence between body chunks in milliseconds

        Returns:
            Image: The stored image

        Raises:
            InvalidCenterCropError: If center_crop is malformed (no request is sent)
            BadRequestError: If the store rejects the request
            PayloadTooLargeError: If the file is too large for the store
            RequestTimeoutError: If a timeout expires
            MalformedResponseError: If the response cannot be decoded
            UnknownError: On any other failure
        """
        validate_center_crop(center_crop)
        if idle_timeout is None:
            idle_timeout = self.settings.idle_timeout
        governor = self._governor(request_timeout, idle_timeout)

        url = self._operate_image_url.copy_merge_params(
            _build_params(
                file_name=file_name,
                max_width=max_width,
                max_height=max_height,
                center_crop=center_crop,
                save_original_file=save_original_file,
            )
        )

        logger.debug(f"Uploading image to {url}")
        start_time = time.time()

        body = await self._upload(url, stream, governor, file_size)
        image = decode_image(body)

        elapsed_time = time.time() - start_time
        logger.info(
            f"Uploaded image {image.id} ({image.image_size.width}x{image.image_size.height}) "
            f"in {elapsed_time:.2f}s"
        )
        return image

    async def _fetch(self, url: httpx.URL, governor: TimeoutGovernor, *, is_image: bool) -> Optional[File]:
        transfer = self._transfer("GET", url, governor)

        response = await transfer.send()
        if response is None:
            logger.debug(f"Nothing found at {url}")
            return None

        try:
            return decode_file(response, transfer.iter_data(), transfer.aclose, is_image=is_image)
        except BaseException:
            await transfer.aclose()
            raise

    async def get_resource(
        self,
        id: str,
        *,
        request_timeout: Optional[int] = None,
        idle_timeout: Optional[int] = None,
    ) -> Optional[File]:
        """Fetch a resource.

        The returned File's ``data`` must be drained or cancelled.

        Args:
            id: Resource ID
            request_timeout: Total timeout in milliseconds, including reading the body
            idle_timeout: Maximum silence between body chunks in milliseconds

        Returns:
            File, or None if the resource does not exist

        Raises:
            BadRequestError: If the store rejects the request
            RequestTimeoutError: If a timeout expires
            MalformedResponseError: If the response headers cannot be decoded
            UnknownError: On any other failure
        """
        if idle_timeout is None:
            idle_timeout = self.settings.idle_timeout
        governor = self._governor(request_timeout, idle_timeout)

        return await self._fetch(self._fetch_url.join(id), governor, is_image=False)

    async def get_image(
        self,
        id: str,
        *,
        resolution: Optional[str] = None,
        fallback: Optional[bool] = None,
        request_timeout: Optional[int] = None,
        idle_timeout: Optional[int] = None,
    ) -> Optional[File]:
        """Fetch an image, optionally a derived resolution.

        Args:
            id: Image ID
            resolution: ``"original"`` or ``"<n>x"``, e.g. ``"1x"``
            fallback: Ask for the fallback format instead of the default one
            request_timeout: Total timeout in milliseconds, including reading the body
            idle_timeout: Maximum silence between body chunks in milliseconds

        Returns:
            File with ``is_image`` set, or None if the image does not exist

        Raises:
            InvalidResolutionError: If resolution is malformed (no request is sent)
            BadRequestError: If the store rejects the request
            RequestTimeoutError: If a timeout expires
            MalformedResponseError: If the response headers cannot be decoded
            UnknownError: On any other failure
        """
        validate_resolution(resolution)
        if idle_timeout is None:
            idle_timeout = self.settings.idle_timeout
        governor = self._governor(request_timeout, idle_timeout)

        url = self._fetch_image_url.join(id).copy_merge_params(
            _build_params(resolution=resolution, fallback=fallback)
        )
        return await self._fetch(url, governor, is_image=True)

    async def _delete(self, url: httpx.URL, request_timeout: Optional[int]) -> bool:
        governor = self._governor(request_timeout)

        async with self._transfer("DELETE", url, governor) as transfer:
            response = await transfer.send()

        deleted = response is not None
        logger.info(f"Delete {url}: {'deleted' if deleted else 'not found'}")
        return deleted

    async def delete_resource(self, id: str, *, request_timeout: Optional[int] = None) -> bool:
        """Delete a resource.

        Returns:
            bool: True if it was deleted, False if it did not exist
        """
        return await self._delete(self._operate_url.join(id), request_timeout)

    async def delete_image(self, id: str, *, request_timeout: Optional[int] = None) -> bool:
        """Delete an image.

        Returns:
            bool: True if it was deleted, False if it did not exist
        """
        return await self._delete(self._operate_image_url.join(id), request_timeout)

    async def convert_resource_to_image(
        self,
        id: str,
        *,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
        center_crop: Optional[str] = None,
        request_timeout: Optional[int] = None,
    ) -> Image:
        """Convert a stored resource into an image.

        Args:
            id: Resource ID
            max_width: Maximum width of the 1x image
            max_height: Maximum height of the 1x image
            center_crop: Aspect ratio to crop to, e.g. ``"16:9"``
            request_timeout: Total timeout in milliseconds (0 for none)

        Returns:
            Image: The new image

        Raises:
            InvalidCenterCropError: If center_crop is malformed (no request is sent)
            NotFoundError: If the resource does not exist
            BadRequestError: If the store rejects the request
            RequestTimeoutError: If the timeout expires
            MalformedResponseError: If the response cannot be decoded
            UnknownError: On any other failure
        """
        validate_center_crop(center_crop)
        governor = self._governor(request_timeout)

        params = {"convert-image": ""}
        params.update(_build_params(max_width=max_width, max_height=max_height, center_crop=center_crop))
        url = self._operate_url.join(id).copy_merge_params(params)

        start_time = time.time()

        async with self._transfer("PUT", url, governor) as transfer:
            response = await transfer.send()
            if response is None:
                raise NotFoundError(f"Resource {id} not found")
            body = await transfer.read()

        image = decode_image(body)

        elapsed_time = time.time() - start_time
        logger.info(f"Converted resource {id} to image {image.id} in {elapsed_time:.2f}s")
        return image
