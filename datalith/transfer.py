"""A single HTTP exchange with the store and the mapping of its outcome."""
import logging
import time
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Optional, Union

import httpx

from .errors import (
    BadRequestError,
    DatalithError,
    PayloadTooLargeError,
    RequestTimeoutError,
    UnknownError,
)
from .governor import GovernedStream, TimeoutGovernor

logger = logging.getLogger(__name__)


def status_error(method: str, status_code: int) -> DatalithError:
    """Map a non-200, non-404 status code to the error raised for it."""
    if status_code == 400:
        return BadRequestError()
    if status_code == 413 and method == "PUT":
        return PayloadTooLargeError()
    return UnknownError(f"Unexpected status code {status_code}", status_code=status_code)


class Transfer:
    """One request/response exchange with the store.

    Each transfer owns its own ``httpx.AsyncClient`` and therefore its own
    connection. The connection is released by ``aclose()``, which runs on
    every failure path and after the body has been read. When the body is
    handed out through ``iter_data()`` it is released once the stream ends
    or is cancelled.

    Outcomes of ``send()``:
        - 200: the response is returned, body unread
        - 404: None
        - 400: BadRequestError
        - 413 on PUT: PayloadTooLargeError
        - expired governor: RequestTimeoutError
        - anything else: UnknownError
    """

    def __init__(
        self,
        method: str,
        url: Union[str, httpx.URL],
        *,
        governor: TimeoutGovernor,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[GovernedStream] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the transfer.

        Args:
            method: HTTP method (PUT, GET or DELETE)
            url: Absolute URL including query parameters
            governor: Deadlines for the whole exchange
            headers: Extra request headers
            body: Governed request body, streamed as it is read
            transport: Transport for the underlying client (tests inject a mock)
        """
        self.method = method.upper()
        self.url = httpx.URL(url)
        self.headers = dict(headers or {})
        self.governor = governor

        self._body = body
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._response: Optional[httpx.Response] = None
        self._closed = False

    @property
    def response(self) -> Optional[httpx.Response]:
        return self._response

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def _mapped_errors(self):
        """Release the exchange on any failure and map httpx errors."""
        try:
            yield
        except BaseException as e:
            await self.aclose()
            if isinstance(e, httpx.TimeoutException):
                raise RequestTimeoutError() from e
            if isinstance(e, httpx.HTTPError):
                logger.error(f"HTTP error during {self.method} {self.url}: {e}")
                raise UnknownError(f"HTTP error: {e}") from e
            raise

    async def send(self) -> Optional[httpx.Response]:
        """Send the request and classify the response status.

        Returns:
            The 200 response with its body unread, or None for 404

        Raises:
            BadRequestError: On 400
            PayloadTooLargeError: On 413 for PUT
            RequestTimeoutError: If a deadline expires
            UnknownError: On any other status or a transport failure
        """
        if self._client is not None:
            raise RuntimeError("Transfer has already been sent")

        self._client = httpx.AsyncClient(transport=self._transport, timeout=None)
        request = self._client.build_request(self.method, self.url, headers=self.headers, content=self._body)

        # Without a body the idle deadline covers the wait for the response
        if self._body is None:
            self.governor.touch()

        logger.debug(f"Sending {self.method} {self.url}")
        start_time = time.time()

        async with self._mapped_errors():
            async with self.governor.guard():
                self._response = await self._client.send(request, stream=True)

        status_code = self._response.status_code
        elapsed_time = time.time() - start_time

        if status_code == 200:
            # The body stream re-arms idle on its first chunk
            self.governor.disarm_idle()
            logger.debug(f"{self.method} {self.url} returned 200 in {elapsed_time:.2f}s")
            return self._response

        await self.aclose()

        if status_code == 404:
            logger.debug(f"{self.method} {self.url} returned 404 in {elapsed_time:.2f}s")
            return None

        error = status_error(self.method, status_code)
        if isinstance(error, UnknownError):
            logger.error(f"{self.method} {self.url} returned unexpected status {status_code}")
        else:
            logger.info(f"{self.method} {self.url} rejected with status {status_code}")
        raise error

    async def read(self) -> bytes:
        """Read the whole response body and release the exchange."""
        if self._response is None:
            raise RuntimeError("Transfer has no response")

        async with self._mapped_errors():
            async with self.governor.guard():
                body = await self._response.aread()

        await self.aclose()
        return body

    async def iter_data(self) -> AsyncIterator[bytes]:
        """Yield the response body chunk by chunk under the governor.

        The exchange is released when the body ends, fails, or the consumer
        closes the iterator.
        """
        if self._response is None:
            raise RuntimeError("Transfer has no response")

        stream = self.governor.govern(self._response.aiter_bytes(), start_immediately=False)
        try:
            async with self._mapped_errors():
                async for chunk in stream:
                    yield chunk
        finally:
            await stream.aclose()
            await self.aclose()

    async def aclose(self) -> None:
        """Release everything the exchange holds. Safe to call more than once.

        Closes the request body (cancelling its producer if unfinished), the
        response and the client. Failures while closing are logged and ignored.
        """
        if self._closed:
            return
        self._closed = True

        self.governor.complete()

        if self._body is not None:
            await self._body.aclose()

        if self._response is not None:
            try:
                await self._response.aclose()
            except httpx.HTTPError as e:
                logger.warning(f"Ignoring error while closing response body: {e}")

        if self._client is not None:
            try:
                await self._client.aclose()
            except httpx.HTTPError as e:
                logger.warning(f"Ignoring error while closing client: {e}")

    async def __aenter__(self) -> "Transfer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
