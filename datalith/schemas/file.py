"""File returned by fetch operations."""

from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .image import ImageSize


@dataclass(frozen=True)
class File:
    """A fetched file: response metadata plus the lazy body.

    ``data`` can be consumed once. It must be drained or cancelled with
    ``cancel_data()`` before the File is dropped, otherwise the connection
    stays open. ``async with file:`` cancels whatever was not read.

    ``image_size`` is only meaningful when ``is_image`` is True, and is None
    when the store did not report the dimensions.
    """

    etag: str
    date: datetime
    content_type: str
    content_length: Optional[int]
    content_disposition: Optional[str]
    data: AsyncIterator[bytes] = field(repr=False, compare=False)
    image_size: Optional[ImageSize] = None
    is_image: bool = False
    _closer: Optional[Callable[[], Awaitable[None]]] = field(default=None, repr=False, compare=False)

    async def read(self) -> bytes:
        """Read the remaining body into memory."""
        chunks = [chunk async for chunk in self.data]
        return b"".join(chunks)

    async def cancel_data(self) -> None:
        """Cancel the body and release the connection.

        Use this instead of closing ``data`` directly; it also works when
        iteration never started. Safe to call more than once.
        """
        aclose = getattr(self.data, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._closer is not None:
            await self._closer()

    async def __aenter__(self) -> "File":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel_data()
