"""Adapters that turn byte sources into async pull-based streams."""
import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

_EOF = object()


def _ensure_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, bytes):
        return chunk
    if isinstance(chunk, (bytearray, memoryview)):
        return bytes(chunk)
    raise TypeError(f"chunks must be bytes, got {type(chunk).__name__}")


class _Failure:
    """Queue entry carrying a producer error."""

    __slots__ = ("exc",)

    def __init__(self, exc: BaseException):
        self.exc = exc


class PushStream:
    """Bridge from a push-style producer to an async iterator of bytes.

    The producer calls ``feed_data`` for every chunk, then ``feed_eof`` or
    ``set_exception``. The consumer iterates with ``async for``. Closing the
    stream before it ends calls ``on_cancel`` synchronously so the producer
    can stop emitting and release what it holds.

    All methods must be called from the event loop thread.
    """

    def __init__(self, on_cancel: Optional[Callable[[], Any]] = None):
        self._on_cancel = on_cancel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._ended = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed_data(self, chunk: bytes) -> None:
        if self._ended or self._closed:
            return
        self._queue.put_nowait(_ensure_bytes(chunk))

    def feed_eof(self) -> None:
        if self._ended or self._closed:
            return
        self._ended = True
        self._queue.put_nowait(_EOF)

    def set_exception(self, exc: BaseException) -> None:
        if self._ended or self._closed:
            return
        self._ended = True
        self._queue.put_nowait(_Failure(exc))

    def __aiter__(self) -> "PushStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is _EOF:
            self._closed = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._closed = True
            raise item.exc
        return item

    async def aclose(self) -> None:
        """Stop consuming. Cancels the producer if it has not finished."""
        if self._closed:
            return
        self._closed = True

        if self._ended:
            return
        self._ended = True

        logger.debug("Push stream closed before end, cancelling producer")
        if self._on_cancel is not None:
            self._on_cancel()


class _SourceStream:
    """Async iterator over a pull-style source that releases it exactly once.

    The source is released when it is exhausted, when reading fails, or when
    the consumer calls ``aclose()``, even if iteration never started.
    """

    def __init__(self) -> None:
        self._done = False

    def __aiter__(self) -> "_SourceStream":
        return self

    async def __anext__(self) -> bytes:
        if self._done:
            raise StopAsyncIteration

        try:
            chunk = await self._read()
        except BaseException:
            await self.aclose()
            raise

        if chunk is None:
            await self.aclose()
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        if self._done:
            return
        self._done = True
        await self._release()

    async def _read(self) -> Optional[bytes]:
        raise NotImplementedError

    async def _release(self) -> None:
        pass


class _BufferStream(_SourceStream):
    def __init__(self, buffer: bytes):
        super().__init__()
        self._buffer: Optional[bytes] = buffer or None

    async def _read(self) -> Optional[bytes]:
        buffer, self._buffer = self._buffer, None
        return buffer


class _FileStream(_SourceStream):
    def __init__(self, fileobj: Any, chunk_size: int):
        super().__init__()
        self._fileobj = fileobj
        self._chunk_size = chunk_size

    async def _read(self) -> Optional[bytes]:
        chunk = await asyncio.to_thread(self._fileobj.read, self._chunk_size)
        return _ensure_bytes(chunk) if chunk else None

    async def _release(self) -> None:
        self._fileobj.close()


class _AsyncIterableStream(_SourceStream):
    def __init__(self, iterable: AsyncIterable):
        super().__init__()
        self._iterator = iterable.__aiter__()

    async def _read(self) -> Optional[bytes]:
        try:
            chunk = await self._iterator.__anext__()
        except StopAsyncIteration:
            return None
        return _ensure_bytes(chunk)

    async def _release(self) -> None:
        aclose = getattr(self._iterator, "aclose", None)
        if aclose is not None:
            await aclose()


class _IterableStream(_SourceStream):
    def __init__(self, iterable: Iterable):
        super().__init__()
        self._iterator = iter(iterable)

    async def _read(self) -> Optional[bytes]:
        try:
            chunk = next(self._iterator)
        except StopIteration:
            return None
        return _ensure_bytes(chunk)

    async def _release(self) -> None:
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()


ByteSource = Union[bytes, bytearray, memoryview, PushStream, AsyncIterable, Iterable, Any]


def iter_source(source: ByteSource, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Normalise a byte source into an async iterator of bytes chunks.

    Supported sources:
        - bytes, bytearray or memoryview: yielded as one chunk
        - binary file objects: read in ``chunk_size`` pieces off the event
          loop thread, and closed once the stream ends or is cancelled
        - PushStream: returned as is
        - async or sync iterables of bytes: forwarded chunk by chunk, and
          closed once the stream ends or is cancelled

    Args:
        source: The byte source to adapt
        chunk_size: Read size for file objects

    Returns:
        An async iterator supporting ``aclose()``

    Raises:
        TypeError: If the source type is not supported
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    if isinstance(source, PushStream):
        return source
    if isinstance(source, (bytes, bytearray, memoryview)):
        return _BufferStream(bytes(source))
    if hasattr(source, "read"):
        return _FileStream(source, chunk_size)
    if isinstance(source, AsyncIterable):
        return _AsyncIterableStream(source)
    if isinstance(source, Iterable) and not isinstance(source, str):
        return _IterableStream(source)

    raise TypeError(f"Unsupported byte source: {type(source).__name__}")
