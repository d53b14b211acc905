"""Tests for byte stream adapters."""
import io

import pytest

from datalith.streams import PushStream, iter_source


async def collect(stream) -> list[bytes]:
    return [chunk async for chunk in stream]


class TestPushStream:
    """Test the push-to-pull bridge."""

    @pytest.mark.asyncio
    async def test_forwards_chunks_in_order(self):
        """Test that chunks come out in the order they were fed."""
        stream = PushStream()
        stream.feed_data(b"one")
        stream.feed_data(bytearray(b"two"))
        stream.feed_data(memoryview(b"three"))
        stream.feed_eof()

        assert await collect(stream) == [b"one", b"two", b"three"]

    @pytest.mark.asyncio
    async def test_end_closes_sequence(self):
        """Test that iteration stops at end of data and stays stopped."""
        stream = PushStream()
        stream.feed_eof()

        assert await collect(stream) == []
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_producer_error_is_surfaced(self):
        """Test that a producer error ends the sequence with that error."""
        stream = PushStream()
        stream.feed_data(b"partial")
        stream.set_exception(OSError("disk gone"))

        assert await stream.__anext__() == b"partial"
        with pytest.raises(OSError, match="disk gone"):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_cancel_calls_producer_once(self):
        """Test that closing early cancels the producer exactly once."""
        cancelled = []
        stream = PushStream(on_cancel=lambda: cancelled.append(True))
        stream.feed_data(b"chunk")

        assert await stream.__anext__() == b"chunk"
        await stream.aclose()
        await stream.aclose()

        assert cancelled == [True]
        assert stream.closed

    @pytest.mark.asyncio
    async def test_cancel_after_end_does_not_call_producer(self):
        """Test that a finished producer is not cancelled."""
        cancelled = []
        stream = PushStream(on_cancel=lambda: cancelled.append(True))
        stream.feed_data(b"chunk")
        stream.feed_eof()

        await stream.aclose()

        assert cancelled == []

    @pytest.mark.asyncio
    async def test_notifications_after_close_are_ignored(self):
        """Test that a producer emitting after cancellation has no effect."""
        stream = PushStream()
        await stream.aclose()

        stream.feed_data(b"late")
        stream.feed_eof()
        stream.set_exception(RuntimeError("late"))

        assert await collect(stream) == []

    def test_rejects_non_bytes_chunks(self):
        """Test that str chunks are refused."""
        stream = PushStream()
        with pytest.raises(TypeError, match="chunks must be bytes"):
            stream.feed_data("text")


class TestIterSource:
    """Test normalisation of byte sources."""

    @pytest.mark.asyncio
    async def test_bytes_source(self):
        """Test that a bytes object is one chunk."""
        assert await collect(iter_source(b"payload")) == [b"payload"]

    @pytest.mark.asyncio
    async def test_empty_bytes_source(self):
        """Test that empty bytes yield nothing."""
        assert await collect(iter_source(b"")) == []

    @pytest.mark.asyncio
    async def test_file_source_is_chunked_and_closed(self):
        """Test that a file object is read in chunks and closed at the end."""
        fileobj = io.BytesIO(b"abcdefghij")

        chunks = await collect(iter_source(fileobj, chunk_size=4))

        assert chunks == [b"abcd", b"efgh", b"ij"]
        assert fileobj.closed

    @pytest.mark.asyncio
    async def test_file_source_closed_when_cancelled_before_reading(self):
        """Test that cancelling an unread stream still closes the file."""
        fileobj = io.BytesIO(b"abc")

        stream = iter_source(fileobj)
        await stream.aclose()

        assert fileobj.closed
        assert await collect(stream) == []

    @pytest.mark.asyncio
    async def test_real_file_source(self, tmp_path):
        """Test reading from a file on disk."""
        path = tmp_path / "data.bin"
        path.write_bytes(b"x" * 10000)

        chunks = await collect(iter_source(path.open("rb"), chunk_size=4096))

        assert [len(c) for c in chunks] == [4096, 4096, 1808]

    @pytest.mark.asyncio
    async def test_sync_iterable_source(self):
        """Test that a list of chunks is forwarded."""
        assert await collect(iter_source([b"a", b"b"])) == [b"a", b"b"]

    @pytest.mark.asyncio
    async def test_sync_generator_closed_on_cancel(self):
        """Test that cancelling closes the generator."""
        closed = []

        def produce():
            try:
                yield b"a"
                yield b"b"
            finally:
                closed.append(True)

        stream = iter_source(produce())
        assert await stream.__anext__() == b"a"
        await stream.aclose()

        assert closed == [True]

    @pytest.mark.asyncio
    async def test_async_generator_source(self):
        """Test that an async generator is forwarded and closed on cancel."""
        closed = []

        async def produce():
            try:
                for chunk in (b"1", b"2", b"3"):
                    yield chunk
            finally:
                closed.append(True)

        stream = iter_source(produce())
        assert await stream.__anext__() == b"1"
        await stream.aclose()

        assert closed == [True]

    @pytest.mark.asyncio
    async def test_push_stream_returned_as_is(self):
        """Test that a PushStream is not wrapped."""
        stream = PushStream()
        assert iter_source(stream) is stream

    @pytest.mark.asyncio
    async def test_non_bytes_chunk_fails(self):
        """Test that a text chunk fails the stream."""
        with pytest.raises(TypeError, match="chunks must be bytes"):
            await collect(iter_source(["text"]))

    @pytest.mark.parametrize("source", ["text", 42, None])
    def test_unsupported_source(self, source):
        """Test that unsupported sources are rejected."""
        with pytest.raises(TypeError, match="Unsupported byte source"):
            iter_source(source)

    def test_chunk_size_must_be_positive(self):
        """Test chunk size validation."""
        with pytest.raises(ValueError, match="chunk_size must be positive"):
            iter_source(b"abc", chunk_size=0)
