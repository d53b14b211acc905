"""Total and idle deadlines for a single exchange with the store.

A ``TimeoutGovernor`` tracks two deadlines:

- the total deadline, fixed when the request is issued
  (``request_timeout`` milliseconds later);
- the idle deadline, pushed forward every time a chunk passes through a
  governed stream (``idle_timeout`` milliseconds after the last chunk).

Work that must respect the deadlines runs inside ``async with
governor.guard():``, an ``asyncio.timeout_at`` scope on the earlier of the two
deadlines. Every ``touch()`` reschedules the active scope. When the scope
expires the governor moves to ``EXPIRED`` and ``RequestTimeoutError`` is
raised. Deadlines only exist inside guard scopes, so nothing can fire after
the governor completes.
"""
import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from .errors import RequestTimeoutError
from .validation import validate_timeout

logger = logging.getLogger(__name__)

# Stand-in for "no limit"; the longest delay most timers accept (~24.8 days)
UNBOUNDED_TIMEOUT_MS = 2**31 - 1


class GovernorState(str, enum.Enum):
    """Lifecycle of a TimeoutGovernor."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    EXPIRED = "expired"


class TimeoutGovernor:
    """Enforce a total and an idle timeout on one exchange."""

    def __init__(self, request_timeout: Optional[int] = None, idle_timeout: Optional[int] = None):
        """Initialize the governor.

        Args:
            request_timeout: Total time allowed in milliseconds; 0 or None for no bound
            idle_timeout: Maximum silence between chunks in milliseconds; 0 or None to disable

        Raises:
            InvalidTimeoutError: If either value is not a non-negative safe integer
        """
        self.request_timeout = validate_timeout(request_timeout, "request_timeout")
        self.idle_timeout = validate_timeout(idle_timeout, "idle_timeout")
        self.state = GovernorState.PENDING

        self._total_deadline: Optional[float] = None
        self._idle_deadline: Optional[float] = None
        self._scope: Optional[asyncio.Timeout] = None

    @property
    def expired(self) -> bool:
        return self.state is GovernorState.EXPIRED

    @property
    def finished(self) -> bool:
        return self.state in (GovernorState.COMPLETED, GovernorState.EXPIRED)

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    def deadline(self) -> Optional[float]:
        """Earliest active deadline in event loop time, or None."""
        deadlines = [d for d in (self._total_deadline, self._idle_deadline) if d is not None]
        return min(deadlines) if deadlines else None

    def start(self) -> None:
        """Arm the total deadline. Called when the request is issued."""
        if self.state is not GovernorState.PENDING:
            return

        self.state = GovernorState.RUNNING
        timeout = self.request_timeout or UNBOUNDED_TIMEOUT_MS
        self._total_deadline = self._now() + timeout / 1000
        self._reschedule()

    def touch(self) -> None:
        """Record activity and push the idle deadline forward."""
        if self.finished or not self.idle_timeout:
            return

        self._idle_deadline = self._now() + self.idle_timeout / 1000
        self._reschedule()

    def disarm_idle(self) -> None:
        """Stop enforcing the idle deadline until the next ``touch()``."""
        self._idle_deadline = None
        self._reschedule()

    def complete(self) -> None:
        """Mark the exchange as finished normally and clear both deadlines."""
        if self.finished:
            return

        self.state = GovernorState.COMPLETED
        self._total_deadline = None
        self._idle_deadline = None
        self._reschedule()

    def govern(self, source: AsyncIterator[bytes], *, start_immediately: bool) -> "GovernedStream":
        """Wrap a stream so every chunk resets the idle deadline."""
        return GovernedStream(source, self, start_immediately=start_immediately)

    def _reschedule(self) -> None:
        # an expiring scope has already cancelled the task and cannot move
        if self._scope is not None and not self._scope.expired():
            self._scope.reschedule(self.deadline())

    def _expire(self) -> None:
        now = self._now()
        if self._idle_deadline is not None and self._idle_deadline <= now:
            logger.warning(f"Idle timeout of {self.idle_timeout}ms expired")
        else:
            logger.warning(f"Request timeout of {self.request_timeout}ms expired")

        self.state = GovernorState.EXPIRED
        self._total_deadline = None
        self._idle_deadline = None

    @asynccontextmanager
    async def guard(self):
        """Run the enclosed block under the governor's deadlines.

        Re-entrant within the task that holds the scope.

        Raises:
            RequestTimeoutError: If either deadline expires inside the block,
                or already expired before it
        """
        if self._scope is not None:
            yield
            return

        if self.expired:
            raise RequestTimeoutError()

        self.start()
        deadline = self.deadline()
        if deadline is not None and deadline <= self._now():
            self._expire()
            raise RequestTimeoutError()

        scope = asyncio.timeout_at(deadline)
        try:
            async with scope:
                self._scope = scope
                try:
                    yield
                finally:
                    self._scope = None
        except TimeoutError as exc:
            if not scope.expired():
                raise
            self._expire()
            raise RequestTimeoutError() from exc


class GovernedStream:
    """Byte stream whose reads are bounded by a TimeoutGovernor.

    Every chunk resets the idle deadline. With ``start_immediately`` the idle
    deadline is armed at construction, so a producer that never emits its
    first chunk still times out. When the source ends the idle deadline is
    disarmed. Closing the stream closes the source.
    """

    def __init__(self, source: AsyncIterator[bytes], governor: TimeoutGovernor, *, start_immediately: bool):
        self._source = source
        self._governor = governor
        self._done = False

        if start_immediately:
            governor.touch()

    def __aiter__(self) -> "GovernedStream":
        return self

    async def __anext__(self) -> bytes:
        if self._done:
            raise StopAsyncIteration

        try:
            async with self._governor.guard():
                try:
                    chunk = await self._source.__anext__()
                except StopAsyncIteration:
                    chunk = None
        except BaseException:
            await self.aclose()
            raise

        if chunk is None:
            self._done = True
            self._governor.disarm_idle()
            raise StopAsyncIteration

        self._governor.touch()
        return chunk

    async def aclose(self) -> None:
        if self._done:
            return
        self._done = True

        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
