"""
Server-sent event client.

Parses a ``text/event-stream`` body and keeps a subscription alive across
transport failures according to an explicit RetryPolicy.
"""

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union
import asyncio
import enum
import inspect
import json
import logging

from hms_client.core.config import settings
from hms_client.core.exceptions import BaseClientException
from hms_client.infrastructure.http import ApiClient

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[BaseClientException], Union[None, Awaitable[None]]]


class SSEEvent:
    __slots__ = ("event", "data", "id", "retry")

    def __init__(self, data: str, event: str = "message", id: Optional[str] = None, retry: Optional[int] = None):
        self.data = data
        self.event = event
        self.id = id
        self.retry = retry

    def json(self) -> Any:
        return json.loads(self.data)

    def __repr__(self) -> str:
        return f"SSEEvent(event={self.event!r}, data={self.data!r})"


async def iter_events(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Group raw lines into events.

    ``data:`` lines are joined with newlines, a blank line dispatches, lines
    starting with ``:`` are comments (heartbeats) and are skipped.
    """
    data_lines = []
    event_type = "message"
    event_id: Optional[str] = None
    retry: Optional[int] = None

    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data_lines:
                yield SSEEvent("\n".join(data_lines), event_type, event_id, retry)
            data_lines = []
            event_type = "message"
            retry = None
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event_type = value or "message"
        elif field == "id":
            event_id = value
        elif field == "retry" and value.isdigit():
            retry = int(value)

    if data_lines:
        yield SSEEvent("\n".join(data_lines), event_type, event_id, retry)


class RetryPolicy:
    """Reconnect schedule: ``initial_delay * backoff_factor ** (attempt - 1)``, capped."""

    def __init__(
        self,
        initial_delay: float = 5.0,
        backoff_factor: float = 1.0,
        max_delay: float = 60.0,
        max_attempts: Optional[int] = None,
    ):
        if initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max(max_delay, initial_delay)
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            initial_delay=settings.SSE_RECONNECT_DELAY,
            backoff_factor=settings.SSE_BACKOFF_FACTOR,
            max_delay=settings.SSE_MAX_RECONNECT_DELAY,
            max_attempts=settings.SSE_MAX_RECONNECT_ATTEMPTS,
        )

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts

    def delay(self, attempt: int) -> float:
        if attempt < 1:
            return 0.0
        return min(self.initial_delay * self.backoff_factor ** (attempt - 1), self.max_delay)


class ReceiverState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"
    FAILED = "failed"


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class RealtimeReceiver:
    """Long-lived subscription to one SSE endpoint.

    Each decoded JSON payload is handed to ``on_message``. Malformed frames
    are logged and skipped. When the connection drops, the receiver closes it
    and reconnects after the policy's delay; once the policy gives up,
    ``on_error`` receives the last failure and the receiver stays FAILED.
    """

    def __init__(
        self,
        api: ApiClient,
        path: str,
        on_message: MessageHandler,
        params: Optional[Dict[str, Any]] = None,
        policy: Optional[RetryPolicy] = None,
        on_error: Optional[ErrorHandler] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.path = path
        self.params = dict(params or {})
        self.policy = policy or RetryPolicy.from_settings()
        self._on_message = on_message
        self._on_error = on_error
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self.state = ReceiverState.IDLE
        self.attempts = 0
        self.last_event_id: Optional[str] = None

    def start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        self._closing = False
        self._task = asyncio.create_task(self.run(), name=f"sse:{self.path}")
        return self._task

    async def stop(self) -> None:
        self._closing = True
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            self.state = ReceiverState.CLOSED
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.state = ReceiverState.CLOSED

    async def restart(self, params: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        """Tear down the current connection and reopen with a new scope."""
        await self.stop()
        if params is not None:
            self.params = dict(params)
        self.attempts = 0
        return self.start()

    async def run(self) -> None:
        while not self._closing:
            self.state = ReceiverState.CONNECTING if self.attempts == 0 else ReceiverState.RECONNECTING
            failure: Optional[BaseClientException] = None
            try:
                await self._consume()
            except BaseClientException as e:
                failure = e
                logger.error(f"SSE connection error on {self.path}: {e.message}")

            if self._closing:
                break

            self.attempts += 1
            if not self.policy.allows(self.attempts):
                self.state = ReceiverState.FAILED if failure is not None else ReceiverState.CLOSED
                logger.error(f"Giving up on {self.path} after {self.attempts - 1} reconnect attempts")
                if self._on_error is not None and failure is not None:
                    await _maybe_await(self._on_error(failure))
                return

            delay = self.policy.delay(self.attempts)
            logger.info(f"Reconnecting to {self.path} in {delay:.1f}s (attempt {self.attempts})")
            await self._sleep(delay)

        self.state = ReceiverState.CLOSED

    async def _consume(self) -> None:
        async with self.api.stream(self.path, params=self.params) as response:
            self.state = ReceiverState.OPEN
            self.attempts = 0
            logger.info(f"SSE connection open on {self.path}")
            async for event in iter_events(response.aiter_lines()):
                if event.id is not None:
                    self.last_event_id = event.id
                try:
                    payload = event.json()
                except ValueError as e:
                    logger.error(f"Error parsing SSE data from {self.path}: {e}")
                    continue
                try:
                    await _maybe_await(self._on_message(payload))
                except Exception as e:
                    logger.exception(f"Error handling SSE message from {self.path}: {e}")
                    continue
                if self._closing:
                    return
