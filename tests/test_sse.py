import json

import httpx
import pytest

from hms_client.infrastructure.sse import (
    ReceiverState,
    RealtimeReceiver,
    RetryPolicy,
    iter_events,
)


async def _lines(*lines):
    for line in lines:
        yield line


async def _collect(*lines):
    return [event async for event in iter_events(_lines(*lines))]


def _sse(*payloads) -> bytes:
    return "".join(f"data: {json.dumps(p)}\n\n" for p in payloads).encode()


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.unit
@pytest.mark.realtime
class TestEventParsing:
    """text/event-stream framing."""

    async def test_blank_line_dispatches(self) -> None:
        """Test each blank line ends one event."""
        events = await _collect('data: {"a": 1}', "", 'data: {"a": 2}', "")

        assert [e.json() for e in events] == [{"a": 1}, {"a": 2}]

    async def test_multiline_data_joined(self) -> None:
        """Test consecutive data lines are joined with newlines."""
        events = await _collect("data: first", "data: second", "")

        assert events[0].data == "first\nsecond"

    async def test_comments_ignored(self) -> None:
        """Test heartbeat comment lines never produce events."""
        events = await _collect(": heartbeat", "", "data: x", "")

        assert len(events) == 1
        assert events[0].data == "x"

    async def test_event_id_and_retry_fields(self) -> None:
        """Test named events carry their id and retry hint."""
        events = await _collect("event: update", "id: 42", "retry: 3000", "data: y", "")

        assert events[0].event == "update"
        assert events[0].id == "42"
        assert events[0].retry == 3000

    async def test_trailing_event_without_blank_line(self) -> None:
        """Test a final event is flushed at end of stream."""
        events = await _collect("data: tail")

        assert events[0].data == "tail"


@pytest.mark.unit
@pytest.mark.realtime
class TestRetryPolicy:
    """Reconnect scheduling."""

    def test_fixed_delay_by_default(self) -> None:
        """Test the default schedule waits five seconds every time."""
        policy = RetryPolicy()

        assert [policy.delay(n) for n in (1, 2, 3)] == [5.0, 5.0, 5.0]
        assert policy.allows(1000)

    def test_exponential_backoff_capped(self) -> None:
        """Test backoff grows geometrically up to the cap."""
        policy = RetryPolicy(initial_delay=1, backoff_factor=2, max_delay=5)

        assert [policy.delay(n) for n in (1, 2, 3, 4)] == [1, 2, 4, 5]

    def test_attempt_cap(self) -> None:
        """Test attempts beyond the cap are refused."""
        policy = RetryPolicy(max_attempts=2)

        assert policy.allows(2)
        assert not policy.allows(3)

    def test_invalid_factor(self) -> None:
        """Test a shrinking backoff is rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(backoff_factor=0.5)


@pytest.mark.integration
@pytest.mark.realtime
class TestRealtimeReceiver:
    """Subscription lifecycle."""

    async def test_messages_delivered_in_order(self, mock_api, no_retry) -> None:
        """Test each decoded payload reaches the handler."""
        received = []
        handler = lambda request: httpx.Response(
            200, content=_sse({"n": 1}, {"n": 2}), headers={"content-type": "text/event-stream"}
        )

        async with mock_api(handler) as api:
            receiver = RealtimeReceiver(api, "/api/beds/status-sse", received.append, policy=no_retry)
            await receiver.run()

        assert received == [{"n": 1}, {"n": 2}]
        assert receiver.state == ReceiverState.CLOSED

    async def test_malformed_frame_skipped(self, mock_api, no_retry) -> None:
        """Test bad JSON is logged and the stream continues."""
        received = []
        body = b"data: {not json\n\n" + _sse({"ok": True})

        async with mock_api(lambda request: httpx.Response(200, content=body)) as api:
            await RealtimeReceiver(api, "/sse", received.append, policy=no_retry).run()

        assert received == [{"ok": True}]

    async def test_handler_error_keeps_stream_open(self, mock_api, no_retry) -> None:
        """Test an exception from the handler skips that message only."""
        received = []

        def on_message(message):
            if message.get("results") == 5:
                raise TypeError("'int' object is not iterable")
            received.append(message)

        body = _sse({"type": "initial", "results": 5}, {"type": "new_result", "n": 2})
        async with mock_api(lambda request: httpx.Response(200, content=body)) as api:
            receiver = RealtimeReceiver(api, "/sse", on_message, policy=no_retry)
            await receiver.run()

        assert received == [{"type": "new_result", "n": 2}]
        assert receiver.state == ReceiverState.CLOSED

    async def test_reconnects_after_failure(self, mock_api) -> None:
        """Test a dropped stream is reopened after the policy's delay."""
        attempts = []
        received = []

        def handler(request):
            attempts.append(request.url.path)
            if len(attempts) == 2:
                return httpx.Response(200, content=_sse({"n": len(attempts)}))
            return httpx.Response(503)

        sleep = FakeSleep()
        policy = RetryPolicy(initial_delay=5, max_attempts=1)

        async with mock_api(handler) as api:
            receiver = RealtimeReceiver(api, "/sse", received.append, policy=policy, sleep=sleep)
            await receiver.run()

        # the successful open resets the attempt counter
        assert received == [{"n": 2}]
        assert sleep.delays == [5, 5]
        assert len(attempts) == 3
        assert receiver.state == ReceiverState.FAILED

    async def test_gives_up_and_reports(self, mock_api) -> None:
        """Test exhausted retries end in FAILED with the error callback."""
        errors = []
        sleep = FakeSleep()
        policy = RetryPolicy(initial_delay=1, backoff_factor=2, max_attempts=3)

        async with mock_api(lambda request: httpx.Response(500, json={"error": "down"})) as api:
            receiver = RealtimeReceiver(
                api, "/sse", lambda message: None, policy=policy, on_error=errors.append, sleep=sleep
            )
            await receiver.run()

        assert receiver.state == ReceiverState.FAILED
        assert sleep.delays == [1, 2, 4]
        assert errors[0].message == "down"

    async def test_scope_passed_as_query(self, mock_api, no_retry) -> None:
        """Test the receiver's params reach the stream URL."""
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            return httpx.Response(200, content=b"")

        async with mock_api(handler) as api:
            await RealtimeReceiver(api, "/sse", lambda m: None, params={"testId": "t1"}, policy=no_retry).run()

        assert seen == [{"testId": "t1"}]

    async def test_stop_from_handler(self, mock_api, no_retry) -> None:
        """Test stopping inside the handler ends the loop without reconnecting."""
        received = []

        async with mock_api(lambda request: httpx.Response(200, content=_sse({"n": 1}, {"n": 2}))) as api:
            holder = {}

            async def on_message(message):
                received.append(message)
                await holder["receiver"].stop()

            receiver = RealtimeReceiver(api, "/sse", on_message, policy=RetryPolicy(max_attempts=None))
            holder["receiver"] = receiver
            await receiver.run()

        assert received == [{"n": 1}]
        assert receiver.state == ReceiverState.CLOSED
