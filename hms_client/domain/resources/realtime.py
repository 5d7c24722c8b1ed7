"""
Realtime patch receivers.

Bind a RealtimeReceiver to a screen's store and translate each pushed
message into a snapshot reducer: full replacement or upsert-by-id.
"""

from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio

from loguru import logger
from pydantic import ValidationError

from hms_client.core.exceptions import BaseClientException
from hms_client.domain.resources.service import ResourceScreen
from hms_client.infrastructure.sse import RealtimeReceiver, RetryPolicy


class LiveUpdates:
    def __init__(
        self,
        screen: ResourceScreen,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.screen = screen
        self.receiver = RealtimeReceiver(
            screen.api,
            path,
            on_message=self.handle,
            params=params,
            policy=policy,
            on_error=self._on_error,
            sleep=sleep,
        )

    @property
    def store(self):
        return self.screen.store

    def _parse(self, data: Any):
        try:
            return self.screen.endpoint.model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Discarding malformed {self.screen.label.lower()} update: {e.error_count()} errors")
            return None

    def _on_error(self, error: BaseClientException) -> None:
        self.store.failed("Live updates disconnected")
        self.screen.notices.error("Live updates disconnected")

    def handle(self, message: Any) -> None:
        raise NotImplementedError

    def start(self) -> asyncio.Task:
        return self.receiver.start()

    async def stop(self) -> None:
        await self.receiver.stop()

    async def rescope(self, **params: Any) -> asyncio.Task:
        """Reconnect with a different filter, e.g. a single test id."""
        return await self.receiver.restart(params)

    async def run(self) -> None:
        await self.receiver.run()


class EnvelopeUpdates(LiveUpdates):
    """Typed envelopes: ``initial`` replaces, ``new_*`` upserts, ``updated_*`` replaces by id.

    ``{"type": "initial", "results": [...]}``
    ``{"type": "new_result", "result": {...}}``
    ``{"type": "updated_result", "result": {...}}``
    """

    def __init__(self, screen: ResourceScreen, path: str, list_key: str, item_key: str, **kwargs: Any):
        super().__init__(screen, path, **kwargs)
        self.list_key = list_key
        self.item_key = item_key

    def handle(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.warning(f"Ignoring untyped message on {self.receiver.path}")
            return
        kind = message.get("type")

        if kind == "initial":
            rows = message.get(self.list_key) or []
            if not isinstance(rows, list):
                logger.error(f"Discarding initial message on {self.receiver.path}: {self.list_key!r} is not a list")
                return
            parsed = [item for item in (self._parse(row) for row in rows) if item is not None]
            self.store.loaded(parsed)
        elif kind == f"new_{self.item_key}":
            item = self._parse(message.get(self.item_key))
            if item is not None:
                self.store.upsert(item, prepend=True)
                self.screen.notices.success(f"New {self.screen.label.lower()} received")
        elif kind == f"updated_{self.item_key}":
            item = self._parse(message.get(self.item_key))
            if item is not None:
                # an update for a record outside the current scope is dropped
                self.store.replace(item)
                self.screen.notices.success(f"{self.screen.label} updated")
        elif kind == "error":
            logger.error(f"Stream error on {self.receiver.path}: {message.get('message')}")
            self.screen.notices.error(message.get("message") or "Live update error")
        else:
            logger.debug(f"Ignoring {kind!r} message on {self.receiver.path}")


class SnapshotUpdates(LiveUpdates):
    """Bare payloads: a list replaces the collection, a record upserts by id.

    ``{"type": ...}`` control frames (connection acknowledgements, server
    errors) are logged and otherwise ignored.
    """

    def handle(self, message: Any) -> None:
        if isinstance(message, list):
            parsed = [item for item in (self._parse(row) for row in message) if item is not None]
            self.store.loaded(parsed)
        elif isinstance(message, dict) and "id" in message:
            item = self._parse(message)
            if item is not None:
                self.store.upsert(item)
        elif isinstance(message, dict) and message.get("type") == "error":
            logger.error(f"Stream error on {self.receiver.path}: {message.get('message')}")
        else:
            logger.debug(f"Control message on {self.receiver.path}: {message}")
