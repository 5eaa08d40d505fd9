"""Delivery strategies for built events.

Two strategies share one interface, selected when the client is built:

- SyncSender: one request per event, the return value is the request's
  success. Nothing is queued or retried.
- BatchSender: events are appended to a persistent queue and uploaded by a
  periodic flush. The return value only reports that the event was durably
  queued; delivery outcome is reported through the error channel.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, runtime_checkable

from .api import ENGAGE, TRACK, MixpanelApi
from .errors import ErrorCallback
from .queue import STORAGE_KEY, PersistentEventQueue
from .scheduler import BatchScheduler
from .storage import KeyValueStorage
from .types import EngageEvent, Event, FlushReport, TrackEvent
from .uploader import MAX_BATCH_SIZE, ChunkedUploader

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSender(Protocol):
    """Strategy for processing new events."""

    async def process_track(self, event: TrackEvent) -> bool:
        ...

    async def process_engage(self, event: EngageEvent) -> bool:
        ...

    async def dispose(self) -> None:
        ...


class SyncSender:
    """Sends every event immediately."""

    def __init__(self, api: MixpanelApi):
        self.api = api

    async def process_track(self, event: TrackEvent) -> bool:
        return await self.api.send_event(TRACK, event.to_dict())

    async def process_engage(self, event: EngageEvent) -> bool:
        return await self.api.send_event(ENGAGE, event.to_dict())

    async def dispose(self) -> None:
        pass


class BatchSender:
    """Queues events and uploads them in batches every ``upload_interval``.

    The flush loop starts on construction when an event loop is running,
    otherwise on the first submitted event.
    """

    def __init__(
        self,
        api: MixpanelApi,
        upload_interval: float,
        storage: Optional[KeyValueStorage] = None,
        storage_factory: Optional[Callable[[], Awaitable[KeyValueStorage]]] = None,
        storage_key: str = STORAGE_KEY,
        max_batch_size: int = MAX_BATCH_SIZE,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.api = api
        self.upload_interval = upload_interval
        self.queue = PersistentEventQueue(
            storage=storage,
            storage_factory=storage_factory,
            storage_key=storage_key,
            reporter=api.reporter,
        )
        self.uploader = ChunkedUploader(max_batch_size)
        self.scheduler = BatchScheduler(self.flush, upload_interval, on_error=on_error)
        # Manual and scheduled flushes never overlap
        self._flush_lock = asyncio.Lock()
        self._ensure_started()

    def _ensure_started(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.scheduler.start()

    async def _send_track_batch(self, events: List[Event]) -> bool:
        return await self.api.send_batch(TRACK, [event.to_dict() for event in events])

    async def _send_engage_batch(self, events: List[Event]) -> bool:
        return await self.api.send_batch(ENGAGE, [event.to_dict() for event in events])

    async def process_track(self, event: TrackEvent) -> bool:
        self._ensure_started()
        return await self.queue.enqueue_track(event)

    async def process_engage(self, event: EngageEvent) -> bool:
        self._ensure_started()
        return await self.queue.enqueue_engage(event)

    async def flush(self) -> FlushReport:
        """Run one flush cycle now."""
        async with self._flush_lock:
            return await self.queue.flush(self.uploader, self._send_track_batch, self._send_engage_batch)

    async def dispose(self) -> None:
        await self.scheduler.dispose()
