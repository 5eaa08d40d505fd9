"""Persistent queue of pending track and engage events.

The queue holds two ordered sequences, "track" and "engage", and mirrors
them to key-value storage after every mutation (write-through). Both
sequences are serialized together under one key as
``{"track": [...], "engage": [...]}`` using the events' wire dicts.

Previously persisted events are restored lazily, not at construction, and
at most once per queue instance: on the first flush cycle, or on the first
enqueue if that comes earlier, since its write would otherwise replace the
stored blob. Restored events are appended to the in-memory sequences.

During a flush the uploader removes chunks from the front of a sequence.
Items of failed chunks are held in a side list and appended to the back of
the sequence once the drain is over, so they are retried on the next
flush, after anything enqueued in the meantime. Held items are part of
every persisted snapshot.
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from .api import ErrorReporter
from .errors import ErrorCallback, StorageError
from .storage import KeyValueStorage, open_default_storage
from .types import EngageEvent, Event, FlushReport, TrackEvent

if TYPE_CHECKING:
    from .uploader import ChunkedUploader

logger = logging.getLogger(__name__)

STORAGE_KEY = "mixpanel.analytics"

KINDS = ("track", "engage")

_EVENT_TYPES = {"track": TrackEvent, "engage": EngageEvent}

SendFn = Callable[[List[Event]], Awaitable[bool]]


class PersistentEventQueue:
    """Lock-guarded, write-through event queue owned by one batch sender.

    Attributes:
        storage_key: Key the combined queue state is stored under
        _events: Pending events per kind, in submission order
        _held: Items of failed chunks waiting to be requeued, per kind
        _lock: asyncio.Lock serializing every mutation with its persist
        _restored: Latch set once storage has been read
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        storage_factory: Optional[Callable[[], Awaitable[KeyValueStorage]]] = None,
        storage_key: str = STORAGE_KEY,
        on_error: Optional[ErrorCallback] = None,
        reporter: Optional[ErrorReporter] = None,
    ):
        self.storage_key = storage_key
        self._storage = storage
        self._storage_factory = storage_factory or open_default_storage
        self.reporter = reporter or ErrorReporter(on_error)
        self._events: Dict[str, List[Event]] = {kind: [] for kind in KINDS}
        self._held: Dict[str, List[Event]] = {kind: [] for kind in KINDS}
        self._lock = asyncio.Lock()
        self._restored = False

    @property
    def track_events(self) -> List[TrackEvent]:
        return list(self._events["track"])

    @property
    def engage_events(self) -> List[EngageEvent]:
        return list(self._events["engage"])

    @property
    def is_restored(self) -> bool:
        return self._restored

    def __len__(self) -> int:
        return sum(len(self._events[kind]) + len(self._held[kind]) for kind in KINDS)

    async def _get_storage(self) -> KeyValueStorage:
        if self._storage is None:
            self._storage = await self._storage_factory()
        return self._storage

    # =========================================================================
    # Serialization
    # =========================================================================

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Queue state as it will be once held items are requeued."""
        return {
            kind: [event.to_dict() for event in self._events[kind] + self._held[kind]]
            for kind in KINDS
        }

    def restore_from_blob(self, blob: str) -> int:
        """Append the events stored in ``blob`` to the in-memory sequences.

        Returns:
            Number of events restored
        """
        data = json.loads(blob)
        restored = 0
        for kind in KINDS:
            for record in data.get(kind) or []:
                self._events[kind].append(_EVENT_TYPES[kind].from_dict(record))
                restored += 1
        return restored

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _persist_unsafe(self) -> bool:
        """Write the current state to storage (caller must hold lock)."""
        encoded = json.dumps(self.snapshot())
        try:
            storage = await self._get_storage()
            result = await storage.set_string(self.storage_key, encoded)
        except Exception as e:
            error = StorageError(f"Error saving events in storage: {e}")
            error.__cause__ = e
            self.reporter.report(error)
            return False
        return bool(result)

    async def persist(self) -> bool:
        async with self._lock:
            return await self._persist_unsafe()

    async def _restore_unsafe(self) -> None:
        """Read previously persisted events (caller must hold lock).

        The latch is set even when reading fails: the next persist replaces
        the unreadable blob, and reading it back would duplicate events.
        """
        if self._restored:
            return
        try:
            storage = await self._get_storage()
            encoded = await storage.get_string(self.storage_key)
            if encoded is not None:
                restored = self.restore_from_blob(encoded)
                logger.info(f"Restored {restored} queued events from storage")
        finally:
            self._restored = True

    async def restore(self) -> None:
        """Read previously persisted events, once per queue instance."""
        async with self._lock:
            await self._restore_unsafe()

    def _report_read_error(self, cause: Exception) -> None:
        error = StorageError(f"Error reading events from storage: {cause}")
        error.__cause__ = cause
        self.reporter.report(error)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def _enqueue(self, kind: str, event: Event) -> bool:
        async with self._lock:
            try:
                await self._restore_unsafe()
            except Exception as e:
                self._report_read_error(e)
            self._events[kind].append(event)
            return await self._persist_unsafe()

    async def enqueue_track(self, event: TrackEvent) -> bool:
        return await self._enqueue("track", event)

    async def enqueue_engage(self, event: EngageEvent) -> bool:
        return await self._enqueue("engage", event)

    def pending_count(self, kind: str) -> int:
        return len(self._events[kind])

    def peek(self, kind: str, size: int) -> List[Event]:
        """Leading run of up to ``size`` events, left in place."""
        return list(self._events[kind][:size])

    async def release(self, kind: str, size: int, failed: bool = False) -> None:
        """Drop the leading ``size`` events, holding them if their upload failed."""
        async with self._lock:
            chunk = self._events[kind][:size]
            del self._events[kind][:size]
            if failed:
                self._held[kind].extend(chunk)

    async def requeue_failed(self, kind: str) -> int:
        """Append held items to the back of the sequence."""
        async with self._lock:
            held = self._held[kind]
            self._events[kind].extend(held)
            self._held[kind] = []
            return len(held)

    # =========================================================================
    # Flush cycle
    # =========================================================================

    async def flush(
        self,
        uploader: "ChunkedUploader",
        send_track: SendFn,
        send_engage: SendFn,
    ) -> FlushReport:
        """Run one flush cycle: restore if needed, drain both sequences, persist."""
        try:
            await self.restore()
        except Exception as e:
            self._report_read_error(e)

        track_count = self.pending_count("track")
        engage_count = self.pending_count("engage")
        if track_count or engage_count:
            logger.info(f"Sending {track_count} track; {engage_count} engage")
        else:
            logger.debug("No mixpanel events to send")

        report = FlushReport()
        report.track = await uploader.upload(self, "track", send_track)
        report.engage = await uploader.upload(self, "engage", send_engage)
        report.persisted = await self.persist()
        return report
