"""Periodic flush scheduler for batch delivery.

State Machine:
    IDLE -> (start) -> RUNNING
    RUNNING -> (dispose) -> STOPPING
    STOPPING -> (loop finishes its current iteration) -> STOPPED
    IDLE -> (dispose) -> STOPPED

Each iteration waits ``interval_seconds`` and then runs one flush. A flush
that raises is logged and reported, and the next iteration runs on
schedule; only ``dispose()`` stops the loop. Disposal sets a cancellation
event: a wait in progress ends early and the iteration still runs its
flush, while a flush in progress is allowed to finish. Either way the loop
exits after that flush.

Example:
    scheduler = BatchScheduler(flush=sender.flush, interval_seconds=30)
    scheduler.start()
    ...
    await scheduler.dispose()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import ErrorCallback, FlushError

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Batch scheduler states."""

    IDLE = "idle"  # Constructed, loop not started
    RUNNING = "running"  # Periodic loop active
    STOPPING = "stopping"  # Disposal requested, loop finishing its iteration
    STOPPED = "stopped"  # Terminal


class BatchScheduler:
    """Runs ``flush`` every ``interval_seconds`` until disposed."""

    def __init__(
        self,
        flush: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        on_error: Optional[ErrorCallback] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._flush = flush
        self.interval_seconds = interval_seconds
        self._on_error = on_error
        self._state = SchedulerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._cancelled: Optional[asyncio.Event] = None
        self._on_complete: Optional[asyncio.Future] = None
        self._flush_count = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def flush_count(self) -> int:
        """Number of flush attempts made so far."""
        return self._flush_count

    def start(self) -> None:
        """Start the loop on the running event loop (no-op unless IDLE)."""
        if self._state is not SchedulerState.IDLE:
            return
        loop = asyncio.get_running_loop()
        self._cancelled = asyncio.Event()
        self._on_complete = loop.create_future()
        self._state = SchedulerState.RUNNING
        self._task = loop.create_task(self._run())

    def dispose(self) -> "asyncio.Future[None]":
        """Request the loop to stop.

        Returns:
            A future resolved once the loop has exited. Every call returns
            the same future.
        """
        if self._state is SchedulerState.IDLE:
            self._state = SchedulerState.STOPPED
            self._on_complete = asyncio.get_running_loop().create_future()
            self._on_complete.set_result(None)
            return self._on_complete
        if self._state is SchedulerState.RUNNING:
            self._state = SchedulerState.STOPPING
            self._cancelled.set()
        return self._on_complete

    async def _wait_interval(self) -> None:
        """Wait one interval, or less when cancelled."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def _flush_once(self) -> None:
        self._flush_count += 1
        try:
            await self._flush()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Error uploading batch: {e}")
            if self._on_error is not None:
                error = FlushError(f"Error uploading batch: {e}")
                error.__cause__ = e
                try:
                    self._on_error(error)
                except Exception as callback_error:
                    logger.error(f"Error callback raised: {callback_error}")

    async def _run(self) -> None:
        logger.info(f"Starting mixpanel batch processing (interval: {self.interval_seconds}s)")
        try:
            while True:
                await self._wait_interval()
                await self._flush_once()
                if self._cancelled.is_set():
                    break
        finally:
            logger.info("Stopping mixpanel batch processing")
            self._state = SchedulerState.STOPPED
            if not self._on_complete.done():
                self._on_complete.set_result(None)
