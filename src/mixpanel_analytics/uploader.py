"""Chunked upload of queued events.

The Mixpanel API accepts at most 50 events per batch request, so a
sequence is drained in chunks of ``max_batch_size``. A failing chunk does
not stop later chunks from being attempted in the same cycle; its items are
requeued at the back of the sequence for the next cycle.
"""

import logging

from .queue import PersistentEventQueue, SendFn
from .types import UploadReport

logger = logging.getLogger(__name__)

# Documented request limit of the ingestion API
MAX_BATCH_SIZE = 50


class ChunkedUploader:
    """Drains a queue sequence in bounded chunks."""

    def __init__(self, max_batch_size: int = MAX_BATCH_SIZE):
        if not 1 <= max_batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"max_batch_size must be between 1 and {MAX_BATCH_SIZE}, got {max_batch_size}")
        self.max_batch_size = max_batch_size

    async def upload(self, queue: PersistentEventQueue, kind: str, send_fn: SendFn) -> UploadReport:
        """Upload the events pending when called, chunk by chunk.

        Events enqueued while the upload runs are left for the next cycle.
        ``send_fn`` returns False for a failed request; any exception it
        raises propagates after the already-processed chunks are accounted for.
        """
        report = UploadReport(kind)
        remaining = queue.pending_count(kind)
        try:
            while remaining > 0:
                size = min(remaining, self.max_batch_size)
                chunk = queue.peek(kind, size)
                report.attempts += 1
                success = await send_fn(chunk)
                await queue.release(kind, size, failed=not success)
                if success:
                    report.sent += size
                else:
                    report.failed += size
                    logger.debug(f"Requeueing {size} {kind} events after failed upload")
                remaining -= size
        finally:
            await queue.requeue_failed(kind)

        if report.failed:
            logger.warning(f"{report.failed} {kind} events failed to upload and were requeued")
        return report
