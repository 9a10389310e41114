"""
Progress channel.

One-way, push-based notification sink between a backup execution and the
requester's event stream. Publishing never blocks and never fails, so a slow
or vanished observer cannot stall the execution.

Dependencies: asyncio, backup_pipeline.models.streaming
System role: Live progress delivery for backup executions
"""

import asyncio
import logging
from typing import AsyncIterator
from uuid import UUID

from backup_pipeline.models.streaming import ProgressEvent, ProgressStatus

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class ProgressChannel:
    """Ordered event queue with an end-of-stream sentinel."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: ProgressEvent) -> None:
        """Enqueue an event; dropped if the channel is already closed."""
        if self._closed:
            logger.debug("Progress event dropped after close", extra={"event": event.to_dict()})
            return
        self._queue.put_nowait(event)

    def emit(
        self,
        job_id: UUID | None,
        message: str | None = None,
        status: ProgressStatus | None = None,
    ) -> None:
        self.publish(ProgressEvent(job_id=job_id, message=message, status=status))

    def close(self) -> None:
        """Signal end of stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _END_OF_STREAM:
                return
            yield item


class NullProgressChannel(ProgressChannel):
    """Discards every event. Used for scheduled runs nobody is watching."""

    def publish(self, event: ProgressEvent) -> None:
        logger.debug("Progress event", extra={"event": event.to_dict()})
