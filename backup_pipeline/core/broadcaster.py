"""
Byte stream broadcaster.

Fans one producer stream out to independent consumers. Each subscriber owns
a bounded queue, so the slowest consumer applies backpressure to the
producer and no buffer is shared between consumers.

Dependencies: asyncio, backup_pipeline.core.exceptions
System role: Dump output fan-out to the local sink and the uploader
"""

import asyncio
import logging
from typing import AsyncIterator

from backup_pipeline.core.exceptions import StreamAbortedError

logger = logging.getLogger(__name__)

_EOF = object()


class _Aborted:
    def __init__(self, reason: str) -> None:
        self.reason = reason


class ByteStreamBroadcaster:
    """
    One producer, many consumers.

    The producer's end of stream is not forwarded automatically: the owner
    decides with finish() or abort() once it knows whether the data is good
    (for a dump, once the process exit code is known).

    Usage:
        broadcaster = ByteStreamBroadcaster(process.stdout)
        sink = broadcaster.subscribe()
        upload = broadcaster.subscribe()
        await broadcaster.pump()
        broadcaster.finish()
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        chunk_size: int = 64 * 1024,
        queue_depth: int = 16,
    ) -> None:
        """
        Initialize broadcaster.

        Args:
            reader: Producer stream
            chunk_size: Maximum bytes per read
            queue_depth: Chunks buffered per subscriber
        """
        self._reader = reader
        self._chunk_size = chunk_size
        self._queue_depth = queue_depth
        self._queues: list[asyncio.Queue] = []
        self._started = False
        self._ended = False
        self._pending_markers: set[asyncio.Task] = set()
        self.bytes_read = 0

    def subscribe(self) -> AsyncIterator[bytes]:
        """
        Register a consumer. Must be called before pump().

        Returns:
            AsyncIterator[bytes]: Chunks in production order; raises
            StreamAbortedError if the stream is aborted
        """
        if self._started:
            raise RuntimeError("Cannot subscribe after the broadcaster started")
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_depth)
        self._queues.append(queue)
        return self._consume(queue)

    async def pump(self) -> int:
        """
        Read the producer until it is exhausted, publishing every chunk.

        Returns:
            int: Total bytes read
        """
        self._started = True
        while True:
            chunk = await self._reader.read(self._chunk_size)
            if not chunk:
                break
            self.bytes_read += len(chunk)
            for queue in self._queues:
                await queue.put(chunk)
        logger.debug("Producer exhausted", extra={"bytes_read": self.bytes_read})
        return self.bytes_read

    def finish(self) -> None:
        """Deliver end of stream to every consumer."""
        self._end(_EOF)

    def abort(self, reason: str) -> None:
        """Deliver an abort to every consumer."""
        self._end(_Aborted(reason))

    def _end(self, marker: object) -> None:
        if self._ended:
            return
        self._ended = True
        for queue in self._queues:
            # Make room so the marker never blocks; an aborted consumer
            # does not need the data it has not read yet.
            if isinstance(marker, _Aborted):
                while not queue.empty():
                    queue.get_nowait()
            try:
                queue.put_nowait(marker)
            except asyncio.QueueFull:
                task = asyncio.get_running_loop().create_task(queue.put(marker))
                self._pending_markers.add(task)
                task.add_done_callback(self._pending_markers.discard)

    @staticmethod
    async def _consume(queue: asyncio.Queue) -> AsyncIterator[bytes]:
        while True:
            item = await queue.get()
            if item is _EOF:
                return
            if isinstance(item, _Aborted):
                raise StreamAbortedError(item.reason)
            yield item
