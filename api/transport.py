"""Server push channel.

One frame per event on an outbound byte stream:

    event: <name>
    data: <json object>
    <blank line>

The producer is the pipeline run, which lives independently of any HTTP
request, so nothing in here raises on a write to a dead channel. The first
failed write flips `closed` and every later emit is a no-op.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Protocol

from models.events import StreamEvent
from pipeline.errors import TransportWriteError

logger = logging.getLogger(__name__)


def format_frame(event_name: str, payload: dict[str, Any]) -> str:
    return f"event: {event_name}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


class StreamWriter(Protocol):
    async def write(self, data: bytes) -> None: ...

    async def close(self) -> None: ...


class QueueStreamWriter:
    """In-memory pipe from the run to an HTTP response body.

    `iter_bytes()` is handed to the response; when the response stops
    iterating (peer gone, server shutdown) further writes raise
    TransportWriteError.
    """

    def __init__(self):
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._reader_gone = False
        self._closed = False

    @property
    def reader_gone(self) -> bool:
        return self._reader_gone

    async def write(self, data: bytes) -> None:
        if self._reader_gone:
            raise TransportWriteError("stream reader has disconnected")
        if self._closed:
            raise TransportWriteError("stream is closed")
        self._queue.put_nowait(data)
        # let the response task flush before the producer moves on
        await asyncio.sleep(0)

    async def close(self) -> None:
        if self._closed:
            raise TransportWriteError("stream is already closed")
        self._closed = True
        self._queue.put_nowait(None)

    def disconnect(self) -> None:
        self._reader_gone = True

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    return
                yield chunk
        finally:
            self._reader_gone = True


class SseTransport:
    """Frames events onto a StreamWriter and swallows peer-disconnect failures."""

    def __init__(self, writer: StreamWriter):
        self.writer = writer
        self.closed = False
        self.frames_written = 0
        self._close_attempted = False

    async def emit(self, event_name: str, payload: dict[str, Any]) -> bool:
        """Write one frame. Returns False if the frame was not delivered."""
        if self.closed:
            return False
        frame = format_frame(event_name, payload).encode("utf-8")
        try:
            await self.writer.write(frame)
        except Exception as exc:
            self.closed = True
            logger.warning(
                "Push channel lost after %d frames, further events dropped: %s",
                self.frames_written, exc,
            )
            return False
        self.frames_written += 1
        return True

    async def send(self, event: StreamEvent) -> bool:
        return await self.emit(event.event, event.payload())

    async def close(self) -> None:
        """Close the underlying stream once; later calls do nothing."""
        if self._close_attempted:
            return
        self._close_attempted = True
        self.closed = True
        try:
            await self.writer.close()
        except Exception as exc:
            logger.debug("Push channel close ignored: %s", exc)
