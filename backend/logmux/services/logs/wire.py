"""
Server-Sent Events framing for multiplexed log streams.
"""

import logging
from typing import AsyncIterator, Optional

from sse_starlette.sse import ServerSentEvent

from logmux.core.exceptions import StreamingUnsupportedError
from logmux.core.logging import logger as default_logger
from logmux.schemas.logs import ContainerEvent, LogEvent
from .base import Keepalive

CONTAINER_EVENT = "container-event"
SEPARATOR = "\n"

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"
EVENT_STREAM_HEADERS = {
    "Cache-Control": "no-transform, no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class EventStreamEncoder:
    """
    Encodes multiplexer items as SSE frames.

    Log events become ``data:`` frames carrying the event JSON, with the log
    timestamp as the frame ``id`` when known. Lifecycle events use the
    ``container-event`` event type. Keepalives are comment frames.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or default_logger

    def encode(self, item) -> Optional[bytes]:
        """Encode one item; None when it cannot be serialized."""
        if isinstance(item, Keepalive):
            return ServerSentEvent(comment="ping", sep=SEPARATOR).encode()

        try:
            if isinstance(item, LogEvent):
                return ServerSentEvent(
                    data=item.model_dump_json(by_alias=True),
                    id=str(item.timestamp) if item.timestamp > 0 else None,
                    sep=SEPARATOR,
                ).encode()
            if isinstance(item, ContainerEvent):
                return ServerSentEvent(
                    data=item.model_dump_json(by_alias=True),
                    event=CONTAINER_EVENT,
                    sep=SEPARATOR,
                ).encode()
        except ValueError as e:
            self.logger.error(f"json encoding error while streaming {e}")
            return None

        self.logger.error(f"cannot encode stream item of type {type(item).__name__}")
        return None

    async def frames(self, items: AsyncIterator) -> AsyncIterator[bytes]:
        """Encode items one frame per chunk, dropping the ones that fail to encode."""
        async for item in items:
            frame = self.encode(item)
            if frame is not None:
                yield frame

    async def stream_to(self, items: AsyncIterator, writer) -> None:
        """
        Write frames to a file-like sink, flushing after every frame.

        Raises:
            StreamingUnsupportedError: If the sink cannot flush incrementally
        """
        flush = getattr(writer, "flush", None)
        if not callable(flush):
            raise StreamingUnsupportedError()

        async for frame in self.frames(items):
            writer.write(frame)
            flush()
