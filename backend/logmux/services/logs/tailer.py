"""
Log tailer worker: one per member container of a streaming request.
"""

import asyncio
import logging
from typing import Optional, Union

from logmux.schemas.logs import ContainerEvent, LogEvent
from .base import Container, DockerLogClient, StdType
from .event_generator import generate_events
from .lifecycle import container_stopped
from .lifetime import StreamLifetime

StreamOutput = Union[LogEvent, ContainerEvent]


class LogTailer:
    """
    Follows the live log feed of one container.

    Every decoded event is handed to the shared output queue; a slow consumer
    therefore slows this worker, and through it the underlying read.
    The started event (when the run began after the request) and the stop
    event go through the same queue, so they bracket the run's log lines.
    """

    def __init__(
        self,
        client: DockerLogClient,
        container: Container,
        std_types: StdType,
        lifetime: StreamLifetime,
        output: "asyncio.Queue[StreamOutput]",
        logger: logging.Logger,
        started_event: Optional[ContainerEvent] = None,
    ):
        self.client = client
        self.container = container
        self.std_types = std_types
        self.lifetime = lifetime
        self.output = output
        self.logger = logger
        self.started_event = started_event

    async def run(self) -> None:
        if self.started_event is not None:
            if not await self.lifetime.put(self.output, self.started_event):
                return

        try:
            lines = await self.client.container_logs(
                self.container.id, self.container.started_at, self.std_types
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.debug(f"could not open logs for container {self.container.name}: {e}")
            return

        events = generate_events(lines, self.container, self.std_types)
        try:
            async for event in events:
                if not await self.lifetime.put(self.output, event):
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self.lifetime.cancelled:
                self.logger.error(f"unknown error while streaming {self.container.name}: {e}")
            return
        finally:
            await events.aclose()
            aclose = getattr(lines, "aclose", None)
            if aclose is not None:
                await aclose()

        if self.lifetime.cancelled:
            return

        self.logger.debug(f"stream closed for container {self.container.name}")
        await self.lifetime.put(self.output, container_stopped(self.container))
