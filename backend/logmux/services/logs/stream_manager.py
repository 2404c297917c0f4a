"""
Stream multiplexing for container logs.

This module merges the log feeds of a changing set of containers into one
ordered sequence of items for a single streaming request, interleaved with
keepalive ticks and synthetic lifecycle events.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Mapping, Optional, Set, Tuple, Union

from logmux.core.exceptions import ValidationError
from logmux.core.logging import logger as default_logger
from logmux.core.runtime_stats import RuntimeStatsSampler
from logmux.schemas.logs import ContainerEvent, LogEvent
from .base import KEEPALIVE, Container, DockerLogClient, Keepalive, StdType
from .lifecycle import container_started
from .lifetime import StreamLifetime
from .tailer import LogTailer, StreamOutput

StreamItem = Union[LogEvent, ContainerEvent, Keepalive]

DEFAULT_KEEPALIVE_INTERVAL = 5.0

# Processing order when several sources are ready in the same round
_MEMBERSHIP = "membership"
_OUTPUT = "output"
_KEEPALIVE = "keepalive"
_SOURCE_ORDER = (_MEMBERSHIP, _OUTPUT, _KEEPALIVE)


class WorkerRegistry:
    """
    Tracks the tailer task of every member container of one request.

    A run of a container is identified by its id and start time. Each run is
    tailed at most once, so a snapshot delivered twice is ignored. At most
    one worker is live per container id: a restart that arrives while the
    previous run is still draining is queued and started once that worker
    finishes.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._workers: Dict[str, asyncio.Task] = {}
        self._pending: Dict[str, LogTailer] = {}
        self._seen: Set[Tuple[str, Optional[datetime]]] = set()
        self._closed = False

    def __contains__(self, container_id: str) -> bool:
        task = self._workers.get(container_id)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return sum(1 for task in self._workers.values() if not task.done())

    def spawn(self, container: Container, tailer: LogTailer) -> bool:
        """
        Tail a new run of ``container``.

        Returns:
            False if this run was already handed to a worker
        """
        run = (container.id, container.started_at)
        if self._closed or run in self._seen:
            self.logger.debug(f"already tailing container {container.name}")
            return False
        self._seen.add(run)

        if container.id in self:
            self.logger.debug(f"container {container.name} restarted, tailing once the previous run ends")
            self._pending[container.id] = tailer
            return True

        self._start(container.id, tailer)
        return True

    def _start(self, container_id: str, tailer: LogTailer) -> None:
        task = asyncio.create_task(tailer.run(), name=f"tail-{container_id[:12]}")
        self._workers[container_id] = task
        task.add_done_callback(lambda done, container_id=container_id: self._reap(container_id, done))

    def _reap(self, container_id: str, task: asyncio.Task) -> None:
        if self._workers.get(container_id) is task:
            del self._workers[container_id]
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"tailer for {container_id[:12]} crashed: {task.exception()}")

        tailer = self._pending.pop(container_id, None)
        if tailer is not None and not self._closed:
            self._start(container_id, tailer)

    def cancel_all(self) -> None:
        """Cancel every worker without waiting for it to finish."""
        self._closed = True
        self._pending.clear()
        for task in self._workers.values():
            if not task.done():
                task.cancel()


class LogStreamMultiplexer:
    """
    Coordinator of one streaming request.

    ``stream()`` runs a single select loop over four sources: the membership
    queue, the shared worker output queue, the keepalive ticker and the
    lifetime. Items are yielded in the order they reach the loop; events from
    one container keep their source order, nothing is ordered across
    containers.
    """

    def __init__(
        self,
        clients: Mapping[str, DockerLogClient],
        std_types: StdType,
        membership: "asyncio.Queue[Container]",
        *,
        lifetime: Optional[StreamLifetime] = None,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        logger: Optional[logging.Logger] = None,
        stats_sampler: Optional[RuntimeStatsSampler] = None,
        output_buffer: int = 1,
    ):
        if not std_types:
            raise ValidationError("stdout or stderr is required")

        self.clients = clients
        self.std_types = std_types
        self.membership = membership
        self.lifetime = lifetime or StreamLifetime()
        self.keepalive_interval = keepalive_interval
        self.logger = logger or default_logger
        self.stats_sampler = stats_sampler or RuntimeStatsSampler(self.logger)
        self.output: "asyncio.Queue[StreamOutput]" = asyncio.Queue(maxsize=output_buffer)
        self.workers = WorkerRegistry(self.logger)
        self.started_at = datetime.now(timezone.utc)

    def _arm(self, source: str) -> asyncio.Future:
        if source == _MEMBERSHIP:
            return asyncio.ensure_future(self.membership.get())
        if source == _OUTPUT:
            return asyncio.ensure_future(self.output.get())
        return asyncio.ensure_future(asyncio.sleep(self.keepalive_interval))

    def _spawn(self, container: Container) -> None:
        client = self.clients.get(container.host)
        if client is None:
            self.logger.warning(f"no client for host {container.host}, skipping {container.name}")
            return

        # Emitted by the run's worker, ahead of its first log line
        event = container_started(container, self.started_at)
        tailer = LogTailer(
            client=client,
            container=container,
            std_types=self.std_types,
            lifetime=self.lifetime,
            output=self.output,
            logger=self.logger,
            started_event=event,
        )
        if self.workers.spawn(container, tailer) and event is not None:
            self.logger.debug(f"received container event {event}")

    async def stream(self) -> AsyncIterator[StreamItem]:
        pending = {source: self._arm(source) for source in _SOURCE_ORDER}
        cancelled = asyncio.ensure_future(self.lifetime.wait())

        try:
            while True:
                done, _ = await asyncio.wait(
                    [cancelled, *pending.values()],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if cancelled in done:
                    self.logger.debug("context cancelled")
                    break

                for source in _SOURCE_ORDER:
                    task = pending[source]
                    if task not in done:
                        continue
                    if self.lifetime.cancelled:
                        return

                    pending[source] = self._arm(source)

                    if source == _MEMBERSHIP:
                        self._spawn(task.result())
                    elif source == _OUTPUT:
                        yield task.result()
                    else:
                        yield KEEPALIVE
        finally:
            self.lifetime.cancel()
            cancelled.cancel()
            for task in pending.values():
                task.cancel()
            self.workers.cancel_all()
            self.stats_sampler.log()
