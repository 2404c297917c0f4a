"""
Container store for one Docker host.

Keeps an inspected snapshot of every container and follows the Docker
events feed so the cache stays current and subscribers learn about newly
started containers.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from aiodocker.exceptions import DockerError

from logmux.core.exceptions import ResourceNotFoundError
from logmux.core.logging import logger
from logmux.services.docker_client import AiodockerLogClient
from logmux.services.logs.base import Container, ContainerStore


class DockerContainerStore(ContainerStore):
    """ContainerStore backed by the Docker API and events feed of one host."""

    def __init__(self, client: AiodockerLogClient, group_label: str):
        self.client = client
        self.group_label = group_label
        self._containers: Dict[str, Container] = {}
        self._subscribers: Set[asyncio.Queue] = set()
        self._events_task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()

    @property
    def host(self) -> str:
        return self.client.host

    async def start(self) -> None:
        """Load the current containers and start following the events feed."""
        for container_id in await self.client.list_ids():
            await self._refresh(container_id)
        self._ready.set()
        self._events_task = asyncio.create_task(self._watch_events(), name=f"events-{self.host}")
        logger.info(f"Container store for {self.host} loaded {len(self._containers)} containers")

    async def stop(self) -> None:
        if self._events_task and not self._events_task.done():
            self._events_task.cancel()
            try:
                await self._events_task
            except asyncio.CancelledError:
                pass
        self._subscribers.clear()

    async def find_container(self, container_id: str) -> Container:
        await self._ready.wait()
        container = self._containers.get(container_id)
        if container is not None:
            return container

        for candidate in self._containers.values():
            if candidate.id.startswith(container_id) or candidate.name == container_id:
                return candidate

        # Not cached yet, e.g. created between two events
        container = await self._refresh(container_id)
        if container is None:
            raise ResourceNotFoundError("container", container_id)
        return container

    async def list(self) -> List[Container]:
        await self._ready.wait()
        return list(self._containers.values())

    def subscribe_new_containers(self, queue: asyncio.Queue) -> None:
        self._subscribers.add(queue)

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def _publish(self, container: Container) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(container)

    async def _refresh(self, container_id: str) -> Optional[Container]:
        try:
            data = await self.client.inspect(container_id)
        except ResourceNotFoundError:
            self._containers.pop(container_id, None)
            return None
        container = Container.from_inspect(data, self.host, self.group_label)
        self._containers[container.id] = container
        return container

    async def _handle_event(self, event: Dict[str, Any]) -> None:
        if event.get("Type") != "container":
            return

        action = (event.get("Action") or event.get("status") or "").split(":")[0]
        container_id = (event.get("Actor") or {}).get("ID") or event.get("id")
        if not container_id:
            return

        if action == "start":
            container = await self._refresh(container_id)
            if container is not None:
                logger.debug(f"container {container.name} started on {self.host}")
                self._publish(container)
        elif action in ("die", "stop", "kill", "pause", "unpause", "rename", "health_status"):
            await self._refresh(container_id)
        elif action == "destroy":
            self._containers.pop(container_id, None)

    async def _watch_events(self) -> None:
        """Follow the Docker events feed of this host."""
        subscriber = self.client.docker.events.subscribe()
        while True:
            try:
                event = await subscriber.get()
                if event is None:
                    logger.warning(f"Docker events feed closed for host {self.host}")
                    break
                await self._handle_event(event)
            except asyncio.CancelledError:
                raise
            except DockerError as e:
                logger.error(f"Error processing event on host {self.host}: {str(e)}")
                continue
