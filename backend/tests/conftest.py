"""
Pytest configuration and fixtures
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from logmux.core.exceptions import ResourceNotFoundError
from logmux.services.logs.base import Container, ContainerStore, DockerLogClient, StdType


# Ends a fake log feed cleanly
EOF = None


def make_container(
    container_id: str = "abc123def456",
    name: str = "web",
    host: str = "local",
    state: str = "running",
    labels: Optional[Dict[str, str]] = None,
    group: Optional[str] = None,
    started_at: Optional[datetime] = None,
) -> Container:
    """Create a container snapshot; started an hour ago unless told otherwise."""
    if started_at is None:
        started_at = datetime.now(timezone.utc) - timedelta(hours=1)
    return Container(
        id=container_id,
        name=name,
        host=host,
        state=state,
        labels=labels or {},
        group=group,
        started_at=started_at,
    )


class FakeDockerClient(DockerLogClient):
    """
    Log client whose live feeds are driven by the test through queues.

    Put strings or bytes to emit chunks, an exception to fail the feed and
    ``EOF`` to end it cleanly.
    """

    def __init__(self, host: str = "local"):
        self.host = host
        self.feeds: Dict[str, asyncio.Queue] = {}
        self.open_errors: Dict[str, Exception] = {}
        self.history: Dict[str, List[str]] = {}
        self.history_error: Optional[Exception] = None
        self.opened: List[tuple] = []
        self.closed: List[str] = []

    def feed(self, container_id: str) -> asyncio.Queue:
        if container_id not in self.feeds:
            self.feeds[container_id] = asyncio.Queue()
        return self.feeds[container_id]

    async def _follow(self, container_id: str):
        queue = self.feed(container_id)
        try:
            while True:
                chunk = await queue.get()
                if chunk is EOF:
                    return
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            self.closed.append(container_id)

    async def container_logs(self, container_id, since, std_types):
        self.opened.append((container_id, since, std_types))
        if container_id in self.open_errors:
            raise self.open_errors[container_id]
        return self._follow(container_id)

    async def _replay(self, lines):
        for line in lines:
            yield line

    async def container_logs_between_dates(self, container_id, start, end, std_types):
        self.opened.append((container_id, start, end, std_types))
        if self.history_error is not None:
            raise self.history_error
        return self._replay(self.history.get(container_id, []))


class FakeContainerStore(ContainerStore):
    """In-memory container store; ``announce`` plays the role of the events feed."""

    def __init__(self, containers: Optional[List[Container]] = None):
        self.containers: Dict[str, Container] = {c.id: c for c in containers or []}
        self.subscribers: List[asyncio.Queue] = []
        self.list_error: Optional[Exception] = None

    async def find_container(self, container_id: str) -> Container:
        container = self.containers.get(container_id)
        if container is None:
            for candidate in self.containers.values():
                if candidate.name == container_id:
                    return candidate
            raise ResourceNotFoundError("container", container_id)
        return container

    async def list(self) -> List[Container]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.containers.values())

    def subscribe_new_containers(self, queue: asyncio.Queue) -> None:
        self.subscribers.append(queue)

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self.subscribers:
            self.subscribers.remove(queue)

    def announce(self, container: Container) -> None:
        self.containers[container.id] = container
        for queue in list(self.subscribers):
            queue.put_nowait(container)


async def take(stream, count: int, timeout: float = 2.0) -> list:
    """Collect ``count`` items from an async iterator, failing after ``timeout`` seconds."""
    items = []

    async def _collect():
        while len(items) < count:
            items.append(await stream.__anext__())

    await asyncio.wait_for(_collect(), timeout)
    return items


@pytest.fixture
def both_streams() -> StdType:
    return StdType.STDOUT | StdType.STDERR


@pytest.fixture
def container() -> Container:
    return make_container()


@pytest.fixture
def docker_client() -> FakeDockerClient:
    return FakeDockerClient("local")


@pytest.fixture
def container_store(container) -> FakeContainerStore:
    return FakeContainerStore([container])
