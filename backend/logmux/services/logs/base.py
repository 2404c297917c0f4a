"""
Base classes and interfaces for the log multiplexing architecture.

This module defines the container snapshot, the stdout/stderr selection mask
and the collaborator interfaces the multiplexer consumes: a per-host log
client and a container store answering "which containers exist" and
"tell me when new ones appear".
"""

import asyncio
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

SERVICE_LABEL = "com.docker.swarm.service.name"
STACK_LABEL = "com.docker.stack.namespace"

# Docker reports never-started containers with the zero time
_ZERO_TIME_PREFIX = "0001-01-01"


class StdType(enum.IntFlag):
    """Which output streams of a container to read."""
    STDOUT = 1
    STDERR = 2

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "StdType":
        """Build the mask from the presence of ``stdout``/``stderr`` query keys."""
        std_types = cls(0)
        if "stdout" in params:
            std_types |= cls.STDOUT
        if "stderr" in params:
            std_types |= cls.STDERR
        return std_types

    @property
    def stream_name(self) -> Optional[str]:
        """Name of the single selected stream, or None when both are selected."""
        if self == StdType.STDOUT:
            return "stdout"
        if self == StdType.STDERR:
            return "stderr"
        return None


def parse_docker_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a Docker RFC3339Nano timestamp into an aware UTC datetime."""
    if not value or value.startswith(_ZERO_TIME_PREFIX):
        return None
    value = value.replace("Z", "+00:00")
    # Python keeps microseconds only
    if "." in value:
        head, _, rest = value.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        value = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Container:
    """
    Immutable snapshot of a container as seen by a container store.

    The multiplexer never mutates a snapshot; a store replaces it when the
    container changes.
    """
    id: str
    name: str
    host: str
    image: str = ""
    state: str = "running"
    labels: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    group: Optional[str] = None
    started_at: Optional[datetime] = None
    tty: bool = False

    @property
    def is_running(self) -> bool:
        return self.state == "running"

    @property
    def service(self) -> Optional[str]:
        return self.labels.get(SERVICE_LABEL)

    @property
    def stack(self) -> Optional[str]:
        return self.labels.get(STACK_LABEL)

    @classmethod
    def from_inspect(cls, data: Dict[str, Any], host: str, group_label: str) -> "Container":
        """Build a snapshot from a Docker inspect payload."""
        config = data.get("Config") or {}
        state = data.get("State") or {}
        labels = config.get("Labels") or {}
        return cls(
            id=data["Id"],
            name=(data.get("Name") or "").lstrip("/"),
            host=host,
            image=config.get("Image", ""),
            state=state.get("Status", "unknown"),
            labels=dict(labels),
            group=labels.get(group_label),
            started_at=parse_docker_time(state.get("StartedAt")),
            tty=bool(config.get("Tty", False)),
        )


class Keepalive:
    """Marker emitted by the multiplexer on every keepalive tick."""

    def __repr__(self) -> str:
        return "KEEPALIVE"


KEEPALIVE = Keepalive()


class DockerLogClient(ABC):
    """
    Per-host log transport.

    Implementations return async iterators of raw log lines, each prefixed by
    the Docker RFC3339Nano timestamp.
    """

    host: str

    @abstractmethod
    async def container_logs(
        self,
        container_id: str,
        since: Optional[datetime],
        std_types: StdType,
    ) -> AsyncIterator[str]:
        """
        Open a live log feed for a container.

        Raising from this coroutine means the feed could not be opened.
        Exhausting the returned iterator means the stream ended cleanly.
        """

    @abstractmethod
    async def container_logs_between_dates(
        self,
        container_id: str,
        start: datetime,
        end: datetime,
        std_types: StdType,
    ) -> AsyncIterator[str]:
        """Open a bounded (non-following) log feed for a container."""


class ContainerStore(ABC):
    """Answers which containers exist on a host and announces new ones."""

    @abstractmethod
    async def find_container(self, container_id: str) -> Container:
        """
        Look up a container by id, id prefix or name.

        Raises:
            ResourceNotFoundError: If no such container is known
        """

    @abstractmethod
    async def list(self) -> List[Container]:
        """Return the known containers."""

    @abstractmethod
    def subscribe_new_containers(self, queue: "asyncio.Queue[Container]") -> None:
        """Push every newly started container onto ``queue`` until unsubscribed."""

    @abstractmethod
    def unsubscribe(self, queue: "asyncio.Queue[Container]") -> None:
        """Stop pushing to ``queue``."""
