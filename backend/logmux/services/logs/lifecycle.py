"""
Lifecycle event rules.

Liveness is inferred from two points only: a member arriving with a start
time after the request began, and a tailer reaching a clean end of stream.
"""

from datetime import datetime
from typing import Optional

from logmux.schemas.logs import ContainerEvent, CONTAINER_STARTED, CONTAINER_STOPPED
from .base import Container


def container_started(container: Container, since: datetime) -> Optional[ContainerEvent]:
    """Return a started event when the container started after ``since``."""
    if container.started_at is None or not container.started_at > since:
        return None
    return ContainerEvent(actor_id=container.id, name=CONTAINER_STARTED, host=container.host)


def container_stopped(container: Container) -> ContainerEvent:
    return ContainerEvent(actor_id=container.id, name=CONTAINER_STOPPED, host=container.host)
