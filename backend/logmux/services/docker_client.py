"""
aiodocker-backed log transport for one Docker host.
"""

import inspect
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional

import aiodocker
from aiodocker.exceptions import DockerError

from logmux.core.exceptions import DockerConnectionError, ResourceNotFoundError
from logmux.core.logging import logger
from logmux.services.logs.base import DockerLogClient, StdType

if TYPE_CHECKING:
    from aiodocker.containers import DockerContainer


def _unix(moment: datetime) -> str:
    """Docker accepts fractional UNIX timestamps for since/until."""
    return f"{moment.timestamp():.6f}"


async def _iterate(lines: List[str]) -> AsyncIterator[str]:
    for line in lines:
        yield line


class AiodockerLogClient(DockerLogClient):
    """Reads container logs and metadata from one Docker daemon."""

    def __init__(self, host: str, url: Optional[str] = None, docker: Optional[aiodocker.Docker] = None):
        self.host = host
        self.url = url or None
        self._docker = docker

    @property
    def docker(self) -> aiodocker.Docker:
        if self._docker is None:
            raise DockerConnectionError(f"Docker host {self.host} is not connected")
        return self._docker

    async def connect(self) -> None:
        if self._docker is None:
            self._docker = aiodocker.Docker(url=self.url)
        try:
            version_info = await self._docker.version()
        except DockerError as e:
            raise DockerConnectionError(f"Failed to connect to Docker host {self.host}: {e}")
        logger.info(f"Connected to Docker {version_info.get('Version', 'Unknown')} on {self.host}")

    async def close(self) -> None:
        if self._docker is not None:
            await self._docker.close()
            self._docker = None

    async def inspect(self, container_id: str) -> Dict[str, Any]:
        try:
            container = await self.docker.containers.get(container_id)
        except DockerError as e:
            if e.status == 404:
                raise ResourceNotFoundError("container", container_id)
            raise
        return container._container

    async def list_ids(self) -> List[str]:
        containers = await self.docker.containers.list(all=True)
        return [container.id for container in containers]

    async def _log(self, container: "DockerContainer", std_types: StdType, **params) -> Any:
        result = container.log(
            stdout=bool(std_types & StdType.STDOUT),
            stderr=bool(std_types & StdType.STDERR),
            timestamps=True,
            **params
        )
        if inspect.isawaitable(result):
            result = await result
        return result

    async def container_logs(
        self,
        container_id: str,
        since: Optional[datetime],
        std_types: StdType,
    ) -> AsyncIterator[str]:
        container = await self.docker.containers.get(container_id)
        params = {"follow": True}
        if since is not None:
            params["since"] = _unix(since)
        return await self._log(container, std_types, **params)

    async def container_logs_between_dates(
        self,
        container_id: str,
        start: datetime,
        end: datetime,
        std_types: StdType,
    ) -> AsyncIterator[str]:
        container = await self.docker.containers.get(container_id)
        lines = await self._log(container, std_types, follow=False, since=_unix(start), until=_unix(end))
        return _iterate(lines)
