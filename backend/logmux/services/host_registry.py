import asyncio
from typing import Dict, List, Mapping, Optional

from aiodocker.exceptions import DockerError

from logmux.core.config import Settings
from logmux.core.exceptions import DockerConnectionError, ResourceNotFoundError
from logmux.core.logging import logger
from logmux.services.container_store import DockerContainerStore
from logmux.services.docker_client import AiodockerLogClient
from logmux.services.logs.base import ContainerStore, DockerLogClient


class HostRegistry:
    """
    Per-host log clients and container stores.

    Built once at startup and only read afterwards, so concurrent requests
    can share it without locking.
    """

    def __init__(
        self,
        clients: Mapping[str, DockerLogClient],
        stores: Mapping[str, ContainerStore],
    ):
        self.clients: Dict[str, DockerLogClient] = dict(clients)
        self.stores: Dict[str, ContainerStore] = dict(stores)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HostRegistry":
        clients = {}
        stores = {}
        for host, url in settings.host_urls().items():
            client = AiodockerLogClient(host, url)
            clients[host] = client
            stores[host] = DockerContainerStore(client, settings.group_label)
        return cls(clients, stores)

    @property
    def hosts(self) -> List[str]:
        return sorted(self.clients)

    def client(self, host: str) -> DockerLogClient:
        client = self.clients.get(host)
        if client is None:
            raise ResourceNotFoundError("host", host)
        return client

    def store(self, host: str) -> ContainerStore:
        store = self.stores.get(host)
        if store is None:
            raise ResourceNotFoundError("host", host)
        return store

    async def start(self) -> None:
        """Connect every host; hosts that fail are dropped with an error log."""
        for host in list(self.clients):
            client = self.clients[host]
            store = self.stores[host]
            try:
                await client.connect()
                await store.start()
            except (DockerConnectionError, DockerError) as e:
                logger.error(f"Failed to connect to Docker host {host}: {e}")
                await client.close()
                del self.clients[host]
                del self.stores[host]

    async def close(self) -> None:
        await asyncio.gather(
            *(store.stop() for store in self.stores.values()),
            return_exceptions=True
        )
        await asyncio.gather(
            *(client.close() for client in self.clients.values()),
            return_exceptions=True
        )


_host_registry: Optional[HostRegistry] = None


def get_host_registry() -> HostRegistry:
    """Get the global host registry instance."""
    if _host_registry is None:
        raise DockerConnectionError("Docker hosts are not initialized")
    return _host_registry


def set_host_registry(registry: Optional[HostRegistry]) -> None:
    global _host_registry
    _host_registry = registry
