"""
Membership filters feeding containers into a multiplexer.

Every stream variant (single container, service, stack, group) uses the same
mechanism; only the predicate differs.
"""

import asyncio
import logging
from typing import Callable, Collection, Iterable, List, Optional

from .base import Container, ContainerStore
from .lifetime import StreamLifetime

ContainerPredicate = Callable[[Container], bool]


def by_id(container_id: str) -> ContainerPredicate:
    return lambda container: container.id == container_id


def by_ids(container_ids: Collection[str]) -> ContainerPredicate:
    ids = frozenset(container_ids)
    return lambda container: container.id in ids


def by_service(service: str) -> ContainerPredicate:
    return lambda container: container.service == service


def by_stack(stack: str) -> ContainerPredicate:
    return lambda container: container.stack == stack


def by_group(group: str) -> ContainerPredicate:
    return lambda container: container.group == group


class MembershipFilter:
    """
    Pushes matching containers onto a multiplexer's membership queue.

    Two phases: enumerate the containers the stores already know, then
    follow newly discovered ones until the lifetime ends. The subscription
    is taken before enumerating so a container starting in between is not
    missed. A container seen in both phases arrives twice; the
    multiplexer's worker registry tails each (id, start time) run once and
    only the accepted arrival produces a started event.
    """

    def __init__(
        self,
        stores: Iterable[ContainerStore],
        predicate: ContainerPredicate,
        lifetime: StreamLifetime,
        logger: logging.Logger,
        *,
        include_existing: bool = True,
        require_running: bool = True,
        initial: Optional[List[Container]] = None,
        name: str = "membership",
    ):
        self.stores = list(stores)
        self.predicate = predicate
        self.lifetime = lifetime
        self.logger = logger
        self.include_existing = include_existing
        self.require_running = require_running
        self.initial = list(initial or [])
        self.name = name

    def matches(self, container: Container) -> bool:
        if self.require_running and not container.is_running:
            return False
        return self.predicate(container)

    async def run(self, membership: "asyncio.Queue[Container]") -> None:
        discovered: "asyncio.Queue[Container]" = asyncio.Queue()
        for store in self.stores:
            store.subscribe_new_containers(discovered)

        try:
            for container in self.initial:
                if not await self.lifetime.put(membership, container):
                    return

            if self.include_existing:
                for store in self.stores:
                    try:
                        containers = await store.list()
                    except Exception as e:
                        self.logger.error(f"error while listing containers {e}")
                        continue

                    for container in containers:
                        if self.matches(container):
                            if not await self.lifetime.put(membership, container):
                                return

            while not self.lifetime.cancelled:
                container = await self._next(discovered)
                if container is None:
                    break
                if self.matches(container):
                    if not await self.lifetime.put(membership, container):
                        break
        finally:
            for store in self.stores:
                store.unsubscribe(discovered)
            self.logger.debug(f"closing container channel {self.name}")

    async def _next(self, discovered: "asyncio.Queue[Container]") -> Optional[Container]:
        """Next discovered container, or None once the lifetime ends."""
        get = asyncio.ensure_future(discovered.get())
        cancelled = asyncio.ensure_future(self.lifetime.wait())
        try:
            await asyncio.wait({get, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not get.done():
                get.cancel()
        if get.done() and not get.cancelled():
            return get.result()
        return None


async def stop_discovery(task: asyncio.Task, logger: logging.Logger) -> None:
    """Cancel a running ``MembershipFilter.run`` task and collect its outcome."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error(f"container discovery failed: {e}")
