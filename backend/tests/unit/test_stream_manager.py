"""
Unit tests for the log stream multiplexer
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from conftest import EOF, FakeContainerStore, FakeDockerClient, make_container, take
from logmux.core.exceptions import ValidationError
from logmux.schemas.logs import CONTAINER_STARTED, CONTAINER_STOPPED, ContainerEvent, LogEvent
from logmux.services.logs.base import KEEPALIVE, StdType
from logmux.services.logs.lifetime import StreamLifetime
from logmux.services.logs.membership import MembershipFilter, by_group
from logmux.services.logs.stream_manager import LogStreamMultiplexer, WorkerRegistry


logger = logging.getLogger("logmux.tests")


def make_multiplexer(clients, membership, keepalive_interval=60.0, std_types=StdType.STDOUT, lifetime=None):
    return LogStreamMultiplexer(
        clients,
        std_types,
        membership,
        lifetime=lifetime,
        keepalive_interval=keepalive_interval,
        logger=logger,
        stats_sampler=Mock(),
    )


class BlockingTailer:
    """Tailer stand-in that runs until released"""

    def __init__(self):
        self.release = asyncio.Event()
        self.running = False

    async def run(self):
        self.running = True
        await self.release.wait()


async def take_events(stream, count):
    """Collect ``count`` items, skipping keepalives."""
    items = []
    while len(items) < count:
        item = (await take(stream, 1))[0]
        if item is not KEEPALIVE:
            items.append(item)
    return items


def restarted(container, minutes=1):
    """Snapshot of a later run of ``container``."""
    return replace(container, started_at=datetime.now(timezone.utc) + timedelta(minutes=minutes))


class TestWorkerRegistry:

    @pytest.mark.asyncio
    async def test_one_worker_per_container(self):
        registry = WorkerRegistry(logger)
        container = make_container()

        assert registry.spawn(container, BlockingTailer()) is True
        assert registry.spawn(container, BlockingTailer()) is False
        assert container.id in registry
        assert len(registry) == 1

        registry.cancel_all()
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_finished_worker_is_reaped(self):
        registry = WorkerRegistry(logger)
        container = make_container()
        tailer = BlockingTailer()
        registry.spawn(container, tailer)

        tailer.release.set()
        await asyncio.sleep(0.01)

        assert container.id not in registry
        assert len(registry) == 0
        # The same run is never tailed twice, a later run is
        assert registry.spawn(container, BlockingTailer()) is False
        assert registry.spawn(restarted(container), BlockingTailer()) is True
        registry.cancel_all()
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_restart_waits_for_previous_run(self):
        registry = WorkerRegistry(logger)
        container = make_container()
        first, second = BlockingTailer(), BlockingTailer()

        assert registry.spawn(container, first) is True
        assert registry.spawn(restarted(container), second) is True
        await asyncio.sleep(0.01)
        assert len(registry) == 1
        assert not second.running

        first.release.set()
        await asyncio.sleep(0.01)
        assert second.running
        assert container.id in registry

        registry.cancel_all()
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_cancel_all_drops_queued_restart(self):
        registry = WorkerRegistry(logger)
        container = make_container()
        second = BlockingTailer()
        registry.spawn(container, BlockingTailer())
        registry.spawn(restarted(container), second)

        registry.cancel_all()
        await asyncio.sleep(0.01)

        assert not second.running
        assert len(registry) == 0
        assert registry.spawn(restarted(container, minutes=2), BlockingTailer()) is False


class TestLogStreamMultiplexer:

    def test_empty_std_mask_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            make_multiplexer({}, asyncio.Queue(), std_types=StdType(0))
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_single_container_logs_then_stop(self):
        """A container that ends cleanly yields its logs and exactly one stop event"""
        client = FakeDockerClient()
        container = make_container()
        membership = asyncio.Queue(maxsize=1)
        membership.put_nowait(container)
        feed = client.feed(container.id)
        feed.put_nowait("2024-01-01T00:00:00.000000001Z hello\n")
        feed.put_nowait(EOF)

        multiplexer = make_multiplexer({"local": client}, membership)
        stream = multiplexer.stream()
        try:
            items = await take(stream, 2)
            await asyncio.sleep(0.01)
            assert container.id not in multiplexer.workers
        finally:
            await stream.aclose()

        assert isinstance(items[0], LogEvent)
        assert items[0].message == "hello"
        assert items[0].timestamp == 1_704_067_200_000_000_001
        assert isinstance(items[1], ContainerEvent)
        assert items[1].name == CONTAINER_STOPPED

    @pytest.mark.asyncio
    async def test_started_event_precedes_logs(self):
        client = FakeDockerClient()
        container = make_container(started_at=datetime.now(timezone.utc) + timedelta(minutes=1))
        membership = asyncio.Queue(maxsize=1)
        membership.put_nowait(container)
        client.feed(container.id).put_nowait("first line\n")

        stream = make_multiplexer({"local": client}, membership).stream()
        try:
            items = await take(stream, 2)
        finally:
            await stream.aclose()

        assert isinstance(items[0], ContainerEvent)
        assert items[0].name == CONTAINER_STARTED
        assert items[0].actor_id == container.id
        assert isinstance(items[1], LogEvent)
        assert items[1].message == "first line"

    @pytest.mark.asyncio
    async def test_container_started_before_request_is_not_flagged(self):
        client = FakeDockerClient()
        container = make_container()
        membership = asyncio.Queue(maxsize=1)
        membership.put_nowait(container)
        client.feed(container.id).put_nowait("line\n")

        stream = make_multiplexer({"local": client}, membership).stream()
        try:
            items = await take(stream, 1)
        finally:
            await stream.aclose()

        assert isinstance(items[0], LogEvent)

    @pytest.mark.asyncio
    async def test_open_failure_is_silent(self):
        client = FakeDockerClient()
        container = make_container()
        client.open_errors[container.id] = RuntimeError("gone")
        membership = asyncio.Queue(maxsize=1)
        membership.put_nowait(container)

        multiplexer = make_multiplexer({"local": client}, membership, keepalive_interval=0.05)
        stream = multiplexer.stream()
        try:
            items = await take(stream, 2)
        finally:
            await stream.aclose()

        assert items == [KEEPALIVE, KEEPALIVE]
        assert len(client.opened) == 1

    @pytest.mark.asyncio
    async def test_keepalive_ticks_without_members(self):
        stream = make_multiplexer({}, asyncio.Queue(), keepalive_interval=0.01).stream()
        try:
            items = await take(stream, 3)
        finally:
            await stream.aclose()

        assert items == [KEEPALIVE, KEEPALIVE, KEEPALIVE]

    @pytest.mark.asyncio
    async def test_cancellation_ends_stream_and_workers(self):
        client = FakeDockerClient()
        container = make_container()
        membership = asyncio.Queue(maxsize=1)
        membership.put_nowait(container)
        client.feed(container.id).put_nowait("line\n")
        lifetime = StreamLifetime()

        multiplexer = make_multiplexer({"local": client}, membership, lifetime=lifetime)
        stream = multiplexer.stream()
        await take(stream, 1)

        lifetime.cancel()
        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), 1)

        await asyncio.sleep(0.01)
        assert len(multiplexer.workers) == 0
        assert client.closed == [container.id]
        multiplexer.stats_sampler.log.assert_called_once()

    @pytest.mark.asyncio
    async def test_closing_stream_cancels_lifetime(self):
        lifetime = StreamLifetime()
        stream = make_multiplexer({}, asyncio.Queue(), keepalive_interval=0.01, lifetime=lifetime).stream()
        await take(stream, 1)

        await stream.aclose()

        assert lifetime.cancelled

    @pytest.mark.asyncio
    async def test_unknown_host_is_skipped(self):
        container = make_container(host="elsewhere")
        membership = asyncio.Queue(maxsize=1)
        membership.put_nowait(container)

        multiplexer = make_multiplexer({"local": FakeDockerClient()}, membership, keepalive_interval=0.01)
        stream = multiplexer.stream()
        try:
            items = await take(stream, 1)
        finally:
            await stream.aclose()

        assert items == [KEEPALIVE]
        assert len(multiplexer.workers) == 0

    @pytest.mark.asyncio
    async def test_per_container_order_is_preserved(self):
        client = FakeDockerClient()
        first = make_container("aaa111", name="a")
        second = make_container("bbb222", name="b")
        membership = asyncio.Queue(maxsize=2)
        membership.put_nowait(first)
        membership.put_nowait(second)
        for n in range(5):
            client.feed(first.id).put_nowait(f"a{n}\n")
            client.feed(second.id).put_nowait(f"b{n}\n")

        stream = make_multiplexer({"local": client}, membership).stream()
        try:
            items = await take(stream, 10)
        finally:
            await stream.aclose()

        assert [i.message for i in items if i.container_id == first.id] == [f"a{n}" for n in range(5)]
        assert [i.message for i in items if i.container_id == second.id] == [f"b{n}" for n in range(5)]

    @pytest.mark.asyncio
    async def test_group_stream_across_hosts(self):
        """Members of one group on two hosts are merged, late joiners included"""
        alpha = FakeDockerClient("alpha")
        beta = FakeDockerClient("beta")
        one = make_container("one111", name="one", host="alpha", group="blue")
        two = make_container("two222", name="two", host="beta", group="blue")
        other = make_container("red333", name="red", host="beta", group="red")
        alpha_store = FakeContainerStore([one])
        beta_store = FakeContainerStore([two, other])
        for client, container in ((alpha, one), (beta, two), (beta, other)):
            client.feed(container.id).put_nowait(f"from {container.name}\n")

        lifetime = StreamLifetime()
        membership = asyncio.Queue(maxsize=10)
        discovery = MembershipFilter([alpha_store, beta_store], by_group("blue"), lifetime, logger)
        multiplexer = make_multiplexer({"alpha": alpha, "beta": beta}, membership, lifetime=lifetime)
        discovery_task = asyncio.create_task(discovery.run(membership))
        stream = multiplexer.stream()
        try:
            items = await take(stream, 2)
            assert {item.message for item in items} == {"from one", "from two"}

            late = make_container(
                "late444", name="late", host="alpha", group="blue",
                started_at=datetime.now(timezone.utc) + timedelta(minutes=1),
            )
            alpha.feed(late.id).put_nowait("from late\n")
            alpha_store.announce(late)
            items = await take(stream, 2)
        finally:
            await stream.aclose()
            await asyncio.wait_for(discovery_task, 1)

        assert items[0].name == CONTAINER_STARTED
        assert items[0].actor_id == late.id
        assert items[1].message == "from late"
        assert other.id not in [opened[0] for opened in beta.opened]

    @pytest.mark.asyncio
    async def test_restart_while_previous_run_drains(self):
        """A restart seen before the old feed ends is tailed once the old run stops"""
        client = FakeDockerClient()
        container = make_container()
        later = restarted(container)
        membership = asyncio.Queue(maxsize=2)
        membership.put_nowait(container)
        membership.put_nowait(later)

        multiplexer = make_multiplexer({"local": client}, membership, keepalive_interval=0.05)
        stream = multiplexer.stream()
        try:
            assert await take(stream, 1) == [KEEPALIVE]
            assert len(multiplexer.workers) == 1
            assert len(client.opened) == 1

            feed = client.feed(container.id)
            feed.put_nowait("before\n")
            feed.put_nowait(EOF)
            feed.put_nowait("after\n")
            items = await take_events(stream, 4)
        finally:
            await stream.aclose()

        assert items[0].message == "before"
        assert (items[1].name, items[2].name) == (CONTAINER_STOPPED, CONTAINER_STARTED)
        assert items[2].actor_id == container.id
        assert items[3].message == "after"
        assert [opened[1] for opened in client.opened] == [container.started_at, later.started_at]

    @pytest.mark.asyncio
    async def test_duplicate_arrival_emits_one_started_event(self):
        client = FakeDockerClient()
        container = make_container(started_at=datetime.now(timezone.utc) + timedelta(minutes=1))
        membership = asyncio.Queue(maxsize=2)
        membership.put_nowait(container)
        membership.put_nowait(container)
        feed = client.feed(container.id)
        feed.put_nowait("line\n")
        feed.put_nowait(EOF)

        stream = make_multiplexer({"local": client}, membership, keepalive_interval=0.05).stream()
        try:
            items = await take_events(stream, 3)
            tail = await take(stream, 1)
        finally:
            await stream.aclose()

        assert [getattr(item, "name", None) for item in items] == [CONTAINER_STARTED, None, CONTAINER_STOPPED]
        assert tail == [KEEPALIVE]
        assert len(client.opened) == 1

    @pytest.mark.asyncio
    async def test_container_announced_during_enumeration_starts_once(self):
        """A container both listed and announced produces a single started event"""
        alpha = FakeDockerClient("alpha")
        beta = FakeDockerClient("beta")
        late = make_container(
            "late111", name="late", host="beta", group="blue",
            started_at=datetime.now(timezone.utc) + timedelta(minutes=1),
        )

        class AnnouncingStore(FakeContainerStore):
            async def list(self):
                self.announce(late)
                return [late]

        alpha_store = FakeContainerStore([
            make_container("a1", name="a1", host="alpha", group="blue"),
            make_container("a2", name="a2", host="alpha", group="blue"),
        ])
        beta_store = AnnouncingStore()
        for name in ("a1", "a2"):
            alpha.feed(name).put_nowait(f"from {name}\n")
        beta.feed(late.id).put_nowait("from late\n")

        lifetime = StreamLifetime()
        membership = asyncio.Queue(maxsize=1)
        discovery = MembershipFilter([alpha_store, beta_store], by_group("blue"), lifetime, logger)
        multiplexer = make_multiplexer(
            {"alpha": alpha, "beta": beta}, membership, keepalive_interval=0.05, lifetime=lifetime
        )
        discovery_task = asyncio.create_task(discovery.run(membership))
        stream = multiplexer.stream()
        try:
            items = await take_events(stream, 4)
            tail = await take(stream, 1)
        finally:
            await stream.aclose()
            await asyncio.wait_for(discovery_task, 1)

        started = [item for item in items if isinstance(item, ContainerEvent)]
        assert [event.actor_id for event in started] == [late.id]
        assert {item.message for item in items if isinstance(item, LogEvent)} == {"from a1", "from a2", "from late"}
        assert tail == [KEEPALIVE]
        assert len(beta.opened) == 1
