"""
Log streaming and export endpoints.

Every streaming route builds a membership queue, optionally a discovery
task feeding it, and hands both to a LogStreamMultiplexer whose output is
framed as Server-Sent Events.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from logmux.api.deps import get_std_types
from logmux.core.config import settings
from logmux.core.exceptions import (
    DockerOperationError,
    MissingRequiredFieldError,
    ResourceNotFoundError,
    ValidationError,
)
from logmux.core.logging import logger
from logmux.services.host_registry import HostRegistry, get_host_registry
from logmux.services.logs.base import Container, StdType
from logmux.services.logs.export import (
    export_filename,
    gzip_lines,
    jsonl_events,
    parse_query_time,
)
from logmux.services.logs.lifetime import StreamLifetime
from logmux.services.logs.membership import (
    ContainerPredicate,
    MembershipFilter,
    by_group,
    by_id,
    by_service,
    by_stack,
    stop_discovery,
)
from logmux.services.logs.stream_manager import LogStreamMultiplexer
from logmux.services.logs.wire import (
    EVENT_STREAM_HEADERS,
    EVENT_STREAM_MEDIA_TYPE,
    EventStreamEncoder,
)


router = APIRouter()


def stream_logs_for_containers(
    registry: HostRegistry,
    std_types: StdType,
    membership: "asyncio.Queue[Container]",
    lifetime: StreamLifetime,
    discovery: Optional[MembershipFilter] = None,
) -> StreamingResponse:
    """Serve a multiplexed SSE stream fed by ``membership``."""
    multiplexer = LogStreamMultiplexer(
        registry.clients,
        std_types,
        membership,
        lifetime=lifetime,
        keepalive_interval=settings.keepalive_interval,
        logger=logger,
    )
    encoder = EventStreamEncoder(logger)

    async def body():
        discovery_task = None
        if discovery is not None:
            discovery_task = asyncio.create_task(discovery.run(membership), name=f"discovery-{discovery.name}")
        try:
            async for frame in encoder.frames(multiplexer.stream()):
                yield frame
        finally:
            lifetime.cancel()
            if discovery_task is not None:
                await stop_discovery(discovery_task, logger)

    return StreamingResponse(body(), media_type=EVENT_STREAM_MEDIA_TYPE, headers=EVENT_STREAM_HEADERS)


def stream_filtered_logs(
    registry: HostRegistry,
    std_types: StdType,
    predicate: ContainerPredicate,
    name: str,
) -> StreamingResponse:
    lifetime = StreamLifetime()
    membership: "asyncio.Queue[Container]" = asyncio.Queue(maxsize=settings.membership_buffer)
    discovery = MembershipFilter(
        registry.stores.values(),
        predicate,
        lifetime,
        logger,
        name=name,
    )
    return stream_logs_for_containers(registry, std_types, membership, lifetime, discovery)


@router.get("/hosts/{host}/containers/{container_id}/logs/stream")
async def stream_container_logs(
    host: str,
    container_id: str,
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    """Follow one container, picking it up again whenever it restarts."""
    container = await registry.store(host).find_container(container_id)

    lifetime = StreamLifetime()
    membership: "asyncio.Queue[Container]" = asyncio.Queue(maxsize=1)
    discovery = MembershipFilter(
        registry.stores.values(),
        by_id(container.id),
        lifetime,
        logger,
        include_existing=False,
        require_running=False,
        initial=[container],
        name="streamContainerLogs",
    )
    return stream_logs_for_containers(registry, std_types, membership, lifetime, discovery)


@router.get("/hosts/{host}/logs/mergedStream")
async def stream_logs_merged(
    host: str,
    ids: List[str] = Query([], alias="id", description="Container ids to merge"),
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    """Merged view over an explicit list of containers."""
    if not ids:
        raise MissingRequiredFieldError("id", "ids query parameter is required")

    store = registry.store(host)
    membership: "asyncio.Queue[Container]" = asyncio.Queue(maxsize=len(ids))
    for container_id in ids:
        membership.put_nowait(await store.find_container(container_id))

    return stream_logs_for_containers(registry, std_types, membership, StreamLifetime())


@router.get("/services/{service}/logs/stream")
async def stream_service_logs(
    service: str,
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    return stream_filtered_logs(registry, std_types, by_service(service), "streamServiceLogs")


@router.get("/stacks/{stack}/logs/stream")
async def stream_stack_logs(
    stack: str,
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    return stream_filtered_logs(registry, std_types, by_stack(stack), "streamStackLogs")


@router.get("/groups/{group}/logs/stream")
async def stream_grouped_logs(
    group: str,
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    return stream_filtered_logs(registry, std_types, by_group(group), "streamGroupedLogs")


@router.get("/hosts/{host}/containers/{container_id}/logs")
async def fetch_logs_between_dates(
    host: str,
    container_id: str,
    start: Optional[str] = Query(None, alias="from", description="RFC3339 start time"),
    end: Optional[str] = Query(None, alias="to", description="RFC3339 end time"),
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    """Historical logs as JSON lines; unparsable bounds fall back to epoch and now."""
    since = parse_query_time(start)
    until = parse_query_time(end, default=datetime.now(timezone.utc))

    container = await registry.store(host).find_container(container_id)
    try:
        lines = await registry.client(host).container_logs_between_dates(container.id, since, until, std_types)
    except ResourceNotFoundError:
        raise
    except Exception as e:
        logger.error(f"Failed to read logs of {container.name}: {e}")
        raise DockerOperationError("container_logs", str(e))

    return StreamingResponse(
        jsonl_events(lines, container, std_types, logger),
        media_type="application/x-jsonl; charset=UTF-8",
    )


@router.get("/hosts/{host}/containers/{container_id}/logs/download")
async def download_logs(
    request: Request,
    host: str,
    container_id: str,
    std_types: StdType = Depends(get_std_types),
    registry: HostRegistry = Depends(get_host_registry),
):
    """All logs of a container up to now, gzip compressed."""
    try:
        container = await registry.store(host).find_container(container_id)
    except ResourceNotFoundError as e:
        raise ValidationError(e.message, "INVALID_CONTAINER", e.details)

    now = datetime.now(timezone.utc)
    filename = export_filename(container, now)
    try:
        lines = await registry.client(host).container_logs_between_dates(
            container.id, datetime(1970, 1, 1, tzinfo=timezone.utc), now, std_types
        )
    except Exception as e:
        logger.error(f"Failed to read logs of {container.name}: {e}")
        raise DockerOperationError("container_logs", str(e))

    if "gzip" in request.headers.get("accept-encoding", ""):
        headers = {
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Encoding": "gzip",
        }
        media_type = "application/text"
    else:
        headers = {"Content-Disposition": f"attachment; filename={filename}.gz"}
        media_type = "application/gzip"

    return StreamingResponse(gzip_lines(lines, filename, now), media_type=media_type, headers=headers)
