"""Main CLI entry point"""

import asyncio
import sys

import click

from logmux.core.config import settings
from logmux.core.exceptions import AppException
from logmux.core.logging import logger
from logmux.services.host_registry import HostRegistry
from logmux.services.logs.base import StdType
from logmux.services.logs.lifetime import StreamLifetime
from logmux.services.logs.membership import MembershipFilter, by_group, by_id, by_service, by_stack, stop_discovery
from logmux.services.logs.stream_manager import LogStreamMultiplexer
from logmux.services.logs.wire import EventStreamEncoder


@click.group()
@click.option('--log-level', type=click.Choice(['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
              case_sensitive=False), help='Override LOGMUX_LOG_LEVEL')
def cli(log_level):
    """logmux - multiplexed container log streaming"""
    if log_level:
        logger.setLevel(log_level.upper())


@cli.command()
@click.option('--host', default=None, help='Bind address (default: LOGMUX_HOST)')
@click.option('--port', default=None, type=int, help='Bind port (default: LOGMUX_PORT)')
def serve(host, port):
    """Run the HTTP server"""
    import uvicorn

    uvicorn.run(
        "logmux.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


async def _tail(std_types, predicate, host, container_id):
    registry = HostRegistry.from_settings(settings)
    await registry.start()
    try:
        lifetime = StreamLifetime()
        membership = asyncio.Queue(maxsize=settings.membership_buffer)
        if container_id:
            container = await registry.store(host).find_container(container_id)
            discovery = MembershipFilter(
                registry.stores.values(), by_id(container.id), lifetime, logger,
                include_existing=False, require_running=False, initial=[container], name="tail",
            )
        else:
            discovery = MembershipFilter(registry.stores.values(), predicate, lifetime, logger, name="tail")

        multiplexer = LogStreamMultiplexer(
            registry.clients,
            std_types,
            membership,
            lifetime=lifetime,
            keepalive_interval=settings.keepalive_interval,
            logger=logger,
        )
        discovery_task = asyncio.create_task(discovery.run(membership))
        try:
            await EventStreamEncoder(logger).stream_to(multiplexer.stream(), sys.stdout.buffer)
        finally:
            lifetime.cancel()
            await stop_discovery(discovery_task, logger)
    finally:
        await registry.close()


@cli.command()
@click.option('--host', default='local', help='Host the container lives on')
@click.option('--container', 'container_id', help='Follow a single container by id or name')
@click.option('--service', help='Follow every container of a service')
@click.option('--stack', help='Follow every container of a stack')
@click.option('--group', help='Follow every container of a custom group')
@click.option('--stdout/--no-stdout', default=True, help='Include stdout')
@click.option('--stderr/--no-stderr', default=True, help='Include stderr')
def tail(host, container_id, service, stack, group, stdout, stderr):
    """Stream logs to stdout as Server-Sent Events"""
    selectors = [s for s in (container_id, service, stack, group) if s]
    if len(selectors) != 1:
        click.echo("Exactly one of --container, --service, --stack or --group is required", err=True)
        sys.exit(2)

    std_types = StdType(0)
    if stdout:
        std_types |= StdType.STDOUT
    if stderr:
        std_types |= StdType.STDERR

    if service:
        predicate = by_service(service)
    elif stack:
        predicate = by_stack(stack)
    elif group:
        predicate = by_group(group)
    else:
        predicate = None

    try:
        asyncio.run(_tail(std_types, predicate, host, container_id))
    except KeyboardInterrupt:
        pass
    except AppException as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    cli()
