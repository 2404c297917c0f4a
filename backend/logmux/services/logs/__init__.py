"""
Container log multiplexing

This package merges the live logs of a changing set of containers into one
Server-Sent Events stream, together with keepalives and container lifecycle
events.
"""

from .base import (
    Container,
    ContainerStore,
    DockerLogClient,
    KEEPALIVE,
    Keepalive,
    StdType,
)
from .lifetime import StreamLifetime
from .membership import MembershipFilter, by_group, by_id, by_ids, by_service, by_stack, stop_discovery
from .stream_manager import LogStreamMultiplexer, WorkerRegistry
from .wire import EventStreamEncoder

__all__ = [
    'Container',
    'ContainerStore',
    'DockerLogClient',
    'KEEPALIVE',
    'Keepalive',
    'StdType',
    'StreamLifetime',
    'MembershipFilter',
    'by_group',
    'by_id',
    'by_ids',
    'by_service',
    'by_stack',
    'stop_discovery',
    'LogStreamMultiplexer',
    'WorkerRegistry',
    'EventStreamEncoder'
]
